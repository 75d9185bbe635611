"""Job schedulers that place waiting jobs onto servers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Sequence

from .enums import AcceleratorType
from .job import Job, JobAge
from .server import Server

_REQUEST_PREVIEW = 5


class JobScheduler(ABC):
    """Common queue handling; subclasses decide which server a job lands on."""

    def __init__(self) -> None:
        self.servers: list[Server] = []
        self.preemption = False
        self.with_flavor = False
        self.until_finish = False
        self.wait_queues: list[deque[Job]] | None = None
        self.age_queues: list[list[JobAge]] | None = None
        self.history: list[JobAge] | None = None

    def set_servers(self, servers: list[Server]) -> None:
        """Attach the server list the scheduler places jobs on."""
        self.servers = servers
        self._after_set_servers()

    def _after_set_servers(self) -> None:
        """Hook for subclasses that index the server list."""

    def set_queues(
        self,
        wait_queues: list[deque[Job]],
        age_queues: list[list[JobAge]],
        history: list[JobAge],
    ) -> None:
        """Attach the shared wait queues, their age records and the history list."""
        self.wait_queues = wait_queues
        self.age_queues = age_queues
        self.history = history

    def set_condition(self, preemption: bool, with_flavor: bool, until_finish: bool) -> None:
        """Set the scheduling switches."""
        self.preemption = preemption
        self.with_flavor = with_flavor
        self.until_finish = until_finish

    def _matches(self, server: Server, accelerator: AcceleratorType) -> bool:
        return not self.with_flavor or server.accelerator_type == accelerator

    @abstractmethod
    def arrange_server(
        self,
        job: Job,
        queue_index: int = 0,
        accelerator: AcceleratorType = AcceleratorType.ANY,
    ) -> int | None:
        """Place job on a server; return its index, or None if it cannot be placed."""

    def schedule(self, step: int) -> int:
        """Place waiting jobs in queue order; return how many were placed."""
        if self.wait_queues is None:
            return 0
        ages = self.age_queues if self.age_queues is not None else []
        history = self.history if self.history is not None else []
        scheduled = 0
        for index, wait_queue in enumerate(self.wait_queues):
            age_queue = ages[index]
            placed_any = False
            while wait_queue:
                status = self.server_status()
                if self.arrange_server(wait_queue[0], index, AcceleratorType(index)) is None:
                    break
                wait_queue.popleft()
                scheduled += 1
                entry = age_queue.pop(0)
                entry.server_status = status
                entry.emulation_step = step
                history.append(entry)
                placed_any = True
                if not wait_queue:
                    continue
                tracked = len(age_queue)
                if len(wait_queue) == tracked:
                    continue
                age_queue.append(JobAge(wait_queue[tracked]))

            if placed_any:
                for record in age_queue:
                    record.age = 0
                continue

            for record in age_queue:
                record.age += 1
                record.accumulated_age += 1

            if not self.with_flavor:
                break
        return scheduled

    def server_status(self) -> str:
        """Describe every server as 'name, slots, reserved'."""
        return ", ".join(
            f"{server.name}, {server.accelerator_count}, {server.reserved.count(True)}"
            for server in self.servers
        )

    def wait_job_requests(self) -> list[list[int]]:
        """Accelerator requests of the first few jobs in each wait queue."""
        if self.wait_queues is None:
            return []
        return [
            [job.accelerator_count for job in list(queue)[:_REQUEST_PREVIEW]]
            for queue in self.wait_queues
        ]


class CompactScheduler(JobScheduler):
    """Places each job on the first server with enough free slots."""

    def arrange_server(
        self,
        job: Job,
        queue_index: int = 0,
        accelerator: AcceleratorType = AcceleratorType.ANY,
    ) -> int | None:
        for index, server in enumerate(self.servers):
            if not self._matches(server, accelerator):
                continue
            if server.available_count() < job.accelerator_count:
                continue
            server.assign(job, job.accelerator_count)
            return index
        return None


class FareShareScheduler(JobScheduler):
    """Accepts every job for server 0 without reserving any slot."""

    def arrange_server(
        self,
        job: Job,
        queue_index: int = 0,
        accelerator: AcceleratorType = AcceleratorType.ANY,
    ) -> int | None:
        return 0


class RoundRobinScheduler(JobScheduler):
    """Walks the servers in a circle, resuming after the last placement."""

    def __init__(self) -> None:
        super().__init__()
        self._current = 0

    def _advance(self) -> None:
        self._current = (self._current + 1) % len(self.servers)

    def arrange_server(
        self,
        job: Job,
        queue_index: int = 0,
        accelerator: AcceleratorType = AcceleratorType.ANY,
    ) -> int | None:
        if self.servers:
            self._current %= len(self.servers)
        for _ in self.servers:
            server = self.servers[self._current]
            if not self._matches(server, accelerator) or server.available_count() < job.accelerator_count:
                self._advance()
                continue
            server.assign(job, job.accelerator_count)
            chosen = self._current
            self._advance()
            return chosen
        return None


class MostAllocatedScheduler(JobScheduler):
    """Best fit among the smallest servers able to hold the request."""

    def __init__(self, strict: bool = False) -> None:
        super().__init__()
        self.strict = strict
        self._buckets: list[list[tuple[int, Server]]] = []

    def _after_set_servers(self) -> None:
        largest = max((server.accelerator_count for server in self.servers), default=0)
        self._buckets = [[] for _ in range(largest + 1)]
        for index, server in enumerate(self.servers):
            self._buckets[server.accelerator_count].append((index, server))

    def _suitable_servers(self, required: int) -> Sequence[tuple[int, Server]]:
        if required > len(self._buckets) - 1:
            return []
        for bucket in self._buckets[max(required, 0):]:
            if bucket:
                return bucket
        return []

    def arrange_server(
        self,
        job: Job,
        queue_index: int = 0,
        accelerator: AcceleratorType = AcceleratorType.ANY,
    ) -> int | None:
        required = job.accelerator_count
        candidates = [
            (index, server.available_count() - required)
            for index, server in self._suitable_servers(required)
            if self._matches(server, accelerator) and server.available_count() >= required
        ]
        if candidates:
            smallest_gap = min(gap for _, gap in candidates)
            chosen = next(index for index, gap in candidates if gap == smallest_gap)
            self.servers[chosen].assign(job, required)
            return chosen

        if self.strict:
            return None

        for index, server in enumerate(self.servers):
            if server.available_count() >= required:
                server.assign(job, required)
                return index
        return None