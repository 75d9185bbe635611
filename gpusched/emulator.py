"""Minute-by-minute emulation of jobs arriving at and running on a cluster."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from itertools import islice
from pathlib import Path

from .enums import AcceleratorType, EmulationStatus, SchedulerType, accelerator_type_from_name
from .job import Job, JobAge
from .mcts import MctsScheduler
from .schedulers import (
    CompactScheduler,
    FareShareScheduler,
    JobScheduler,
    MostAllocatedScheduler,
    RoundRobinScheduler,
)
from .server import Server

_log = logging.getLogger(__name__)

_MAX_AGE_PER_SERVER = 3
_ADJUST_OVERHEAD_MINUTES = 5
_SUITABILITY_SLOTS = 8
_QUEUE_COUNT = len(AcceleratorType)
_PLAY_PERIOD_SECONDS = 0.0

_SCHEDULERS: dict[SchedulerType, tuple[Callable[[], JobScheduler], str]] = {
    SchedulerType.COMPACT: (CompactScheduler, "compact"),
    SchedulerType.FARE_SHARE: (FareShareScheduler, "fare_share"),
    SchedulerType.MOSTALLOCATED: (MostAllocatedScheduler, "mostallocated"),
    SchedulerType.MCTS: (MctsScheduler, "mcts"),
    SchedulerType.ROUND_ROBIN: (RoundRobinScheduler, "round_robin"),
}
_DEFAULT_SCHEDULER = (RoundRobinScheduler, "round_robin")


@dataclass
class SchedulerOptions:
    """Settings that select and tune the scheduling policy."""

    scheduler: SchedulerType = SchedulerType.MOSTALLOCATED
    preemption: bool = False
    with_flavor: bool = False
    until_finish: bool = False
    prevent_starvation: bool = False
    starvation_upper: float = 70.0
    age_weight: float = 0.13889
    dp_execution_maximum: int = 100000
    preemption_window: int = 20


def create_scheduler(kind: SchedulerType) -> JobScheduler:
    """Build a scheduler for the given policy; unknown policies use round robin."""
    factory, _ = _SCHEDULERS.get(kind, _DEFAULT_SCHEDULER)
    return factory()


def _scheduler_name(kind: SchedulerType) -> str:
    return _SCHEDULERS.get(kind, _DEFAULT_SCHEDULER)[1]


class JobEmulator:
    """Feeds jobs into wait queues minute by minute and lets a scheduler place them."""

    def __init__(
        self,
        on_step: Callable[[JobEmulator], None] | None = None,
        defragmenter: Callable[[int], bool] | None = None,
    ) -> None:
        self.on_step = on_step
        self.defragmenter = defragmenter
        self.jobs: list[Job] = []
        self.servers: list[Server] = []
        self.job_queue: dict[int, list[Job]] = {}
        self.total_time_slot = 0
        self.job_file_name = ""
        self.min_start: datetime | None = None
        self.max_end: datetime | None = None
        self.emulation_step = -1
        self.last_emulation_step = -1
        self.status = EmulationStatus.STOP
        self.wait_queues: list[deque[Job]] = []
        self.age_queues: list[list[JobAge]] = []
        self.scheduled_history: list[JobAge] = []
        self.max_age_count = 0
        self.latest_allocation = 0.0
        self.saving_possible = False
        self.job_start: datetime | None = None
        self.progress_time: datetime | None = None
        self.options = SchedulerOptions()
        self.scheduler: JobScheduler = create_scheduler(self.options.scheduler)
        self.scheduling_name = _scheduler_name(self.options.scheduler)
        self.set_options(self.options)
        self._reset_progress()

    # ----- loading -------------------------------------------------------

    def load_servers(self, path: str | Path) -> None:
        """Read 'name,accelerator_count,accelerator_type' lines into the server list."""
        with Path(path).open(encoding="utf-8") as handle:
            lines = [line.rstrip("\r\n") for line in handle]
        self.servers.clear()
        for line in lines:
            if not line.strip():
                continue
            fields = line.split(",")
            self.servers.append(
                Server(fields[0], accelerator_type_from_name(fields[2]), int(fields[1]))
            )
        self.max_age_count = len(self.servers) * _MAX_AGE_PER_SERVER
        self.server_utilization_log = [[] for _ in self.servers]
        self.server_allocation_log = [[] for _ in self.servers]
        self.scheduler.set_servers(self.servers)

    def load_jobs(self, path: str | Path, options: SchedulerOptions) -> None:
        """Read the job list CSV and apply the scheduling options."""
        with Path(path).open(encoding="utf-8") as handle:
            lines = [line.rstrip("\r\n") for line in handle]
        self.job_file_name = str(path)
        self.set_options(options)
        self.jobs.clear()
        for line in lines:
            if not line.strip():
                continue
            fields = line.split(",")
            if fields[0] == "pod_name" and len(fields) > 1 and fields[1] == "pod_type":
                continue
            computation_load = int(fields[9]) if len(fields) > 9 else 1
            utilization = float(fields[10]) if len(fields) > 10 else 50.0
            flavor = accelerator_type_from_name(fields[11]) if len(fields) > 11 else AcceleratorType.CPU
            preemptible = fields[12] == "y" if len(fields) > 12 else False
            self.jobs.append(
                Job(
                    fields[0], fields[1], fields[2], fields[3], fields[4],
                    fields[5], fields[6], int(fields[7]),
                    computation_load, utilization, flavor, preemptible,
                )
            )

    def build_job_queue(self) -> None:
        """Bucket jobs by their start minute relative to the earliest start."""
        if not self.jobs:
            return
        self.min_start = min(job.start for job in self.jobs)
        self.max_end = max(job.finish for job in self.jobs)
        self.total_time_slot = int((self.max_end - self.min_start).total_seconds() // 60)
        self.job_queue = {}
        for job in self.jobs:
            slot = int((job.start - self.min_start).total_seconds() // 60)
            self.job_queue.setdefault(slot, []).append(job)

    def set_options(self, options: SchedulerOptions) -> None:
        """Store the options and install a fresh scheduler for them."""
        self.options = options
        self.scheduler = create_scheduler(options.scheduler)
        self.scheduling_name = _scheduler_name(options.scheduler)
        self.scheduler.set_queues(self.wait_queues, self.age_queues, self.scheduled_history)
        self.scheduler.set_servers(self.servers)
        self.scheduler.set_condition(options.preemption, options.with_flavor, options.until_finish)

    # ----- running -------------------------------------------------------

    def _reset_progress(self) -> None:
        self.finished_job_count = 0
        self.scheduled_job_count = 0
        self.last_scheduled_job_count = 0
        self.adjust_count = 0
        self.do_defragmentation = False
        self.stats_sample_size = 0
        self.scheduled_history.clear()
        self.allocation_rate: list[float] = []
        self.utilization_rate: list[float] = []
        self.server_utilization_log: list[list[float]] = [[] for _ in self.servers]
        self.server_allocation_log: list[list[int]] = [[] for _ in self.servers]
        self.wait_queues[:] = [deque() for _ in range(_QUEUE_COUNT)]
        self.age_queues[:] = [[] for _ in range(_QUEUE_COUNT)]

    def _prepare(self) -> None:
        self._reset_progress()
        if self.status is not EmulationStatus.PAUSE:
            self.job_start = datetime.now()

    def _notify(self) -> None:
        if self.on_step is not None:
            self.on_step(self)

    def _reset_state(self) -> None:
        for server in self.servers:
            server.reset()
        for job in self.jobs:
            job.reset()

    def step(self) -> None:
        """Advance the emulation by one minute, or finish it."""
        if self._finished():
            self.last_emulation_step = self.emulation_step
            self.emulation_step = -1
            self.status = EmulationStatus.STOP
            self._reset_state()
            self.stats_sample_size = max(len(self.allocation_rate) - 1, 0)
            return

        self.emulation_step += 1
        self._compute_forward()
        self._update_wait_queues()
        self._adjust_wait_queues()
        self._defragment()
        self.scheduled_job_count += self.scheduler.schedule(self.emulation_step)
        self._check_defragmentation_condition()
        self._log_rates()
        self._notify()
        self.progress_time = datetime.now()

    def run(self) -> None:
        """Run the emulation to completion in the calling thread."""
        self._prepare()
        self.status = EmulationStatus.START
        while self.status is EmulationStatus.START:
            self.saving_possible = True
            self.step()
        if self.status is EmulationStatus.STOP:
            self.emulation_step = -1

    def start(self) -> threading.Thread:
        """Run the emulation in a background thread and return that thread."""
        self._prepare()
        self.status = EmulationStatus.START

        def play() -> None:
            while self.status is EmulationStatus.START:
                self.saving_possible = True
                self.step()
                time.sleep(_PLAY_PERIOD_SECONDS)
            if self.status is EmulationStatus.STOP:
                self.emulation_step = -1
            self._notify()

        player = threading.Thread(target=play, name="emulation-player", daemon=True)
        player.start()
        return player

    def pause(self) -> None:
        """Pause the emulation after the current step."""
        self.status = EmulationStatus.PAUSE
        self.last_emulation_step = self.emulation_step
        _log.info("Pause progress")

    def stop(self) -> None:
        """Stop the emulation and release every server and job."""
        if self.status is EmulationStatus.PAUSE:
            self.last_emulation_step = self.emulation_step
            self.emulation_step = -1
        self.status = EmulationStatus.STOP
        self._reset_state()
        _log.info("Stop progress")

    # ----- step phases ---------------------------------------------------

    def _finished(self) -> bool:
        if self.options.until_finish:
            if self.total_job_count != self.scheduled_job_count:
                return False
            return all(server.loaded_job_count() == 0 for server in self.servers)
        return self.total_time_slot - 1 == self.emulation_step

    def _compute_forward(self) -> None:
        for server in self.servers:
            server.tick()
            self.finished_job_count += server.flush()

    def _update_wait_queues(self) -> None:
        if self.emulation_step >= self.total_time_slot:
            return
        for job in self.job_queue.get(self.emulation_step, []):
            index = int(job.flavor) if self.options.with_flavor else 0
            queue = self.wait_queues[index]
            queue.append(job)
            self.age_queues[index][:] = [JobAge(waiting) for waiting in islice(queue, self.max_age_count)]

    def _suitability(self) -> list[float]:
        best = [0.0] * _SUITABILITY_SLOTS
        for server in self.servers:
            free = server.available_count()
            for slot in range(_SUITABILITY_SLOTS):
                if free - slot <= 0:
                    continue
                best[slot] = max(best[slot], 1 - (free - slot - 1) * 0.1)
        return best

    def _adjust_wait_queues(self) -> None:
        if not self.options.prevent_starvation:
            return
        if self.latest_allocation > self.options.starvation_upper:
            return
        suitability = self._suitability()

        for ages, queue in zip(self.age_queues, self.wait_queues):
            top_index = 0
            top_score = 0.0
            for position, record in enumerate(ages):
                request = record.job.accelerator_count
                fit = suitability[request - 1] if 1 <= request <= _SUITABILITY_SLOTS else 0.0
                record.repriority_score = 1 / 2**position + record.age * self.options.age_weight * fit
                if record.repriority_score > top_score:
                    top_score = record.repriority_score
                    top_index = position

            if top_index != 0:
                ages.insert(0, ages.pop(top_index))
                promoted = queue[top_index]
                del queue[top_index]
                queue.appendleft(promoted)

            if not self.options.with_flavor:
                break

    def _defragment(self) -> None:
        if not self.options.preemption:
            return
        if self.options.preemption_window < self.wait_job_count() and self.do_defragmentation:
            if self.defragmenter is not None and self.defragmenter(self.emulation_step):
                self.adjust_count += 1
            self.do_defragmentation = False

    def _check_defragmentation_condition(self) -> None:
        if not self.options.preemption:
            return
        if self.last_scheduled_job_count != self.scheduled_job_count:
            self.last_scheduled_job_count = self.scheduled_job_count
            self.do_defragmentation = True
        else:
            self.do_defragmentation = False

    def _log_rates(self) -> None:
        total_slots = 0
        reserved = 0
        utilization = 0.0
        for server, util_log, alloc_log in zip(
            self.servers, self.server_utilization_log, self.server_allocation_log
        ):
            used = server.accelerator_count - server.available_count()
            server_util = server.utilization()
            total_slots += server.accelerator_count
            reserved += used
            utilization += server_util
            util_log.append(server_util)
            alloc_log.append(used)
        allocation = reserved / total_slots * 100 if total_slots else math.nan
        self.allocation_rate.append(allocation)
        self.latest_allocation = allocation
        self.utilization_rate.append(utilization / len(self.servers) if self.servers else math.nan)

    # ----- reporting -----------------------------------------------------

    def wait_job_count(self) -> int:
        """Number of jobs waiting across all queues."""
        return sum(len(queue) for queue in self.wait_queues)

    def wait_job_requests(self) -> list[list[int]]:
        """Accelerator requests at the head of each wait queue."""
        return self.scheduler.wait_job_requests()

    @property
    def total_job_count(self) -> int:
        return len(self.jobs)

    @property
    def remain_job_count(self) -> int:
        return self.total_job_count - self.scheduled_job_count

    @property
    def done_step(self) -> int:
        return self.last_emulation_step

    @property
    def progress_time_slot(self) -> int:
        return self.last_emulation_step

    @property
    def adjust_overhead_time(self) -> int:
        return self.adjust_count * _ADJUST_OVERHEAD_MINUTES

    @property
    def elapsed_time(self) -> timedelta:
        if self.job_start is None or self.progress_time is None:
            return timedelta(0)
        return self.progress_time - self.job_start

    def elapsed_time_string(self) -> str:
        """Wall-clock time of the run as HH:MM:SS:mmm."""
        total_ms = int(self.elapsed_time / timedelta(milliseconds=1))
        hours, rest = divmod(total_ms, 3_600_000)
        minutes, rest = divmod(rest, 60_000)
        seconds, millis = divmod(rest, 1000)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}:{millis:03d}"