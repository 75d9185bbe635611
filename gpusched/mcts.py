"""Monte Carlo tree search scheduler."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

from .enums import AcceleratorType
from .job import Job
from .schedulers import JobScheduler
from .server import Server

_ITERATION_FACTOR = 20


@dataclass(eq=False)
class MctsNode:
    """A search-tree node: placing the root job on one server."""

    parent: MctsNode | None
    server_index: int
    job: Job
    depth: int
    children: list[MctsNode] = field(default_factory=list)
    visits: int = 0
    value: float = 0.0


class MctsScheduler(JobScheduler):
    """Chooses the server whose placement leads to the highest simulated allocation."""

    SIMULATION_COUNT = 100
    EXPLORATION = 1.414

    def __init__(self, rng: random.Random | None = None) -> None:
        super().__init__()
        self.simulation_count = self.SIMULATION_COUNT
        self.exploration = self.EXPLORATION
        self.rng = rng if rng is not None else random.Random()
        self.root: MctsNode | None = None

    def _after_set_servers(self) -> None:
        self.simulation_count = self.SIMULATION_COUNT
        self.exploration = self.EXPLORATION

    def _capacity(
        self, request: int, servers: list[Server], accelerator: AcceleratorType
    ) -> tuple[bool, int]:
        """Whether some server fits the request, and free slots counted up to it."""
        accumulated = 0
        for server in servers:
            if not self._matches(server, accelerator):
                continue
            free = server.available_count()
            accumulated += free
            if free >= request:
                return True, accumulated
        return False, accumulated

    @staticmethod
    def _max_schedulable(jobs: list[Job], assignable: int) -> int:
        total = 0
        count = 0
        for job in jobs:
            if total + job.accelerator_count > assignable:
                break
            count += 1
            total += job.accelerator_count
        return count

    def arrange_server(
        self,
        job: Job,
        queue_index: int = 0,
        accelerator: AcceleratorType = AcceleratorType.ANY,
    ) -> int | None:
        fits, assignable = self._capacity(job.accelerator_count, self.servers, accelerator)
        if not fits:
            return None
        self.root = MctsNode(None, -1, job, -1)
        pending = list(self.wait_queues[queue_index]) if self.wait_queues else []
        limit = _ITERATION_FACTOR * (self._max_schedulable(pending, assignable) + 1)

        for _ in range(min(limit, len(pending))):
            node = self._select(self.root)
            self._expand(node, accelerator)
            self._backpropagate(node, self._simulate(node, pending, accelerator))

        best = self._best_child(self.root)
        if best is not None:
            self.servers[best].assign(job, job.accelerator_count)
        return best

    def _ucb(self, node: MctsNode, child: MctsNode) -> float:
        if child.visits == 0:
            return math.inf
        return child.value / child.visits + self.exploration * math.sqrt(
            math.log(node.visits) / child.visits
        )

    def _select(self, node: MctsNode) -> MctsNode:
        while node.children:
            parent = node
            node = max(parent.children, key=lambda child: self._ucb(parent, child))
        return node

    def _expand(self, node: MctsNode, accelerator: AcceleratorType) -> None:
        for index, server in enumerate(self.servers):
            if not self._matches(server, accelerator):
                continue
            if server.available_count() >= node.job.accelerator_count:
                node.children.append(MctsNode(node, index, node.job, node.depth + 1))

    def _simulate(self, node: MctsNode, pending: list[Job], accelerator: AcceleratorType) -> float:
        simulated = [server.clone() for server in self.servers]
        ancestor = node.parent
        while ancestor is not None:
            if ancestor.server_index != -1 and ancestor.depth != -1:
                placed = pending[ancestor.depth]
                simulated[ancestor.server_index].assign(placed, placed.accelerator_count)
            ancestor = ancestor.parent

        total = sum(server.accelerator_count for server in simulated)
        attempts = (len(pending) - node.depth + 1) * 3
        best = 0.0
        for _ in range(self.simulation_count):
            trial = [server.clone() for server in simulated]
            for job in pending[node.depth + 1:]:
                need = job.accelerator_count
                if not self._capacity(need, trial, accelerator)[0]:
                    break
                for _ in range(max(attempts, 1)):
                    target = trial[self.rng.randint(0, len(trial) - 1)]
                    if target.available_count() >= need:
                        target.assign(job, need)
                        break
            allocated = sum(s.accelerator_count - s.available_count() for s in trial)
            allocation = allocated / total if total else 0.0
            best = max(best, allocation)
        return best

    @staticmethod
    def _backpropagate(node: MctsNode | None, value: float) -> None:
        while node is not None:
            node.visits += 1
            node.value += value
            node = node.parent

    @staticmethod
    def _best_child(node: MctsNode) -> int | None:
        def mean(child: MctsNode) -> float:
            return child.value / child.visits if child.visits else math.nan

        if not node.children:
            return None
        best = node.children[0]
        for child in node.children[1:]:
            if mean(best) < mean(child):
                best = child
        return best.server_index