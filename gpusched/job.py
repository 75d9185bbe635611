"""Jobs submitted to the emulated cluster."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .enums import AcceleratorType
from .utility import parse_time_string


class JobType(Enum):
    """Whether a job is a batch task or a long-running instance."""

    TASK = "task"
    INSTANCE = "instance"


def _as_datetime(value: datetime | str) -> datetime:
    return parse_time_string(value) if isinstance(value, str) else value


class Job:
    """A job with a wall time counted down one minute per emulation step."""

    _PRE_MODULUS = 1001
    _POST_MODULUS = 501
    _sequence = itertools.count()

    def __init__(
        self,
        pod_name: str,
        pod_type: str,
        project: str,
        namespace: str,
        user_team: str,
        start_time: datetime | str,
        finish_time: datetime | str,
        accelerator_count: int,
        computation_load: int = 1,
        utilization: float = 50.0,
        flavor: AcceleratorType = AcceleratorType.CPU,
        preemptible: bool = False,
    ) -> None:
        self.pod_name = pod_name
        self.project_name = project
        self.namespace = namespace
        self.user_team = user_team
        self.accelerator_count = accelerator_count
        self.computation_load = computation_load
        self.utilization = utilization
        self.flavor = flavor
        self.preemptible = preemptible
        self.job_type = JobType.TASK if pod_type == "task" else JobType.INSTANCE
        self.start = _as_datetime(start_time)
        self.finish = _as_datetime(finish_time)
        self.wall_time = math.trunc((self.finish - self.start).total_seconds() / 60)
        self.remaining = self.wall_time
        self.assigned_accelerators: list[int] = []
        self.job_id = self._next_id()

    @classmethod
    def _next_id(cls) -> str:
        number = next(cls._sequence)
        return f"{number % cls._PRE_MODULUS:03d}{number % cls._POST_MODULUS:03d}"

    def tick(self) -> None:
        """Consume one minute of remaining wall time."""
        if self.remaining > 0:
            self.remaining -= 1

    def flush(self) -> bool:
        """Reset and report True once the job has no time left."""
        if self.remaining == 0:
            self.reset()
            return True
        return False

    def reset(self) -> None:
        """Restore the full wall time and drop accelerator assignments."""
        self.remaining = self.wall_time
        self.assigned_accelerators.clear()

    def assign_accelerator(self, position: int) -> None:
        """Record that the accelerator slot at position runs this job."""
        self.assigned_accelerators.append(position)

    def __repr__(self) -> str:
        return (
            f"Job(id={self.job_id!r}, pod={self.pod_name!r}, "
            f"accelerators={self.accelerator_count}, remaining={self.remaining})"
        )


@dataclass
class JobAge:
    """Waiting-queue bookkeeping for a job."""

    job: Job
    age: int = 0
    accumulated_age: int = 0
    repriority_score: float = 0.0
    server_status: str = ""
    emulation_step: int = 0