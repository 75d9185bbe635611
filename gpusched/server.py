"""Servers holding a fixed number of accelerator slots."""

from __future__ import annotations

import math

from .enums import AcceleratorType
from .job import Job


class Server:
    """A server whose accelerator slots are reserved by running jobs."""

    def __init__(self, name: str, accelerator_type: AcceleratorType, accelerator_count: int) -> None:
        self.name = name
        self.accelerator_type = accelerator_type
        self.accelerator_count = accelerator_count
        self.reserved: list[bool] = []
        self.job_ids: list[str] = []
        self.utilizations: list[float] = []
        self.jobs: list[Job] = []
        self.reset()

    def reset(self) -> None:
        """Free every slot and forget all loaded jobs."""
        self.reserved = [False] * self.accelerator_count
        self.job_ids = [""] * self.accelerator_count
        self.utilizations = [0.0] * self.accelerator_count
        self.jobs = []

    def available_count(self) -> int:
        """Number of free accelerator slots."""
        return self.reserved.count(False)

    def assign(self, job: Job, count: int) -> bool:
        """Reserve free slots for job; return False if too few are free."""
        if count > self.available_count():
            return False
        remaining = count
        for position, taken in enumerate(self.reserved):
            if taken:
                continue
            job.assign_accelerator(position)
            self.reserved[position] = True
            self.job_ids[position] = job.job_id
            self.utilizations[position] = job.utilization
            remaining -= 1
            # A request for zero slots never reaches zero here and takes every free slot.
            if remaining == 0:
                break
        self.jobs.append(job)
        return True

    def tick(self) -> None:
        """Advance every loaded job by one minute."""
        for job in self.jobs:
            job.tick()

    def flush(self) -> int:
        """Release finished jobs; return the number of slots freed."""
        freed = 0
        for job in list(self.jobs):
            if job.flush():
                freed += self.remove_job(job)
        return freed

    def remove_job(self, job: Job) -> int:
        """Release every slot held by job; return the number of slots freed."""
        freed = 0
        for position in range(self.accelerator_count):
            if self.reserved[position] and self.job_ids[position] == job.job_id:
                self.reserved[position] = False
                self.job_ids[position] = ""
                self.utilizations[position] = 0.0
                freed += 1
        self.jobs = [loaded for loaded in self.jobs if loaded is not job]
        return freed

    def utilization(self) -> float:
        """Mean utilization across all slots, counting free slots as zero."""
        if self.accelerator_count == 0:
            return math.nan
        total = sum(value for taken, value in zip(self.reserved, self.utilizations) if taken)
        return total / self.accelerator_count

    def loaded_job_count(self) -> int:
        """Number of distinct jobs holding at least one slot."""
        return len({job_id for job_id in self.job_ids if job_id})

    def clone(self) -> Server:
        """Copy the slot state; the job objects themselves are shared."""
        twin = Server.__new__(Server)
        twin.name = self.name
        twin.accelerator_type = self.accelerator_type
        twin.accelerator_count = self.accelerator_count
        twin.reserved = list(self.reserved)
        twin.job_ids = list(self.job_ids)
        twin.utilizations = list(self.utilizations)
        twin.jobs = list(self.jobs)
        return twin

    def __repr__(self) -> str:
        return (
            f"Server(name={self.name!r}, type={self.accelerator_type.name}, "
            f"free={self.available_count()}/{self.accelerator_count})"
        )