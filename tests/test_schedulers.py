from collections import deque

import pytest

from gpusched.enums import AcceleratorType
from gpusched.job import Job, JobAge
from gpusched.schedulers import (
    CompactScheduler,
    FareShareScheduler,
    MostAllocatedScheduler,
    RoundRobinScheduler,
)
from gpusched.server import Server


def make_job(count: int) -> Job:
    return Job("pod", "task", "proj", "ns", "team",
               "2024-01-01 00:00:00", "2024-01-01 01:00:00", count)


def make_servers(*counts, kind=AcceleratorType.A100):
    return [Server(f"s{i}", kind, count) for i, count in enumerate(counts)]


def attach(scheduler, servers):
    scheduler.set_servers(servers)
    return scheduler


def test_compact_picks_first_fitting_server():
    servers = make_servers(2, 4, 8)
    scheduler = attach(CompactScheduler(), servers)
    assert scheduler.arrange_server(make_job(3)) == 1
    assert servers[1].available_count() == 1
    assert servers[0].available_count() == 2


def test_compact_returns_none_when_nothing_fits():
    servers = make_servers(2, 2)
    scheduler = attach(CompactScheduler(), servers)
    assert scheduler.arrange_server(make_job(3)) is None
    assert [s.available_count() for s in servers] == [2, 2]


def test_compact_respects_flavor():
    servers = [Server("a", AcceleratorType.A100, 8), Server("b", AcceleratorType.A30, 8)]
    scheduler = attach(CompactScheduler(), servers)
    scheduler.set_condition(False, True, False)
    assert scheduler.arrange_server(make_job(1), 2, AcceleratorType.A30) == 1


def test_fare_share_accepts_without_reserving():
    servers = make_servers(4)
    scheduler = attach(FareShareScheduler(), servers)
    assert scheduler.arrange_server(make_job(2)) == 0
    assert servers[0].available_count() == 4


def test_round_robin_cycles():
    servers = make_servers(4, 4, 4)
    scheduler = attach(RoundRobinScheduler(), servers)
    picks = [scheduler.arrange_server(make_job(1)) for _ in range(4)]
    assert picks == [0, 1, 2, 0]


def test_round_robin_skips_full_server():
    servers = make_servers(1, 4)
    scheduler = attach(RoundRobinScheduler(), servers)
    assert scheduler.arrange_server(make_job(1)) == 0
    assert scheduler.arrange_server(make_job(1)) == 1
    assert scheduler.arrange_server(make_job(1)) == 1


def test_most_allocated_prefers_smallest_gap():
    servers = make_servers(8, 4, 4)
    scheduler = attach(MostAllocatedScheduler(), servers)
    assert scheduler.arrange_server(make_job(3)) == 1
    assert scheduler.arrange_server(make_job(2)) == 2
    assert servers[0].available_count() == 8


def test_most_allocated_falls_back_unless_strict():
    servers = make_servers(2, 8)
    scheduler = attach(MostAllocatedScheduler(), servers)
    assert scheduler.arrange_server(make_job(2)) == 0
    assert scheduler.arrange_server(make_job(2)) == 1

    strict = attach(MostAllocatedScheduler(strict=True), make_servers(2, 8))
    assert strict.arrange_server(make_job(2)) == 0
    assert strict.arrange_server(make_job(2)) is None


def test_most_allocated_request_too_large():
    servers = make_servers(8)
    scheduler = attach(MostAllocatedScheduler(), servers)
    assert scheduler.arrange_server(make_job(9)) is None
    assert servers[0].available_count() == 8


def test_server_status_lists_every_server():
    servers = make_servers(4, 2)
    scheduler = attach(CompactScheduler(), servers)
    scheduler.arrange_server(make_job(1))
    assert scheduler.server_status() == "s0, 4, 1, s1, 2, 0"


def test_schedule_records_history_and_ages():
    servers = make_servers(4)
    scheduler = attach(CompactScheduler(), servers)
    first, second = make_job(2), make_job(4)
    waits = [deque([first, second])]
    ages = [[JobAge(first), JobAge(second)]]
    history = []
    scheduler.set_queues(waits, ages, history)

    assert scheduler.schedule(7) == 1
    assert history[0].job is first
    assert history[0].emulation_step == 7
    assert history[0].server_status == "s0, 4, 0"
    assert list(waits[0]) == [second]
    assert [(a.job, a.age) for a in ages[0]] == [(second, 0)]

    assert scheduler.schedule(8) == 0
    assert ages[0][0].age == 1
    assert ages[0][0].accumulated_age == 1


def test_schedule_refills_age_queue():
    servers = make_servers(4)
    scheduler = attach(CompactScheduler(), servers)
    jobs = [make_job(1), make_job(1), make_job(8)]
    waits = [deque(jobs)]
    ages = [[JobAge(jobs[0])]]
    history = []
    scheduler.set_queues(waits, ages, history)

    assert scheduler.schedule(0) == 2
    assert [entry.job for entry in history] == jobs[:2]
    assert [entry.job for entry in ages[0]] == [jobs[2]]


def test_schedule_without_flavor_stops_after_idle_first_queue():
    servers = make_servers(4)
    scheduler = attach(CompactScheduler(), servers)
    big, small = make_job(8), make_job(1)
    waits = [deque([big]), deque([small])]
    ages = [[JobAge(big)], [JobAge(small)]]
    scheduler.set_queues(waits, ages, [])
    assert scheduler.schedule(0) == 0
    assert list(waits[1]) == [small]


def test_schedule_with_flavor_uses_queue_type():
    servers = make_servers(4, kind=AcceleratorType.A100)
    scheduler = attach(CompactScheduler(), servers)
    scheduler.set_condition(False, True, False)
    job = make_job(2)
    waits = [deque(), deque([job])]
    ages = [[], [JobAge(job)]]
    history = []
    scheduler.set_queues(waits, ages, history)
    assert scheduler.schedule(3) == 1
    assert history[0].job is job
    assert servers[0].available_count() == 2


def test_schedule_without_queues_does_nothing():
    scheduler = attach(CompactScheduler(), make_servers(4))
    assert scheduler.schedule(0) == 0


def test_wait_job_requests_previews_five():
    scheduler = attach(CompactScheduler(), make_servers(4))
    jobs = [make_job(n) for n in range(1, 8)]
    scheduler.set_queues([deque(jobs), deque()], [[], []], [])
    assert scheduler.wait_job_requests() == [[1, 2, 3, 4, 5], []]


@pytest.mark.parametrize("cls", [CompactScheduler, RoundRobinScheduler, MostAllocatedScheduler])
def test_placed_job_holds_its_slots(cls):
    servers = make_servers(2, 4, 8)
    scheduler = attach(cls(), servers)
    job = make_job(3)
    index = scheduler.arrange_server(job)
    assert servers[index].job_ids.count(job.job_id) == 3
    assert len(job.assigned_accelerators) == 3