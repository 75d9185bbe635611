import random
from collections import deque

from gpusched.enums import AcceleratorType
from gpusched.job import Job, JobAge
from gpusched.mcts import MctsScheduler
from gpusched.server import Server


def make_job(count: int) -> Job:
    return Job("pod", "task", "proj", "ns", "team",
               "2024-01-01 00:00:00", "2024-01-01 01:00:00", count)


def build(servers, pending, seed=1):
    scheduler = MctsScheduler(rng=random.Random(seed))
    scheduler.set_servers(servers)
    scheduler.set_queues([deque(pending)], [[JobAge(job) for job in pending]], [])
    return scheduler


def test_returns_none_without_capacity():
    servers = [Server("s0", AcceleratorType.A100, 2)]
    job = make_job(4)
    scheduler = build(servers, [job])
    assert scheduler.arrange_server(job) is None
    assert servers[0].available_count() == 2


def test_picks_only_fitting_server():
    servers = [Server("s0", AcceleratorType.A100, 2), Server("s1", AcceleratorType.A100, 4)]
    job = make_job(3)
    scheduler = build(servers, [job])
    assert scheduler.arrange_server(job) == 1
    assert servers[1].available_count() == 1
    assert servers[0].available_count() == 2


def test_respects_flavor():
    servers = [Server("s0", AcceleratorType.A100, 8), Server("s1", AcceleratorType.A30, 8)]
    job = make_job(2)
    scheduler = build(servers, [job])
    scheduler.set_condition(False, True, False)
    assert scheduler.arrange_server(job, 0, AcceleratorType.A30) == 1


def test_empty_wait_queue_places_nothing():
    servers = [Server("s0", AcceleratorType.A100, 8)]
    job = make_job(1)
    scheduler = build(servers, [])
    assert scheduler.arrange_server(job) is None
    assert servers[0].available_count() == 8


def test_choice_has_room_for_job():
    servers = [Server(f"s{i}", AcceleratorType.A100, n) for i, n in enumerate((4, 8, 2))]
    pending = [make_job(2), make_job(4), make_job(2)]
    before = [s.available_count() for s in servers]
    scheduler = build(servers, pending, seed=7)
    index = scheduler.arrange_server(pending[0])
    assert before[index] >= 2
    assert servers[index].available_count() == before[index] - 2
    assert sum(s.available_count() for s in servers) == sum(before) - 2


def test_root_statistics_after_search():
    servers = [Server("s0", AcceleratorType.A100, 4), Server("s1", AcceleratorType.A100, 4)]
    pending = [make_job(2), make_job(2)]
    scheduler = build(servers, pending)
    scheduler.arrange_server(pending[0])
    root = scheduler.root
    assert root.visits == len(pending)
    assert sum(child.visits for child in root.children) == root.visits - 1
    assert 0.0 <= root.value <= root.visits


def test_set_servers_restores_search_settings():
    scheduler = MctsScheduler(rng=random.Random(0))
    scheduler.simulation_count = 3
    scheduler.exploration = 0.5
    scheduler.set_servers([Server("s0", AcceleratorType.A100, 2)])
    assert scheduler.simulation_count == MctsScheduler.SIMULATION_COUNT
    assert scheduler.exploration == MctsScheduler.EXPLORATION