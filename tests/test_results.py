import math

import pytest

from gpusched.emulator import JobEmulator, SchedulerOptions
from gpusched.enums import SchedulerType
from gpusched.results import (
    Statistics,
    calculate_statistics,
    candidate_file_name,
    save_all,
    save_log,
    save_meta,
    save_waiting_time,
)

JOBS = (
    "pod_name,pod_type,project,namespace,user,start,finish,count\n"
    "p1,task,proj,ns,team,2024-01-01 00:00:00,2024-01-01 00:05:00,2\n"
    "p2,task,proj,ns,team,2024-01-01 00:02:00,2024-01-01 00:10:00,4\n"
)
SERVERS = "s1,8,a100\n"


@pytest.fixture
def finished(tmp_path):
    jobs = tmp_path / "jobs.csv"
    servers = tmp_path / "servers.csv"
    jobs.write_text(JOBS)
    servers.write_text(SERVERS)
    emulator = JobEmulator()
    emulator.load_jobs(jobs, SchedulerOptions(scheduler=SchedulerType.COMPACT))
    emulator.load_servers(servers)
    emulator.build_job_queue()
    emulator.run()
    return emulator


def test_empty_statistics_are_zero():
    assert calculate_statistics([]) == Statistics()


def test_constant_series_has_no_spread():
    stats = calculate_statistics([7.5, 7.5, 7.5])
    assert stats.min == stats.max == stats.mid == stats.p_95 == 7.5
    assert stats.sd == 0.0


def test_statistics_ordering_invariant():
    values = [30.0, 10.0, 90.0, 50.0, 70.0, 20.0]
    stats = calculate_statistics(values)
    assert stats.min <= stats.p_25 <= stats.mid <= stats.p_75 <= stats.p_95 <= stats.max
    assert stats.min == min(values)
    assert stats.max == max(values)
    assert stats.avg == pytest.approx(sum(values) / len(values))


def test_statistics_independent_of_order():
    values = [4.0, 1.0, 3.0, 2.0]
    assert calculate_statistics(values) == calculate_statistics(sorted(values))


def test_candidate_name_describes_run(finished):
    name = candidate_file_name(finished)
    assert name.startswith("compact_")
    assert "_job(2)_server(1)_accelerator(8)" in name
    assert name.endswith("_flavor(false)_starvation(false)_preemtion(false)")


def test_saving_refused_before_run(tmp_path):
    emulator = JobEmulator()
    assert save_meta(emulator, tmp_path / "x") is False
    assert save_log(emulator, tmp_path / "x") is False
    assert save_waiting_time(emulator, tmp_path / "x") is False
    assert not (tmp_path / "x.meta").exists()


def test_save_all_writes_three_files(finished, tmp_path):
    prefix = tmp_path / "out"
    assert save_all(finished, prefix) is True
    for suffix in (".meta", ".tasklog", ".result"):
        assert (tmp_path / f"out{suffix}").exists()


def test_save_all_without_log(finished, tmp_path):
    prefix = tmp_path / "nolog"
    assert save_all(finished, prefix, with_log=False) is True
    assert not (tmp_path / "nolog.result").exists()


def test_meta_contents(finished, tmp_path):
    prefix = tmp_path / "meta"
    save_meta(finished, prefix)
    lines = (tmp_path / "meta.meta").read_text().split("\n")
    assert lines[0] == "Item,Contents"
    rows = dict(line.split(",", 1) for line in lines[1:])
    assert rows["scheduler name"] == "compact"
    assert rows["Total Job"] == "2"
    assert rows["Total Duration(Expected)"] == str(finished.total_time_slot)
    assert rows["save prefix"] == str(prefix)
    assert rows["alpha"] == "0"
    assert float(rows["Allocation max"]) >= float(rows["Allocation min"])


def test_result_log_rows(finished, tmp_path):
    prefix = tmp_path / "log"
    save_log(finished, prefix)
    lines = (tmp_path / "log.result").read_text().splitlines()
    assert lines[0] == "Allocation Rate,Utilization Rate,s1 Utilization Rate,s1 Allocation"
    assert len(lines) == finished.progress_time_slot + 1
    for row in lines[1:]:
        cells = row.split(",")
        assert len(cells) == 4
        assert 0.0 <= float(cells[0]) <= 100.0
        assert not math.isnan(float(cells[1]))


def test_tasklog_lists_every_scheduled_job(finished, tmp_path):
    prefix = tmp_path / "tasks"
    save_waiting_time(finished, prefix)
    lines = (tmp_path / "tasks.tasklog").read_text().splitlines()
    assert lines[0].startswith("Index,job id,Accumulated Age")
    assert lines[0].endswith("server_name, s1_accelerator_count, s1_reserved_count")
    assert len(lines) == len(finished.scheduled_history) + 1
    pods = sorted(row.split(",")[11] for row in lines[1:])
    assert pods == ["p1", "p2"]
    first = lines[1].split(",")
    assert first[0] == "0"
    assert first[4] == "0"