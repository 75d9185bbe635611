"""Summary statistics and result files for a finished emulation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from .enums import accelerator_name
from .utility import format_day_time, format_timestamp

if TYPE_CHECKING:
    from .emulator import JobEmulator


@dataclass(frozen=True)
class Statistics:
    """Distribution summary of a series of percentages."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    mid: float = 0.0
    sd: float = 0.0
    p_25: float = 0.0
    p_75: float = 0.0
    p_95: float = 0.0


def calculate_statistics(values: list[float]) -> Statistics:
    """Summarise values; percentiles pick the element at the truncated rank."""
    size = len(values)
    if size == 0:
        return Statistics()
    ordered = sorted(values)
    avg = sum(ordered) / size
    sd = math.sqrt(sum((value - avg) ** 2 for value in values) / size)

    def pick(fraction: float) -> float:
        return ordered[min(int(size * fraction), size - 1)]

    return Statistics(
        min=ordered[0],
        max=ordered[-1],
        avg=avg,
        mid=pick(0.50),
        sd=sd,
        p_25=pick(0.25),
        p_75=pick(0.75),
        p_95=pick(0.95),
    )


def _num(value: float | int) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return f"{value:g}"


def _prefix(emulator: JobEmulator, prefix: str | Path | None) -> str:
    return str(prefix) if prefix is not None else candidate_file_name(emulator)


def candidate_file_name(emulator: JobEmulator) -> str:
    """Build a descriptive file name body from the run settings and the current time."""
    accelerators = sum(server.accelerator_count for server in emulator.servers)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    options = emulator.options
    return (
        f"{emulator.scheduling_name}_{stamp}"
        f"_job({emulator.total_job_count})"
        f"_server({len(emulator.servers)})"
        f"_accelerator({accelerators})"
        f"_elapsed({emulator.done_step})"
        f"_flavor({str(bool(options.with_flavor)).lower()})"
        f"_starvation({str(bool(options.prevent_starvation)).lower()})"
        f"_preemtion({str(bool(options.preemption)).lower()})"
    )


def save_waiting_time(emulator: JobEmulator, prefix: str | Path | None = None) -> bool:
    """Write the per-job scheduling history to '<prefix>.tasklog'."""
    if not emulator.saving_possible:
        return False
    body = _prefix(emulator, prefix)
    server_columns = ", ".join(
        f"server_name, {server.name}_accelerator_count, {server.name}_reserved_count"
        for server in emulator.servers
    )
    lines = [
        "Index,job id,Accumulated Age,Start Step,Following Gap,Required Accelerator Count,"
        "Utilization,Preemption,Flaver Index,Flaver,User Tem,Pod Name,Name Space,Project,"
        + server_columns
    ]
    history = emulator.scheduled_history
    previous = history[0].emulation_step if history else 0
    for index, record in enumerate(history):
        job = record.job
        lines.append(
            ",".join(
                [
                    str(index),
                    job.job_id,
                    str(record.accumulated_age),
                    str(record.emulation_step),
                    str(record.emulation_step - previous),
                    str(job.accelerator_count),
                    _num(job.utilization),
                    str(bool(job.preemptible)).lower(),
                    str(int(job.flavor)),
                    accelerator_name(job.flavor),
                    job.user_team,
                    job.pod_name,
                    job.namespace,
                    job.project_name,
                    record.server_status,
                ]
            )
        )
        previous = record.emulation_step
    Path(f"{body}.tasklog").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return True


def save_meta(emulator: JobEmulator, prefix: str | Path | None = None) -> bool:
    """Write the run settings and summary statistics to '<prefix>.meta'."""
    if not emulator.saving_possible:
        return False
    body = _prefix(emulator, prefix)
    options = emulator.options
    sample = emulator.stats_sample_size
    allocation = calculate_statistics(emulator.allocation_rate[:sample])
    utilization = calculate_statistics(emulator.utilization_rate[:sample])
    emulated = emulator.done_step + 1
    elapsed_ms = int(emulator.elapsed_time / timedelta(milliseconds=1))
    started = format_timestamp(emulator.job_start) if emulator.job_start is not None else ""

    rows: list[tuple[str, str]] = [
        ("Item", "Contents"),
        ("start time", started),
        ("scheduler index", str(int(options.scheduler))),
        ("scheduler name", emulator.scheduling_name),
        ("Total Job", str(emulator.total_job_count)),
        ("Total Duration(Expected)", str(emulator.total_time_slot)),
        ("Total Emulation minutes", str(emulated)),
        ("Total Emulation Time", format_day_time(emulated)),
        ("Expriment taken(msec)", str(elapsed_ms)),
        ("Expriment taken", emulator.elapsed_time_string()),
        ("preemption enabling", str(bool(options.preemption)).lower()),
        ("scheduling with flavor", str(bool(options.with_flavor)).lower()),
        ("perform until finish", str(bool(options.until_finish)).lower()),
        ("starvation prevention", str(bool(options.prevent_starvation)).lower()),
        ("alpha", _num(float(options.age_weight) if options.prevent_starvation else 0.0)),
        ("beta", _num(float(options.starvation_upper) if options.prevent_starvation else 0.0)),
        ("w", str(options.preemption_window if options.preemption else 0)),
        ("d", str(options.dp_execution_maximum if options.preemption else 0)),
        ("Adjust task counts", str(emulator.adjust_count)),
        ("Ajust task taken time(min)", str(emulator.adjust_overhead_time)),
    ]
    for label, stats in (("Allocation", allocation), ("Utilization", utilization)):
        rows.extend(
            [
                (f"{label} min", _num(stats.min)),
                (f"{label} max", _num(stats.max)),
                (f"{label} avg", _num(stats.avg)),
                (f"{label} mid", _num(stats.mid)),
                (f"{label} std", _num(stats.sd)),
                (f"{label} 25 percentile", _num(stats.p_25)),
                (f"{label} 75 percentile", _num(stats.p_75)),
                (f"{label} 95 percentile", _num(stats.p_95)),
            ]
        )
    rows.append(("job file", emulator.job_file_name))
    rows.append(("save prefix", body))
    text = "\n".join(f"{key},{value}" for key, value in rows)
    Path(f"{body}.meta").write_text(text, encoding="utf-8")
    return True


def save_log(emulator: JobEmulator, prefix: str | Path | None = None) -> bool:
    """Write the per-minute allocation and utilization log to '<prefix>.result'."""
    if not emulator.saving_possible:
        return False
    body = _prefix(emulator, prefix)
    header = "Allocation Rate,Utilization Rate" + "".join(
        f",{server.name} Utilization Rate,{server.name} Allocation" for server in emulator.servers
    )
    lines = [header]
    for minute in range(max(emulator.progress_time_slot, 0)):
        cells = [_num(emulator.allocation_rate[minute]), _num(emulator.utilization_rate[minute])]
        for util_log, alloc_log in zip(
            emulator.server_utilization_log, emulator.server_allocation_log
        ):
            cells.append(_num(util_log[minute]))
            cells.append(_num(alloc_log[minute]))
        lines.append(",".join(cells))
    Path(f"{body}.result").write_text("\n".join(lines) + "\n", encoding="utf-8")
    return True


def save_all(
    emulator: JobEmulator, prefix: str | Path | None = None, with_log: bool = True
) -> bool:
    """Write the meta, task log and, if asked, the rate log; True if all succeeded."""
    body = _prefix(emulator, prefix)
    meta_ok = save_meta(emulator, body)
    waiting_ok = save_waiting_time(emulator, body)
    log_ok = save_log(emulator, body) if with_log else True
    return meta_ok and waiting_ok and log_ok