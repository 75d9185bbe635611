"""Command line driver running a grid of scheduler experiments."""

from __future__ import annotations

import argparse
import re
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .emulator import JobEmulator, SchedulerOptions
from .enums import SchedulerType
from .results import candidate_file_name, save_all
from .utility import elapsed_time

_INT = re.compile(r"\s*([+-]?\d+)")
_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_SCHEDULER_SLOTS = 4


@dataclass
class ExperimentConfig:
    """Ranges (start, end, step) of the hyper-parameters to sweep."""

    thread_total: int = 4
    alpha: list[float] = field(default_factory=lambda: [0.13889, 0.83889, 0.1])
    beta: list[float] = field(default_factory=lambda: [70.0, 95.0, 5.0])
    d: list[int] = field(default_factory=lambda: [100000, 1000000, 100000])
    w: list[int] = field(default_factory=lambda: [20, 100, 10])
    schedulers: list[bool] = field(default_factory=lambda: [True, False, False, False])


def _parse_numbers(line: str, target: list, pattern: re.Pattern, convert, kind: str) -> None:
    tokens = line.split(",")
    for index in range(len(target)):
        if index >= len(tokens):
            break
        match = pattern.match(tokens[index])
        if match is None:
            print(f"Invalid argument for {kind}: {tokens[index]}", file=sys.stderr)
            continue
        target[index] = convert(match.group(1))


def _parse_flags(line: str, target: list[bool]) -> None:
    tokens = line.split(",")
    for index in range(len(target)):
        target[index] = index < len(tokens) and tokens[index] == "true"


def parse_config(path: str | Path) -> ExperimentConfig:
    """Read the six-line experiment configuration file."""
    config = ExperimentConfig()
    with Path(path).open(encoding="utf-8") as handle:
        lines = [line.rstrip("\r\n") for line in handle]
    for number, line in enumerate(lines):
        if number == 0:
            match = _INT.match(line)
            config.thread_total = int(match.group(1)) if match else 0
        elif number == 1:
            _parse_numbers(line, config.alpha, _FLOAT, float, "double")
        elif number == 2:
            _parse_numbers(line, config.beta, _FLOAT, float, "double")
        elif number == 3:
            _parse_numbers(line, config.d, _INT, int, "int")
        elif number == 4:
            _parse_numbers(line, config.w, _INT, int, "int")
        elif number == 5:
            _parse_flags(line, config.schedulers)
        else:
            print(f"Unexpected line in config file: {line}", file=sys.stderr)
    return config


def _int_range(bounds: list[int]) -> range:
    start, end, step = bounds
    if step <= 0:
        raise ValueError(f"range step must be positive: {bounds}")
    return range(start, end + 1, step)


def _float_range(bounds: list[float]) -> list[float]:
    start, end, step = bounds
    if step <= 0:
        raise ValueError(f"range step must be positive: {bounds}")
    values = []
    value = start
    while value <= end:
        values.append(value)
        value += step
    return values


def build_search_space(config: ExperimentConfig) -> list[SchedulerOptions]:
    """Expand the configured ranges into one option set per experiment."""
    enabled = [
        SchedulerType(index)
        for index, chosen in enumerate(config.schedulers[:_SCHEDULER_SLOTS])
        if chosen
    ]
    d_values = _int_range(config.d)
    w_values = _int_range(config.w)
    alphas = _float_range(config.alpha)
    betas = _float_range(config.beta)

    space = [
        SchedulerOptions(
            scheduler=kind,
            preemption=True,
            with_flavor=False,
            until_finish=True,
            prevent_starvation=False,
            starvation_upper=0.0,
            age_weight=0.0,
            dp_execution_maximum=d,
            preemption_window=w,
        )
        for kind in enabled
        for d in d_values
        for w in w_values
    ]
    space.extend(
        SchedulerOptions(
            scheduler=kind,
            preemption=True,
            with_flavor=False,
            until_finish=True,
            prevent_starvation=True,
            starvation_upper=beta,
            age_weight=alpha,
            dp_execution_maximum=d,
            preemption_window=w,
        )
        for kind in enabled
        for alpha in alphas
        for beta in betas
        for d in d_values
        for w in w_values
    )
    return space


def _run_experiment(
    index: int, total: int, options: SchedulerOptions, task_file: str, server_file: str
) -> str:
    emulator = JobEmulator()
    emulator.load_jobs(task_file, options)
    emulator.load_servers(server_file)
    emulator.build_job_queue()
    emulator.run()
    prefix = f"{candidate_file_name(emulator)}_{index}"
    saved = save_all(emulator, prefix)
    state = "saved" if saved else "not saved"
    return (
        f"[{index + 1}/{total}] {emulator.scheduling_name} finished at step "
        f"{emulator.done_step}, results {state} as {prefix}"
    )


def main(argv: list[str] | None = None) -> int:
    """Run every experiment of the configured search space."""
    parser = argparse.ArgumentParser(prog="gpusched", exit_on_error=False)
    parser.add_argument("task_file_name")
    parser.add_argument("server_file_name")
    parser.add_argument("config_file")
    try:
        args = parser.parse_args(argv)
    except (argparse.ArgumentError, SystemExit):
        print(
            "Usage: gpusched <task_file_name> <server_file_name> <config_file>",
            file=sys.stderr,
        )
        return 1

    try:
        config = parse_config(args.config_file)
    except OSError:
        print(f"Error opening config file: {args.config_file}", file=sys.stderr)
        return 1

    space = build_search_space(config)
    total = len(space)
    print(f"{total} count of experiments starting...")
    if config.thread_total < 1:
        print("All Experiment has been failed!")
        return 0

    started = datetime.now()
    with ThreadPoolExecutor(max_workers=config.thread_total) as pool:
        futures = [
            pool.submit(
                _run_experiment, index, total, options, args.task_file_name, args.server_file_name
            )
            for index, options in enumerate(space)
        ]
        for future in as_completed(futures):
            try:
                print(future.result())
            except (OSError, ValueError, IndexError) as error:
                print(f"Experiment failed: {error}")

    print(f"{total} experiments has been finished (Takes - {elapsed_time(started)})")
    return 0


if __name__ == "__main__":
    sys.exit(main())