# gpusched

A minute-by-minute emulator for scheduling GPU jobs onto a pool of servers.
It replays a job trace against a server list under one of several placement
policies, with optional starvation prevention, and records per-minute
allocation and utilization rates that can be written out as result files.

## Installing

```
pip install .
```

For running the tests: `pip install .[test]` and then `pytest`.

## Input files

A server list is a CSV file with one server per line, as
`name,accelerator_count,accelerator_type`:

```
node01,8,a100
node02,4,a30
```

Accelerator names are matched without regard to case; `a100`, `a30` and `cpu`
are recognised and any other name is taken as CPU.

A job trace is a CSV file whose columns are pod name, pod type (`task`, or
anything else for an instance), project, namespace, user team, start time,
finish time (`YYYY-mm-dd HH:MM:SS`) and accelerator count. Four further
columns may follow: computation level (default 1), GPU utilization (default
50), accelerator flavor (default CPU) and a preemption flag (`y` for true).
A header line that starts with `pod_name,pod_type` is skipped, as are blank
lines.

## Scheduling policies

The policies live in `gpusched.schedulers` and `gpusched.mcts`, and are
chosen with `gpusched.enums.SchedulerType`:

- `COMPACT` (`CompactScheduler`): the first server with enough free slots.
- `MOSTALLOCATED` (`MostAllocatedScheduler`): best fit among the servers of
  the smallest size that can hold the request, falling back to the first
  server with room unless built with `strict=True`.
- `ROUND_ROBIN` (`RoundRobinScheduler`): walks the servers in a circle,
  resuming after the last placement.
- `MCTS` (`MctsScheduler`): Monte Carlo tree search over the servers, scored
  by the best simulated allocation of the jobs still waiting.
- `FARE_SHARE` (`FareShareScheduler`): accepts every job for server 0 without
  reserving any slot.

With `with_flavor` set, jobs wait in one queue per accelerator type and are
only placed on servers of that type; otherwise all jobs share one queue.

## Using the library

```python
from gpusched.emulator import JobEmulator, SchedulerOptions
from gpusched.enums import SchedulerType
from gpusched.results import save_all

emulator = JobEmulator()
emulator.load_jobs("jobs.csv", SchedulerOptions(scheduler=SchedulerType.COMPACT,
                                                until_finish=True))
emulator.load_servers("servers.csv")
emulator.build_job_queue()
emulator.run()

save_all(emulator, "experiment", True)
```

`JobEmulator.run()` runs to the end in the calling thread; `start()` runs in a
background thread and returns it, and `pause()` and `stop()` control it. An
`on_step` callable given to `JobEmulator` is called with the emulator after
every step. Without `until_finish` the run ends at the last minute of the
trace; with it, the run ends once every job has been scheduled and has
finished.

`SchedulerOptions` also holds `prevent_starvation` with `age_weight` (alpha)
and `starvation_upper` (beta), which move a long-waiting job to the head of
its queue while the allocation rate is at or below beta.

`save_all` writes `experiment.meta` (run settings and summary statistics),
`experiment.tasklog` (when each job was scheduled and the server state at that
moment) and, when asked, `experiment.result` (per-minute allocation and
utilization rates). `gpusched.results.calculate_statistics` gives the
min, max, mean, standard deviation and percentiles of any series.

## Running a parameter sweep

```
gpusched <task_file> <server_file> <config_file>
```

The config file has up to six lines:

1. number of worker threads
2. alpha range: `start,end,step`
3. beta range: `start,end,step`
4. defragmentation execution maximum (`d`) range: `start,end,step`
5. preemption window (`w`) range: `start,end,step`
6. which schedulers to enable: four `true`/`false` values, for compact,
   fare share, most-allocated and MCTS in that order

Lines left out keep their defaults (4 threads; alpha 0.13889 to 0.83889 by
0.1; beta 70 to 95 by 5; d 100000 to 1000000 by 100000; w 20 to 100 by 10;
compact only). Every run of the sweep has preemption on and runs until all
jobs finish: first every d and w combination without starvation prevention,
then every alpha, beta, d and w combination with it. Each run is emulated on
the worker threads, its three result files are saved under a name describing
the run, and a line is printed as each one finishes.

## What it does not do

- Pool defragmentation is only a hook: `JobEmulator` calls a `defragmenter`
  callable, if one is given, when preemption is on and more jobs are waiting
  than the preemption window allows. The package ships no defragmenter, so
  the sweep's `d` and `w` values only label the runs and the adjust counts
  stay at zero.
- There is no graphical view of the cluster; progress is only available
  through the library, the printed lines and the result files.