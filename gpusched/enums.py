"""Enumerations shared across the scheduler emulator."""

from __future__ import annotations

from enum import Enum, IntEnum


class AcceleratorType(IntEnum):
    """Kinds of accelerator a server can host or a job can request."""

    CPU = 0
    A100 = 1
    A30 = 2
    H100 = 3
    H200 = 4
    V100 = 5
    L4 = 6
    L40 = 7
    B200 = 8
    ANY = 9


class SchedulerType(IntEnum):
    """Available scheduling policies."""

    COMPACT = 0
    FARE_SHARE = 1
    MOSTALLOCATED = 2
    MCTS = 3
    ROUND_ROBIN = 4


class EmulationStatus(Enum):
    """Run state of an emulation."""

    START = "start"
    PAUSE = "pause"
    STOP = "stop"


_TYPES_BY_NAME = {
    "a100": AcceleratorType.A100,
    "a30": AcceleratorType.A30,
    "cpu": AcceleratorType.CPU,
}

_NAMES_BY_TYPE = {
    AcceleratorType.ANY: "any",
    AcceleratorType.CPU: "CPU",
    AcceleratorType.V100: "V100",
    AcceleratorType.A100: "A100",
    AcceleratorType.A30: "A30",
    AcceleratorType.H100: "H100",
    AcceleratorType.L4: "L4",
    AcceleratorType.L40: "L40",
    AcceleratorType.B200: "B200",
}


def accelerator_type_from_name(name: str) -> AcceleratorType:
    """Map a server or job file accelerator name to its type; unknown names mean CPU."""
    return _TYPES_BY_NAME.get(name.lower(), AcceleratorType.CPU)


def accelerator_name(kind: AcceleratorType) -> str:
    """Return the display name of an accelerator type; unlisted types read as CPU."""
    return _NAMES_BY_TYPE.get(kind, "CPU")