"""Minute-by-minute emulator of GPU job scheduling policies on a server pool."""

__version__ = "0.1.0"