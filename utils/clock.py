"""
Wall-clock helpers.

Components that filter or expire by time take a `clock` callable so tests can
drive time explicitly.
"""

from __future__ import annotations
import time


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000
