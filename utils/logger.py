"""
Logging setup.
Call setup_logging() once at startup in main.py.
"""

from __future__ import annotations
import logging
import sys
import time

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("websockets", "aiohttp.access")


class _EpochMsFormatter(logging.Formatter):
    """Stamps every record with epoch milliseconds, the unit price ticks are timed in."""

    def format(self, record: logging.LogRecord) -> str:
        record.epoch_ms = time.time_ns() // 1_000_000
        return super().format(record)


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        _EpochMsFormatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s | ms=%(epoch_ms)d | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()
    root.addHandler(handler)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
