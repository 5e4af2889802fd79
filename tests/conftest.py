from __future__ import annotations
import asyncio
from typing import Any, AsyncIterator, Callable

import pytest

from feeds.base import PriceFeedClient
from feeds.normalizer import extract_price

_CLOSE = object()


class ManualClock:
    """Settable epoch-ms clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, delta_ms: int) -> int:
        self.now += delta_ms
        return self.now


class ScriptedFeed(PriceFeedClient):
    """
    In-memory feed. Payloads pushed with push() are streamed in order;
    close() ends the stream cleanly, fail() makes it raise.
    The first `fail_startups` startup() calls raise ConnectionRefusedError
    (pass a negative number to fail forever). on_startup runs at the start of
    every startup() call.
    """

    def __init__(
        self,
        name: str = "scripted",
        configured: bool = True,
        fail_startups: int = 0,
        on_startup: Callable[[], None] | None = None,
    ) -> None:
        self._name = name
        self._configured = configured
        self._fail_startups = fail_startups
        self._on_startup = on_startup
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.startups = 0
        self.shutdowns = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured

    def push(self, payload: Any) -> None:
        self._queue.put_nowait(payload)

    def close(self) -> None:
        self._queue.put_nowait(_CLOSE)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    async def startup(self) -> None:
        self.startups += 1
        if self._on_startup is not None:
            self._on_startup()
        if self._fail_startups < 0 or self.startups <= self._fail_startups:
            raise ConnectionRefusedError(f"{self._name} refused")

    async def shutdown(self) -> None:
        self.shutdowns += 1

    async def stream(self) -> AsyncIterator[Any]:  # type: ignore[override]
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def parse_tick(self, payload: Any) -> float | None:
        return extract_price(payload)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
