"""
Abstract interface for upstream price feed clients.

All feed adapters (Helius stream, Birdeye snapshots, synthetic walk) implement
this interface. The price oracle depends only on this abstract class, so
swapping a provider is a one-line change in main.py.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class PriceFeedClient(ABC):
    """
    Base class for all price providers.

    Lifecycle, driven by the oracle for one connection attempt:
        await client.startup()          # open transport; raises on failure
        async for payload in client.stream():
            price = client.parse_tick(payload)
        await client.shutdown()         # always called, even after errors

    stream() returns normally when the upstream closes cleanly and raises on
    transport errors; either way the oracle treats the connection as lost.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name for logging."""
        ...

    @property
    def is_configured(self) -> bool:
        """False when a required credential is missing; the oracle skips the source."""
        return True

    @abstractmethod
    async def startup(self) -> None:
        """Open the connection. Raises on failure."""
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        """Close the connection. Must be safe to call more than once."""
        ...

    @abstractmethod
    def stream(self) -> AsyncIterator[Any]:
        """
        Async generator yielding raw payloads as they arrive.
        Must yield control back to the event loop between payloads.
        """
        ...

    @abstractmethod
    def parse_tick(self, payload: Any) -> float | None:
        """Extract one finite positive price from a payload, or None to drop it."""
        ...

    def change_24h(self, payload: Any) -> float | None:
        """24h change carried by snapshot payloads, if the provider sends one."""
        return None
