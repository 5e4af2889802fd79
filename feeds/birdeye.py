"""
Birdeye price snapshot adapter — secondary live source.

Endpoint: public-api.birdeye.so/defi/price?address=<mint>
Auth:     X-API-KEY header (required; the source is skipped without it)
Response: {"success": true, "data": {"value": 187.42, "priceChange24h": -1.3, ...}}

A polling source: each poll is one snapshot. Any HTTP or transport error ends
the stream, which the oracle treats as a lost connection.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, AsyncIterator

import aiohttp

from feeds.base import PriceFeedClient
from feeds.normalizer import extract_change_24h, extract_price

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://public-api.birdeye.so"
# Wrapped SOL
DEFAULT_MINT = "So11111111111111111111111111111111111111112"


class BirdeyeSnapshotClient(PriceFeedClient):
    """Polls the Birdeye price endpoint at a fixed interval."""

    def __init__(
        self,
        api_key: str,
        mint: str = DEFAULT_MINT,
        base_url: str = DEFAULT_BASE_URL,
        poll_interval_s: float = 1.0,
    ) -> None:
        self._api_key = api_key
        self._mint = mint
        self._url = f"{base_url.rstrip('/')}/defi/price"
        self._poll_interval_s = poll_interval_s
        self._session: aiohttp.ClientSession | None = None
        self._warmup: Any = None

    @property
    def name(self) -> str:
        return "birdeye"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def startup(self) -> None:
        """
        Create the session and fetch one snapshot, so a bad key or a dead
        endpoint fails here rather than on the first tick.
        """
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=4, connect=2),
            connector=aiohttp.TCPConnector(limit=2, keepalive_timeout=30),
            headers={"X-API-KEY": self._api_key, "x-chain": "solana", "Accept": "application/json"},
        )
        try:
            self._warmup = await self._fetch_snapshot()
        except Exception:
            await self.shutdown()
            raise
        log.info("%s snapshot client initialized", self.name)

    async def shutdown(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.close()

    async def stream(self) -> AsyncIterator[Any]:  # type: ignore[override]
        assert self._session, "Call startup() first"
        if self._warmup is not None:
            warmup, self._warmup = self._warmup, None
            yield warmup
            await asyncio.sleep(self._poll_interval_s)
        while True:
            poll_start = time.monotonic()
            yield await self._fetch_snapshot()
            elapsed = time.monotonic() - poll_start
            await asyncio.sleep(max(0.0, self._poll_interval_s - elapsed))

    async def _fetch_snapshot(self) -> Any:
        async with self._session.get(self._url, params={"address": self._mint}) as resp:  # type: ignore[union-attr]
            resp.raise_for_status()
            return await resp.json(content_type=None)

    def parse_tick(self, payload: Any) -> float | None:
        if isinstance(payload, dict) and payload.get("success") is False:
            return None
        return extract_price(payload)

    def change_24h(self, payload: Any) -> float | None:
        return extract_change_24h(payload)
