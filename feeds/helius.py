"""
Helius WebSocket price stream — primary live source.

Opens one websocket per connection attempt (API key embedded in the URL),
sends the configured subscription message, and yields every decoded message.
Reconnection is NOT handled here: when the socket drops, stream() ends or
raises and the oracle decides what happens next.
"""

from __future__ import annotations
import json
import logging
from typing import Any, AsyncIterator

import websockets

from feeds.base import PriceFeedClient
from feeds.normalizer import extract_price

log = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://atlas-mainnet.helius-rpc.com/?api-key={api_key}"


class HeliusStreamClient(PriceFeedClient):
    """
    Usage:
        client = HeliusStreamClient(api_key, subscribe_message={...})
        await client.startup()
        async for payload in client.stream():
            ...
    """

    PING_INTERVAL_S = 20
    OPEN_TIMEOUT_S = 10

    def __init__(
        self,
        api_key: str,
        ws_url: str = DEFAULT_WS_URL,
        subscribe_message: dict[str, Any] | None = None,
    ) -> None:
        self._api_key = api_key
        self._ws_url = ws_url
        self._subscribe_message = subscribe_message
        self._ws = None

    @property
    def name(self) -> str:
        return "helius"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def startup(self) -> None:
        self._ws = await websockets.connect(
            self._ws_url.format(api_key=self._api_key),
            ping_interval=self.PING_INTERVAL_S,
            ping_timeout=10,
            open_timeout=self.OPEN_TIMEOUT_S,
        )
        if self._subscribe_message:
            await self._ws.send(json.dumps(self._subscribe_message))
        log.info("%s websocket connected", self.name)

    async def shutdown(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    async def stream(self) -> AsyncIterator[Any]:  # type: ignore[override]
        assert self._ws is not None, "Call startup() first"
        async for raw in self._ws:
            try:
                yield json.loads(raw)
            except json.JSONDecodeError:
                log.debug("%s malformed message dropped: %.80s", self.name, raw)

    def parse_tick(self, payload: Any) -> float | None:
        return extract_price(payload)
