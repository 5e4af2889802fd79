"""
Oracle Agent — Price Ingestion.

Owns exactly one upstream price source at a time and turns its payloads into a
single authoritative current price plus a bounded look-back history.

Source priority (decided once per start()):
  1. Primary   — Helius stream, needs HELIUS_API_KEY
  2. Secondary — Birdeye snapshots, needs BIRDEYE_API_KEY
  3. Synthetic — random walk, always available

Phases:
  IDLE -> CONNECTING -> CONNECTED -> (transport lost) -> RECONNECTING -> CONNECTED
                                                                     `-> SYNTHETIC

A lost live connection is retried on a cancellable timer. After
max_reconnect_attempts consecutive failed attempts the oracle pins itself to the
synthetic source for good and emits one "fallback" notice.

All tick handling runs synchronously on the event loop inside one feed task, so
no two ticks are ever processed concurrently.
"""

from __future__ import annotations
import asyncio
import dataclasses
import logging
from typing import Any, Callable

from feeds.base import PriceFeedClient
from feeds.normalizer import to_price
from models.events import FeedStatus, OracleEvent, PriceUpdate
from models.state import (
    DEFAULT_VOLATILITY_WINDOW,
    FeedPhase,
    HighLow,
    OracleState,
    PriceHistoryBuffer,
    PricePoint,
    Source,
)
from utils.circuit_breaker import CircuitBreaker
from utils.clock import now_ms

log = logging.getLogger(__name__)

OracleListener = Callable[[OracleEvent], None]


class PriceOracle:
    """
    Usage:
        oracle = PriceOracle(synthetic=SyntheticFeedClient(), primary=helius, secondary=birdeye)
        unsubscribe = oracle.subscribe(on_event)
        await oracle.start()
        ...
        await oracle.stop()
    """

    def __init__(
        self,
        synthetic: PriceFeedClient,
        primary: PriceFeedClient | None = None,
        secondary: PriceFeedClient | None = None,
        history: PriceHistoryBuffer | None = None,
        reconnect_delay_s: float = 3.0,
        max_reconnect_attempts: int = 5,
        volatility_window: int = DEFAULT_VOLATILITY_WINDOW,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._feeds: dict[Source, PriceFeedClient | None] = {
            Source.PRIMARY: primary,
            Source.SECONDARY: secondary,
            Source.SYNTHETIC: synthetic,
        }
        self._clock = clock
        self._history = history or PriceHistoryBuffer(clock=clock)
        self._reconnect_delay_s = reconnect_delay_s
        self._max_attempts = max_reconnect_attempts
        self._volatility_window = volatility_window

        self._state = OracleState()
        self._phase = FeedPhase.IDLE
        self._running = False
        self._fallen_back = False
        self._active_feed: PriceFeedClient | None = None
        self._breaker = CircuitBreaker(name="idle", failure_threshold=max_reconnect_attempts)
        self._task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._listeners: list[OracleListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            log.warning("Oracle already running on %s", self._state.active_source.value)
            return
        self._running = True
        self._fallen_back = False
        source, feed = self._select_source()
        log.info("Oracle starting on %s source (%s)", source.value, feed.name)
        self._activate(source, feed)

    async def stop(self) -> None:
        """Cancel any pending reconnect, close the active transport, go IDLE. Idempotent."""
        self._running = False
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        was_connected = self._state.connected
        self._state.connected = False
        self._active_feed = None
        if self._phase is not FeedPhase.IDLE:
            log.info("Oracle stopped")
        self._phase = FeedPhase.IDLE
        if was_connected:
            self._emit(FeedStatus(
                connected=False,
                source=self._state.active_source,
                timestamp_ms=self._clock(),
                reason="stopped",
            ))

    def _select_source(self) -> tuple[Source, PriceFeedClient]:
        for source in (Source.PRIMARY, Source.SECONDARY):
            feed = self._feeds[source]
            if feed is None or not feed.is_configured:
                log.info("Oracle: %s source has no credentials — skipping", source.value)
                continue
            return source, feed
        return Source.SYNTHETIC, self._feeds[Source.SYNTHETIC]  # type: ignore[return-value]

    def _activate(self, source: Source, feed: PriceFeedClient) -> None:
        self._state.active_source = source
        self._active_feed = feed
        self._breaker = CircuitBreaker(name=feed.name, failure_threshold=self._max_attempts)
        self._launch(feed)

    def _launch(self, feed: PriceFeedClient, phase: FeedPhase = FeedPhase.CONNECTING) -> None:
        if self._state.active_source is Source.SYNTHETIC:
            phase = FeedPhase.SYNTHETIC
        self._phase = phase
        self._task = asyncio.get_running_loop().create_task(
            self._run_feed(feed), name=f"oracle-{feed.name}"
        )

    async def _run_feed(self, feed: PriceFeedClient) -> None:
        """One connection attempt: open, consume until the stream ends, close."""
        reason = "stream closed"
        try:
            await feed.startup()
            self._handle_open(feed)
            async for payload in feed.stream():
                self._handle_payload(feed, payload)
        except asyncio.CancelledError:
            await self._close_feed(feed)
            raise
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        await self._close_feed(feed)
        if self._running and self._active_feed is feed:
            self._handle_transport_lost(feed, reason)

    async def _close_feed(self, feed: PriceFeedClient) -> None:
        try:
            await feed.shutdown()
        except Exception as exc:
            log.warning("Oracle: error closing %s: %s", feed.name, exc)

    # ------------------------------------------------------------------
    # Event handlers: the only writers of OracleState
    # ------------------------------------------------------------------

    def _handle_open(self, feed: PriceFeedClient) -> None:
        self._breaker.record_success()
        self._state.connected = True
        if self._state.active_source is not Source.SYNTHETIC:
            self._phase = FeedPhase.CONNECTED
        log.info("Oracle connected to %s", feed.name)
        self._emit(FeedStatus(
            connected=True,
            source=self._state.active_source,
            timestamp_ms=self._clock(),
        ))

    def _handle_payload(self, feed: PriceFeedClient, payload: Any) -> None:
        price = feed.parse_tick(payload)
        if price is None:
            log.debug("Oracle: dropped unparseable tick from %s: %.80r", feed.name, payload)
            return
        change = feed.change_24h(payload)
        if change is not None:
            self._state.change_24h = change
        self.record_tick(price)

    def record_tick(self, price: float, timestamp_ms: int | None = None) -> PriceUpdate | None:
        """
        Accept one price: update state, append to history, notify listeners.
        Anything that is not a finite positive number is dropped.
        """
        checked = to_price(price)
        if checked is None:
            log.debug("Oracle: rejected non-positive/non-finite price %r", price)
            return None
        ts = timestamp_ms if timestamp_ms is not None else self._clock()
        self._state.apply_tick(checked, ts)
        self._history.add(checked, ts)
        update = PriceUpdate(price=checked, timestamp_ms=ts, source=self._state.active_source)
        self._emit(update)
        return update

    def _handle_transport_lost(self, feed: PriceFeedClient, reason: str) -> None:
        self._state.connected = False
        self._emit(FeedStatus(
            connected=False,
            source=self._state.active_source,
            timestamp_ms=self._clock(),
            reason=reason,
        ))

        if self._state.active_source is Source.SYNTHETIC:
            # Should not happen; keep the walk going without touching the breaker
            log.warning("Oracle: synthetic feed ended (%s) — restarting", reason)
            self._schedule_reconnect()
            return

        if self._breaker.record_failure(reason):
            self._fall_back(feed)
            return

        self._phase = FeedPhase.RECONNECTING
        log.warning(
            "Oracle: %s connection lost (%s) — retry %d/%d in %.1fs, %d left before fallback",
            feed.name, reason, self._breaker.failures, self._max_attempts, self._reconnect_delay_s,
            self._breaker.remaining,
        )
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            self._reconnect_delay_s, self._fire_reconnect
        )

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if not self._running or self._active_feed is None:
            return
        log.info("Oracle: reconnecting to %s", self._active_feed.name)
        # Stay RECONNECTING until the retry opens or fails
        self._launch(self._active_feed, FeedPhase.RECONNECTING)

    def _fall_back(self, feed: PriceFeedClient) -> None:
        log.warning(
            "Oracle: %s failed %d consecutive attempts (last: %s) — switching to synthetic feed permanently",
            feed.name, self._breaker.failures, self._breaker.reason,
        )
        if not self._fallen_back:
            self._fallen_back = True
            self._emit(FeedStatus(
                connected=False,
                source=Source.SYNTHETIC,
                timestamp_ms=self._clock(),
                reason=f"{feed.name} unavailable after {self._breaker.failures} attempts",
                type="fallback",
            ))
        self._activate(Source.SYNTHETIC, self._feeds[Source.SYNTHETIC])  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, listener: OracleListener) -> Callable[[], None]:
        """Register a callback for PriceUpdate and FeedStatus events. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: OracleEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                log.exception("Oracle listener %r failed on %s event", listener, event.type)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def phase(self) -> FeedPhase:
        return self._phase

    @property
    def active_source(self) -> Source:
        return self._state.active_source

    @property
    def has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def reconnect_failures(self) -> int:
        return self._breaker.failures

    def get_state(self) -> OracleState:
        return dataclasses.replace(self._state)

    def is_connected(self) -> bool:
        return self._state.connected

    def get_current_price(self) -> float | None:
        return self._state.current_price

    def get_price_history(self) -> list[PricePoint]:
        return self._history.get_history()

    def get_price_at(self, timestamp_ms: int) -> PricePoint | None:
        return self._history.get_price_at(timestamp_ms)

    def get_volatility(self) -> float:
        return self._history.get_volatility(self._volatility_window)

    def get_high_low(self) -> HighLow | None:
        return self._history.get_high_low()
