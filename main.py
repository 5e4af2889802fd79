"""
PulseTrade core — Main Entrypoint

Boots the asyncio event loop, wires the price oracle, the revenue ledger and the
stats surface together, and runs until SIGINT/SIGTERM is received.

Startup sequence:
  1. Load settings from environment, oracle tunables from config/oracle.yaml
  2. Build feed clients (primary/secondary only matter if their keys are set)
  3. Build oracle, ledger, ledger agent, stats server — explicitly, no globals
  4. Start oracle, agent task and HTTP server
  5. Wait for shutdown signal

Shutdown sequence:
  1. Stop the oracle (cancels reconnect timer, closes transport)
  2. Cancel agent tasks
  3. Close the HTTP server
"""

from __future__ import annotations
import asyncio
import logging
import signal
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env before importing settings (settings reads env vars at import time)
load_dotenv()

from agents.ledger import LedgerAgent
from agents.oracle import PriceOracle
from api.server import StatsServer
from bus.event_bus import EventBus
from config.settings import settings
from feeds.birdeye import BirdeyeSnapshotClient
from feeds.helius import HeliusStreamClient
from feeds.synthetic import SyntheticFeedClient, SyntheticPriceGenerator, WalkParams
from ledger.revenue_ledger import RevenueLedger
from models.events import OracleEvent
from models.state import PriceHistoryBuffer
from utils.logger import setup_logging

log = logging.getLogger(__name__)

_ORACLE_CONFIG = Path(__file__).resolve().parent / "config" / "oracle.yaml"
# Log the current price at most this often
_PRICE_LOG_INTERVAL_MS = 30_000


def _load_oracle_config() -> dict:
    with open(_ORACLE_CONFIG) as f:
        return yaml.safe_load(f) or {}


def build_oracle(oracle_cfg: dict) -> PriceOracle:
    primary = HeliusStreamClient(
        api_key=settings.helius_api_key,
        ws_url=settings.helius_ws_url,
        subscribe_message=(oracle_cfg.get("primary") or {}).get("subscribe"),
    )
    secondary = BirdeyeSnapshotClient(
        api_key=settings.birdeye_api_key,
        mint=settings.price_asset_mint,
        base_url=settings.birdeye_base_url,
        poll_interval_s=settings.price_update_interval_s,
    )
    synthetic = SyntheticFeedClient(
        SyntheticPriceGenerator(WalkParams.from_dict(oracle_cfg.get("synthetic"))),
        interval_s=settings.price_update_interval_s,
    )
    return PriceOracle(
        synthetic=synthetic,
        primary=primary,
        secondary=secondary,
        history=PriceHistoryBuffer(retention_ms=settings.history_retention_ms),
        reconnect_delay_s=settings.reconnect_delay_s,
        max_reconnect_attempts=settings.max_reconnect_attempts,
        volatility_window=int(oracle_cfg.get("volatility_window", 60)),
    )


def _make_event_logger():
    last_logged_ms = 0

    def _on_event(event: OracleEvent) -> None:
        nonlocal last_logged_ms
        if event.type == "price":
            if event.timestamp_ms - last_logged_ms >= _PRICE_LOG_INTERVAL_MS:
                last_logged_ms = event.timestamp_ms
                log.info("%s=$%.4f via %s", settings.price_asset, event.price, event.source.value)
        elif event.type == "fallback":
            log.warning("Price feed degraded to synthetic: %s", event.reason)

    return _on_event


async def run() -> None:
    setup_logging(settings.log_level)
    log.info(
        "PulseTrade core starting (asset=%s house_edge=%.2f fee_rate=%.2f dev=%s)",
        settings.price_asset, settings.house_edge, settings.platform_fee_rate, settings.dev_mode,
    )

    # -----------------------------------------------------------------------
    # Composition
    # -----------------------------------------------------------------------
    bus = EventBus()
    oracle = build_oracle(_load_oracle_config())
    oracle.subscribe(_make_event_logger())

    ledger = RevenueLedger(
        house_edge=settings.house_edge,
        platform_fee_rate=settings.platform_fee_rate,
        cache_ttl_ms=settings.stats_cache_ttl_ms,
    )
    ledger_agent = LedgerAgent(bus=bus, ledger=ledger)
    server = StatsServer(
        oracle=oracle,
        ledger=ledger,
        bus=bus,
        admin_api_key=settings.admin_api_key,
        dev_mode=settings.dev_mode,
        asset=settings.price_asset,
    )

    # -----------------------------------------------------------------------
    # Launch
    # -----------------------------------------------------------------------
    shutdown_event = asyncio.Event()

    def _handle_signal(sig: signal.Signals) -> None:
        log.info("Received %s — initiating graceful shutdown", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    await oracle.start()
    tasks = [asyncio.create_task(ledger_agent.run(), name="ledger")]
    await server.start(settings.http_host, settings.http_port)
    log.info("PulseTrade core is live.")

    await shutdown_event.wait()

    # -----------------------------------------------------------------------
    # Graceful shutdown
    # -----------------------------------------------------------------------
    log.info("Shutting down...")
    await oracle.stop()
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await server.shutdown()
    log.info(
        "PulseTrade core stopped cleanly (settlements recorded=%d rejected=%d).",
        ledger_agent.recorded, ledger_agent.rejected,
    )


def main() -> None:
    try:
        import uvloop  # type: ignore
    except ImportError:
        asyncio.run(run())
        return
    uvloop.run(run())


if __name__ == "__main__":
    main()
