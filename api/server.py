"""
Stats HTTP surface (aiohttp.web).

Thin read-mostly glue over the oracle and the ledger:

  GET  /api/health                      service status
  GET  /api/price                       current price snapshot
  GET  /api/price/history               retained history for chart init
  GET  /api/admin/stats?period=daily    revenue / bet statistics + projections
  GET  /api/admin/revenue/events        most recent revenue events
  POST /api/admin/stats                 {"action": "reset_stats"} (dev mode only)
  POST /api/bets/settle                 publish a settlement to the ledger agent

Admin routes need the x-admin-key header unless dev mode is on.
Error bodies: {"success": false, "error": {"code": ..., "message": ...}}
"""

from __future__ import annotations
import json
import logging
import math
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable

from aiohttp import web

from agents.oracle import PriceOracle
from bus.event_bus import EventBus
from ledger.revenue_ledger import RevenueLedger
from models.events import BetSettlement
from models.revenue import PERIOD_NAMES, RevenueEvent, UserRevenue
from models.state import Source
from strategy.house_edge import project_revenue
from utils.clock import now_ms

log = logging.getLogger(__name__)

# Days of volume each period represents when deriving a daily volume for projections.
# All-time assumes a 30-day history.
_PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30, "alltime": 30}
_NO_STORE = {"Cache-Control": "no-store, max-age=0"}


def _error(status: int, code: str, message: str) -> web.Response:
    return web.json_response(
        {"success": False, "error": {"code": code, "message": message}},
        status=status,
        headers=_NO_STORE,
    )


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _event_dict(event: RevenueEvent) -> dict[str, Any]:
    row = asdict(event)
    row["kind"] = event.kind.value
    return row


def _user_dict(row: UserRevenue) -> dict[str, Any]:
    return asdict(row)


def parse_settlement(body: Any) -> BetSettlement:
    """Validate a settlement request body. Raises ValueError with a caller-facing message."""
    if not isinstance(body, dict):
        raise ValueError("body must be a JSON object")

    bet_id = body.get("bet_id")
    user_id = body.get("user_id")
    if not isinstance(bet_id, str) or not bet_id:
        raise ValueError("bet_id must be a non-empty string")
    if not isinstance(user_id, str) or not user_id:
        raise ValueError("user_id must be a non-empty string")

    won = body.get("won")
    if not isinstance(won, bool):
        raise ValueError("won must be a boolean")

    bet_amount = _number(body, "bet_amount")
    if bet_amount <= 0:
        raise ValueError("bet_amount must be > 0")
    multiplier = _number(body, "multiplier")
    if multiplier < 1:
        raise ValueError("multiplier must be >= 1")
    probability = _number(body, "true_probability", default=0.5)
    if not 0 < probability < 1:
        raise ValueError("true_probability must be in (0, 1)")

    return BetSettlement(
        bet_id=bet_id,
        user_id=user_id,
        bet_amount=bet_amount,
        multiplier=multiplier,
        won=won,
        true_probability=probability,
    )


def _number(body: dict[str, Any], key: str, default: float | None = None) -> float:
    value = body.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    try:
        value = float(value)
    except OverflowError:
        raise ValueError(f"{key} must be finite") from None
    if not math.isfinite(value):
        raise ValueError(f"{key} must be finite")
    return value


class StatsServer:
    """
    Usage:
        server = StatsServer(oracle, ledger, bus, admin_api_key=settings.admin_api_key)
        await server.start(settings.http_host, settings.http_port)
        ...
        await server.shutdown()
    """

    def __init__(
        self,
        oracle: PriceOracle,
        ledger: RevenueLedger,
        bus: EventBus,
        admin_api_key: str = "",
        dev_mode: bool = False,
        asset: str = "SOL",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._oracle = oracle
        self._ledger = ledger
        self._bus = bus
        self._admin_api_key = admin_api_key
        self._dev_mode = dev_mode
        self._asset = asset
        self._clock = clock
        self._started_ms = clock()
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/health", self.handle_health)
        app.router.add_get("/api/price", self.handle_price)
        app.router.add_get("/api/price/history", self.handle_history)
        app.router.add_get("/api/admin/stats", self.handle_admin_stats)
        app.router.add_post("/api/admin/stats", self.handle_admin_action)
        app.router.add_get("/api/admin/revenue/events", self.handle_revenue_events)
        app.router.add_post("/api/bets/settle", self.handle_settle)
        return app

    async def start(self, host: str, port: int) -> None:
        self._runner = web.AppRunner(self.build_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        log.info("Stats server listening on http://%s:%d", host, port)

    async def shutdown(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()

    def _is_admin(self, request: web.Request) -> bool:
        if self._dev_mode:
            return True
        key = request.headers.get("x-admin-key", "")
        return bool(self._admin_api_key) and key == self._admin_api_key

    # ------------------------------------------------------------------
    # Public routes
    # ------------------------------------------------------------------

    async def handle_health(self, request: web.Request) -> web.Response:
        state = self._oracle.get_state()
        if state.current_price is None:
            status = "unhealthy"
        elif state.connected and state.active_source is not Source.SYNTHETIC:
            status = "healthy"
        else:
            status = "degraded"
        body = {
            "status": status,
            "timestamp": _iso_now(),
            "uptime_ms": self._clock() - self._started_ms,
            "oracle": {
                "phase": self._oracle.phase.value,
                "source": state.active_source.value,
                "connected": state.connected,
                "last_update_ms": state.last_update_ms,
                "reconnect_failures": self._oracle.reconnect_failures,
            },
            "ledger": {"events": len(self._ledger)},
        }
        return web.json_response(body, status=503 if status == "unhealthy" else 200, headers=_NO_STORE)

    async def handle_price(self, request: web.Request) -> web.Response:
        state = self._oracle.get_state()
        if state.current_price is None:
            return _error(503, "NO_PRICE", "No price data available yet")
        high_low = self._oracle.get_high_low()
        return web.json_response(
            {
                "asset": self._asset,
                "price": state.current_price,
                "timestamp": state.last_update_ms,
                "high": high_low.high if high_low else None,
                "low": high_low.low if high_low else None,
                "volatility": self._oracle.get_volatility(),
                "change24h": state.change_24h,
                "source": state.active_source.value,
            },
            headers=_NO_STORE,
        )

    async def handle_history(self, request: web.Request) -> web.Response:
        high_low = self._oracle.get_high_low()
        return web.json_response(
            {
                "asset": self._asset,
                "history": [
                    {"price": p.price, "timestamp": p.timestamp_ms}
                    for p in self._oracle.get_price_history()
                ],
                "current_price": self._oracle.get_current_price(),
                "volatility": self._oracle.get_volatility(),
                "high_low": asdict(high_low) if high_low else None,
            },
            headers=_NO_STORE,
        )

    async def handle_settle(self, request: web.Request) -> web.Response:
        try:
            settlement = parse_settlement(await request.json())
        except json.JSONDecodeError:
            return _error(400, "INVALID_JSON", "Body is not valid JSON")
        except ValueError as exc:
            return _error(400, "INVALID_PARAMETER", str(exc))

        if not self._bus.publish_settlement(settlement):
            return _error(503, "BUSY", "Settlement queue is full, retry later")
        return web.json_response({"success": True, "bet_id": settlement.bet_id}, status=202)

    # ------------------------------------------------------------------
    # Admin routes
    # ------------------------------------------------------------------

    async def handle_admin_stats(self, request: web.Request) -> web.Response:
        if not self._is_admin(request):
            return _error(401, "UNAUTHORIZED", "Invalid or missing admin API key")

        period = request.query.get("period", "daily")
        if period not in PERIOD_NAMES:
            return _error(400, "INVALID_PARAMETER", f"Invalid period. Must be one of: {', '.join(PERIOD_NAMES)}")

        stats = self._ledger.get_revenue_stats().get(period)
        projected_daily = projected_monthly = 0.0
        if stats.total_volume > 0:
            projection = project_revenue(
                stats.total_volume / _PERIOD_DAYS[period],
                fee_rate=self._ledger.platform_fee_rate,
            )
            projected_daily = projection.daily
            projected_monthly = projection.monthly

        body = {
            "success": True,
            "timestamp": _iso_now(),
            "period": period,
            "revenue": {
                "total_volume": stats.total_volume,
                "total_revenue": stats.total_revenue,
                "house_edge_revenue": stats.house_edge_revenue,
                "platform_fee_revenue": stats.platform_fee_revenue,
                "loss_revenue": stats.loss_revenue,
                "effective_edge": stats.effective_edge,
                "projected_daily": projected_daily,
                "projected_monthly": projected_monthly,
            },
            "bets": {
                "total": stats.total_bets,
                "wins": stats.total_wins,
                "losses": stats.total_losses,
                "win_rate": stats.win_rate,
                "average_bet_size": stats.average_bet_size,
                "average_multiplier": stats.average_multiplier,
            },
            "users": {
                "top_revenue_users": [_user_dict(r) for r in self._ledger.get_revenue_by_user(10)],
            },
        }
        return web.json_response(body, headers=_NO_STORE)

    async def handle_revenue_events(self, request: web.Request) -> web.Response:
        if not self._is_admin(request):
            return _error(401, "UNAUTHORIZED", "Invalid or missing admin API key")
        try:
            limit = int(request.query.get("limit", "100"))
        except ValueError:
            return _error(400, "INVALID_PARAMETER", "limit must be an integer")
        events = self._ledger.get_recent_revenue_events(limit)
        return web.json_response(
            {"success": True, "events": [_event_dict(e) for e in events]},
            headers=_NO_STORE,
        )

    async def handle_admin_action(self, request: web.Request) -> web.Response:
        if not self._is_admin(request):
            return _error(401, "UNAUTHORIZED", "Invalid or missing admin API key")
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "INVALID_JSON", "Body is not valid JSON")

        action = body.get("action") if isinstance(body, dict) else None
        if action == "reset_stats":
            if not self._dev_mode:
                return _error(403, "FORBIDDEN", "This action is only allowed in development mode")
            self._ledger.clear_revenue_data()
            return web.json_response({"success": True, "message": "Statistics reset successfully"})
        return _error(400, "INVALID_ACTION", f"Unknown action: {action}")
