"""
Normalizes provider-specific payloads into a single float price.

Each provider wraps the price differently — a flat field, a string, a
{price, expo} fixed-point pair, or an envelope or two deep. This module is the
translation layer so the oracle never sees provider-specific structures.

Every function returns None for anything that is not a finite positive price;
the caller drops those ticks.

Supported shapes:
  - flat:       {"price": 187.4}, {"value": "187.4"}, {"c": "187.4"}, 187.4
  - Pyth:       {"type": "price_update", "price_feed": {"price": {"price": "18740000000", "expo": -8}}}
  - JSON-RPC:   {"params": {"result": {...any of the above...}}}
  - data:       {"data": {...any of the above...}}
  - snapshot:   {"price": 187.4, "change24h": -1.2}
"""

from __future__ import annotations
import math
from typing import Any

# Field names that hold a price directly, in lookup order
_PRICE_FIELDS = ("price", "value", "c")
# Envelope keys unwrapped before looking for price fields
_ENVELOPE_PATHS: tuple[tuple[str, ...], ...] = (
    ("params", "result"),
    ("result",),
    ("data",),
)
_CHANGE_FIELDS = ("change24h", "priceChange24h", "usd_24h_change")
# Guard against payloads nesting envelopes indefinitely
_MAX_DEPTH = 4


def to_price(value: Any) -> float | None:
    """Coerce a numeric or numeric string to a finite positive float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        price = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def fixed_point_to_price(mantissa: Any, expo: Any) -> float | None:
    """Pyth-style fixed point: mantissa * 10**expo."""
    try:
        scaled = int(mantissa) * math.pow(10, int(expo))
    except (TypeError, ValueError, OverflowError):
        return None
    return to_price(scaled)


def extract_price(payload: Any, _depth: int = 0) -> float | None:
    """Best-effort extraction across all supported shapes."""
    if _depth > _MAX_DEPTH:
        return None
    if not isinstance(payload, dict):
        return to_price(payload)

    pyth = pyth_to_price(payload)
    if pyth is not None:
        return pyth

    for field in _PRICE_FIELDS:
        if field not in payload:
            continue
        raw = payload[field]
        if isinstance(raw, dict):
            if "expo" in raw:
                return fixed_point_to_price(raw.get("price"), raw.get("expo"))
            return extract_price(raw, _depth + 1)
        return to_price(raw)

    for path in _ENVELOPE_PATHS:
        inner = _dig(payload, path)
        if inner is not None:
            price = extract_price(inner, _depth + 1)
            if price is not None:
                return price
    return None


def pyth_to_price(msg: dict[str, Any]) -> float | None:
    """Pyth Hermes price_update message."""
    if msg.get("type") != "price_update":
        return None
    quote = _dig(msg, ("price_feed", "price"))
    if not isinstance(quote, dict):
        return None
    return fixed_point_to_price(quote.get("price"), quote.get("expo"))


def extract_change_24h(payload: Any) -> float | None:
    """24h change from a snapshot body; may be negative, must be finite."""
    if not isinstance(payload, dict):
        return None
    for body in (payload, payload.get("data")):
        if not isinstance(body, dict):
            continue
        for field in _CHANGE_FIELDS:
            if field in body:
                try:
                    change = float(body[field])
                except (TypeError, ValueError, OverflowError):
                    return None
                return change if math.isfinite(change) else None
    return None


def _dig(obj: dict[str, Any], path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj
