"""
Environment-based configuration.
All secrets come from environment variables — never hardcoded.
Missing API keys are not an error: the oracle simply skips that source.

Usage:
    from config.settings import settings
    print(settings.house_edge)
"""

from __future__ import annotations
import os
from dataclasses import dataclass


def _optional(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def _bool(key: str, default: str = "false") -> bool:
    return _optional(key, default).strip().lower() in ("1", "true", "yes")


def _number(key: str, default: str, cast=float):
    raw = _optional(key, default)
    try:
        return cast(raw)
    except ValueError:
        raise EnvironmentError(f"Environment variable '{key}' must be a number, got {raw!r}.") from None


def _fraction(key: str, default: str) -> float:
    value = _number(key, default)
    if not 0.0 <= value < 1.0:
        raise EnvironmentError(f"Environment variable '{key}' must be in [0, 1), got {value}.")
    return value


@dataclass(frozen=True)
class Settings:
    # --- Primary source: Helius websocket ---
    helius_api_key: str                   # Empty = primary source skipped
    helius_ws_url: str                    # May contain {api_key}

    # --- Secondary source: Birdeye snapshots ---
    birdeye_api_key: str                  # Empty = secondary source skipped
    birdeye_base_url: str

    # --- Asset ---
    price_asset: str                      # Display symbol, e.g. "SOL"
    price_asset_mint: str                 # Token mint the live sources quote

    # --- Oracle ---
    price_update_interval_s: float        # Synthetic tick / snapshot poll interval
    reconnect_delay_s: float              # Fixed delay between reconnect attempts
    max_reconnect_attempts: int           # Consecutive failures before synthetic fallback
    history_retention_ms: int             # Look-back kept in the price buffer

    # --- Monetization ---
    house_edge: float                     # Fraction taken off the fair multiplier
    platform_fee_rate: float              # Fraction of winnings taken on won bets
    stats_cache_ttl_ms: int               # Revenue stats cache lifetime

    # --- Stats surface ---
    admin_api_key: str
    dev_mode: bool                        # True = admin routes open, reset allowed
    http_host: str
    http_port: int

    log_level: str


def load_settings() -> Settings:
    return Settings(
        helius_api_key=_optional("HELIUS_API_KEY"),
        helius_ws_url=_optional("HELIUS_WS_URL", "wss://atlas-mainnet.helius-rpc.com/?api-key={api_key}"),
        birdeye_api_key=_optional("BIRDEYE_API_KEY"),
        birdeye_base_url=_optional("BIRDEYE_BASE_URL", "https://public-api.birdeye.so"),
        price_asset=_optional("PRICE_ASSET", "SOL"),
        price_asset_mint=_optional("PRICE_ASSET_MINT", "So11111111111111111111111111111111111111112"),
        price_update_interval_s=_number("PRICE_UPDATE_INTERVAL_S", "1.0"),
        reconnect_delay_s=_number("RECONNECT_DELAY_S", "3.0"),
        max_reconnect_attempts=_number("MAX_RECONNECT_ATTEMPTS", "5", int),
        history_retention_ms=_number("HISTORY_RETENTION_MS", "600000", int),   # 10 min
        house_edge=_fraction("HOUSE_EDGE", "0.20"),
        platform_fee_rate=_fraction("PLATFORM_FEE_RATE", "0.05"),
        stats_cache_ttl_ms=_number("STATS_CACHE_TTL_MS", "5000", int),
        admin_api_key=_optional("ADMIN_API_KEY"),
        dev_mode=_bool("DEV_MODE"),
        http_host=_optional("HTTP_HOST", "127.0.0.1"),
        http_port=_number("HTTP_PORT", "8080", int),
        log_level=_optional("LOG_LEVEL", "INFO"),
    )


# Module-level singleton — loaded once at startup
settings = load_settings()
