from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_TRACKED_TOKENS = (
    "WIF:EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm,"
    "BONK:DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263,"
    "POPCAT:7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr,"
    "PNUT:2qEHjDLDLbuBgRYvsxhc5D6uDWAivNFZGan56P1tpump,"
    "MOODENG:ED5nyyWEzpPPiWimP8vYm7sD7TD3LAt3Q3gRTWHzPJBY,"
    "FARTCOIN:9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump,"
    "TROLL:5UUH9RTDiSpq6HKS6bp4NdU9PNJpXRXuiw6ShBTBhgH2"
)


@dataclass(frozen=True)
class Config:
    tokens: dict[str, str]
    jupiter_api_url: str
    dexscreener_api_url: str
    fetch_interval_seconds: float
    jupiter_refresh_seconds: float
    dexscreener_refresh_seconds: float
    dexscreener_request_delay_seconds: float
    fetch_timeout_seconds: float
    fetch_max_retries: int
    history_retention_hours: int
    metrics_db_path: str
    persist_price_history: bool
    seed_from_price_history: bool
    stats_api_port: int
    log_level: str

    @property
    def symbols(self) -> list[str]:
        return list(self.tokens)

    @property
    def history_retention_ms(self) -> int:
        return self.history_retention_hours * 3600 * 1000


def _bool_from_env(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_tracked_tokens(raw: str) -> dict[str, str]:
    tokens: dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        symbol, sep, mint = item.partition(":")
        symbol = symbol.strip().upper()
        mint = mint.strip()
        if not sep or not symbol or not mint:
            raise ValueError(f"TRACKED_TOKENS entry must be SYMBOL:mint, got '{item}'")
        if symbol in tokens:
            raise ValueError(f"TRACKED_TOKENS lists {symbol} more than once")
        tokens[symbol] = mint

    if not tokens:
        raise ValueError("TRACKED_TOKENS must list at least one token")
    return tokens


def _positive_float(name: str, default: str) -> float:
    value = float(os.getenv(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def load_config() -> Config:
    load_dotenv()

    tokens = parse_tracked_tokens(os.getenv("TRACKED_TOKENS", DEFAULT_TRACKED_TOKENS))

    history_retention_hours = int(os.getenv("HISTORY_RETENTION_HOURS", "168"))
    if history_retention_hours <= 0:
        raise ValueError("HISTORY_RETENTION_HOURS must be > 0")

    fetch_max_retries = int(os.getenv("FETCH_MAX_RETRIES", "2"))
    if fetch_max_retries < 0:
        raise ValueError("FETCH_MAX_RETRIES must be >= 0")

    return Config(
        tokens=tokens,
        jupiter_api_url=os.getenv(
            "JUPITER_API_URL",
            "https://lite-api.jup.ag/price/v3",
        ).strip(),
        dexscreener_api_url=os.getenv(
            "DEXSCREENER_API_URL",
            "https://api.dexscreener.com/latest/dex/tokens",
        ).strip().rstrip("/"),
        fetch_interval_seconds=_positive_float("FETCH_INTERVAL_SECONDS", "5"),
        jupiter_refresh_seconds=_positive_float("JUPITER_REFRESH_SECONDS", "10"),
        dexscreener_refresh_seconds=_positive_float("DEXSCREENER_REFRESH_SECONDS", "60"),
        dexscreener_request_delay_seconds=float(
            os.getenv("DEXSCREENER_REQUEST_DELAY_SECONDS", "0.15")
        ),
        fetch_timeout_seconds=_positive_float("FETCH_TIMEOUT_SECONDS", "10"),
        fetch_max_retries=fetch_max_retries,
        history_retention_hours=history_retention_hours,
        metrics_db_path=os.getenv("METRICS_DB_PATH", "logs/price_stats.sqlite3").strip(),
        persist_price_history=_bool_from_env(os.getenv("PERSIST_PRICE_HISTORY"), True),
        seed_from_price_history=_bool_from_env(os.getenv("SEED_FROM_PRICE_HISTORY"), False),
        stats_api_port=int(os.getenv("STATS_API_PORT", "8080")),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
