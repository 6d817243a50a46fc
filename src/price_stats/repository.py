from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .models import MarketQuote, PriceTick, SymbolMetrics
from .timeframes import TIMEFRAME_NAMES

logger = logging.getLogger(__name__)

MARKET_COLUMNS = (
    "volume_5m",
    "volume_1h",
    "volume_6h",
    "volume_24h",
    "change_5m",
    "change_1h",
    "change_6h",
    "change_24h",
    "liquidity_usd",
    "market_cap",
)
STAT_COLUMNS = tuple(
    f"{metric}_{name}"
    for name in TIMEFRAME_NAMES
    for metric in ("high", "low", "range", "volatility")
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MetricsRepository:
    """sqlite sink for the latest per-symbol metrics and the raw tick history."""

    def __init__(self, db_path: str = "logs/price_stats.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._bootstrap()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _bootstrap(self) -> None:
        value_columns = ",\n".join(f"{column} REAL" for column in (*MARKET_COLUMNS, *STAT_COLUMNS))
        with self._connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS symbol_metrics (
                    symbol TEXT PRIMARY KEY,
                    price REAL,
                    ts_ms INTEGER,
                    {value_columns},
                    updated_at TEXT NOT NULL
                )
                """
            )
            existing = {row["name"] for row in conn.execute("PRAGMA table_info(symbol_metrics)")}
            for column in (*MARKET_COLUMNS, *STAT_COLUMNS):
                if column not in existing:
                    conn.execute(f"ALTER TABLE symbol_metrics ADD COLUMN {column} REAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    price REAL NOT NULL,
                    ts_ms INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_price_history_symbol_ts
                ON price_history (symbol, ts_ms)
                """
            )

    def upsert_metrics(self, metrics: SymbolMetrics, quote: MarketQuote | None = None) -> None:
        record = metrics.as_record()
        for column in MARKET_COLUMNS:
            record[column] = getattr(quote, column) if quote is not None else None
        record["updated_at"] = utc_now_iso()

        columns = ["symbol", "price", "ts_ms", *MARKET_COLUMNS, *STAT_COLUMNS, "updated_at"]
        column_list = ", ".join(columns)
        placeholders = ", ".join(f":{column}" for column in columns)
        updates = ",\n".join(f"{column} = excluded.{column}" for column in columns[1:])
        params = {column: record.get(column) for column in columns}

        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO symbol_metrics ({column_list})
                VALUES ({placeholders})
                ON CONFLICT(symbol) DO UPDATE SET
                {updates}
                """,
                params,
            )

    def get_metrics(self, symbol: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM symbol_metrics WHERE symbol = ?",
                (symbol,),
            ).fetchone()
        if row is None:
            return None
        return dict(row)

    def append_ticks(self, ticks: Iterable[PriceTick]) -> int:
        rows = [(tick.symbol, tick.price, tick.ts_ms) for tick in ticks]
        if not rows:
            return 0
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO price_history (symbol, price, ts_ms) VALUES (?, ?, ?)",
                rows,
            )
        return len(rows)

    def recent_ticks(self, symbol: str, since_ms: int) -> list[PriceTick]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT symbol, price, ts_ms FROM price_history
                WHERE symbol = ? AND ts_ms >= ?
                ORDER BY ts_ms ASC, id ASC
                """,
                (symbol, since_ms),
            ).fetchall()
        return [PriceTick(symbol=row["symbol"], price=row["price"], ts_ms=row["ts_ms"]) for row in rows]

    def prune_history(self, before_ms: int) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM price_history WHERE ts_ms < ?", (before_ms,))
            deleted = cursor.rowcount
        if deleted:
            logger.info("[Repository] Pruned %s price_history rows", deleted)
        return deleted
