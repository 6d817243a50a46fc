from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PriceTick:
    symbol: str
    price: float
    ts_ms: int


@dataclass
class Bucket:
    key: int
    low: float
    high: float

    def fold(self, price: float) -> None:
        if price > self.high:
            self.high = price
        if price < self.low:
            self.low = price


@dataclass(frozen=True)
class ReturnSample:
    log_return: float
    ts_ms: int


@dataclass(frozen=True)
class RangeSnapshot:
    high: float | None
    low: float | None

    @property
    def range(self) -> float | None:
        if self.high is None or self.low is None:
            return None
        return self.high - self.low


@dataclass(frozen=True)
class MarketQuote:
    symbol: str
    price: float | None
    source: str
    volume_5m: float | None = None
    volume_1h: float | None = None
    volume_6h: float | None = None
    volume_24h: float | None = None
    change_5m: float | None = None
    change_1h: float | None = None
    change_6h: float | None = None
    change_24h: float | None = None
    liquidity_usd: float | None = None
    market_cap: float | None = None


@dataclass(frozen=True)
class SymbolMetrics:
    symbol: str
    price: float | None
    ts_ms: int | None
    ranges: dict[str, RangeSnapshot] = field(default_factory=dict)
    volatility: dict[str, float | None] = field(default_factory=dict)

    def as_record(self) -> dict:
        record: dict = {
            "symbol": self.symbol,
            "price": self.price,
            "ts_ms": self.ts_ms,
        }
        for name, snapshot in self.ranges.items():
            record[f"high_{name}"] = snapshot.high
            record[f"low_{name}"] = snapshot.low
            record[f"range_{name}"] = snapshot.range
        for name, value in self.volatility.items():
            record[f"volatility_{name}"] = value
        return record
