from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable

from .errors import InvalidTickError, UnknownSymbolError
from .models import PriceTick, RangeSnapshot, SymbolMetrics
from .range_tracker import RangeEngine
from .timeframes import DAY_MS, TIMEFRAMES, TimeframeSpec
from .volatility import VolatilityEngine

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_MS = 7 * DAY_MS


@dataclass
class SymbolState:
    symbol: str
    range_engine: RangeEngine
    volatility_engine: VolatilityEngine
    history: Deque[PriceTick] = field(default_factory=deque)
    last_tick: PriceTick | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SymbolRegistry:
    """Owns the rolling state of every tracked symbol.

    The symbol table is fixed at construction. Each symbol has its own lock, so
    one writer per symbol is enforced while different symbols never contend.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        *,
        retention_ms: int = DEFAULT_RETENTION_MS,
        timeframes: tuple[TimeframeSpec, ...] = TIMEFRAMES,
    ) -> None:
        if retention_ms <= 0:
            raise ValueError("retention_ms must be > 0")

        self.retention_ms = retention_ms
        self.timeframes = timeframes
        self._states: dict[str, SymbolState] = {}
        for symbol in symbols:
            self._states[symbol] = SymbolState(
                symbol=symbol,
                range_engine=RangeEngine(timeframes),
                volatility_engine=VolatilityEngine(timeframes),
            )

    @property
    def symbols(self) -> list[str]:
        return list(self._states)

    def is_tracked(self, symbol: str) -> bool:
        return symbol in self._states

    def state(self, symbol: str) -> SymbolState:
        state = self._states.get(symbol)
        if state is None:
            raise UnknownSymbolError(symbol)
        return state

    @staticmethod
    def _validated_price(tick: PriceTick) -> float:
        try:
            price = float(tick.price)
        except (TypeError, ValueError) as exc:
            raise InvalidTickError(f"{tick.symbol}: price is not numeric: {tick.price!r}") from exc
        if not math.isfinite(price) or price <= 0:
            raise InvalidTickError(f"{tick.symbol}: price must be a positive number, got {tick.price!r}")
        return price

    @staticmethod
    def _validated_ts(tick: PriceTick) -> int:
        try:
            return int(tick.ts_ms)
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidTickError(f"{tick.symbol}: timestamp is not an integer: {tick.ts_ms!r}") from exc

    def record_tick(self, tick: PriceTick) -> PriceTick:
        state = self.state(tick.symbol)
        price = self._validated_price(tick)
        ts_ms = self._validated_ts(tick)

        with state.lock:
            last = state.last_tick
            if last is not None and ts_ms < last.ts_ms:
                raise InvalidTickError(
                    f"{tick.symbol}: timestamp {ts_ms} is older than last seen {last.ts_ms}"
                )

            accepted = PriceTick(symbol=tick.symbol, price=price, ts_ms=ts_ms)
            state.range_engine.add_tick(price, ts_ms)

            if last is not None:
                for window in state.volatility_engine.windows():
                    if not window.initialized and window.initialize(state.history, now_ms=ts_ms):
                        logger.debug(
                            "[Registry] %s %s backfilled %s returns",
                            tick.symbol,
                            window.timeframe.name,
                            window.sample_count,
                        )
                    window.add_price(price, ts_ms, last.price)

            self._append_history(state, accepted)
            return accepted

    def seed_history(self, symbol: str, ticks: Iterable[PriceTick]) -> int:
        """Preload raw history and ranges; return windows backfill on the next live tick."""
        state = self.state(symbol)
        seeded = 0
        with state.lock:
            for tick in ticks:
                if tick.symbol != symbol:
                    continue
                try:
                    price = self._validated_price(tick)
                    ts_ms = self._validated_ts(tick)
                except InvalidTickError as exc:
                    logger.warning("[Registry] Skipping stored tick for %s: %s", symbol, exc)
                    continue
                if state.last_tick is not None and ts_ms < state.last_tick.ts_ms:
                    continue
                state.range_engine.add_tick(price, ts_ms)
                self._append_history(state, PriceTick(symbol=symbol, price=price, ts_ms=ts_ms))
                seeded += 1
        return seeded

    def _append_history(self, state: SymbolState, tick: PriceTick) -> None:
        state.history.append(tick)
        state.last_tick = tick
        cutoff_ms = tick.ts_ms - self.retention_ms
        while state.history and state.history[0].ts_ms < cutoff_ms:
            state.history.popleft()

    def history(self, symbol: str) -> list[PriceTick]:
        state = self.state(symbol)
        with state.lock:
            return list(state.history)

    def query_range(self, symbol: str, timeframe: str) -> RangeSnapshot:
        state = self.state(symbol)
        with state.lock:
            return state.range_engine.get_range(timeframe)

    def query_volatility(self, symbol: str, timeframe: str) -> float | None:
        state = self.state(symbol)
        with state.lock:
            return state.volatility_engine.get_volatility(timeframe)

    def metrics(self, symbol: str) -> SymbolMetrics:
        state = self.state(symbol)
        with state.lock:
            last = state.last_tick
            return SymbolMetrics(
                symbol=symbol,
                price=last.price if last is not None else None,
                ts_ms=last.ts_ms if last is not None else None,
                ranges=state.range_engine.snapshots(),
                volatility=state.volatility_engine.snapshot(),
            )

    def all_metrics(self) -> list[SymbolMetrics]:
        return [self.metrics(symbol) for symbol in self._states]
