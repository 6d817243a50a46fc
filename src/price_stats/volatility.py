from __future__ import annotations

import math
from collections import deque
from typing import Deque, Sequence

from .models import PriceTick, ReturnSample
from .timeframes import DAY_MS, TIMEFRAMES, TimeframeSpec, get_timeframe, timeframe_for_duration

MS_PER_YEAR = 365 * DAY_MS
MAX_PLAUSIBLE_VOLATILITY_PCT = 2000.0
RESYNC_EVERY_EXPIRATIONS = 1024


def is_valid_volatility(volatility: float | None) -> bool:
    """Thin windows produce noise; only (0, 2000) percent is treated as plausible."""
    return volatility is not None and 0.0 < volatility < MAX_PLAUSIBLE_VOLATILITY_PCT


class ReturnWindow:
    """Log-returns inside one trailing window with running sum and sum of squares.

    Variance comes straight from the two sums, so neither appending nor
    expiring a sample rescans the window.
    """

    def __init__(self, timeframe: TimeframeSpec) -> None:
        self.timeframe = timeframe
        self._samples: Deque[ReturnSample] = deque()
        self._sum_returns = 0.0
        self._sum_squared_returns = 0.0
        self._nonzero_count = 0
        self._expired_since_resync = 0
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def sum_returns(self) -> float:
        return self._sum_returns

    @property
    def sum_squared_returns(self) -> float:
        return self._sum_squared_returns

    def samples(self) -> list[ReturnSample]:
        return list(self._samples)

    def initialize(self, history: Sequence[PriceTick], now_ms: int | None = None) -> bool:
        """Backfill once from raw history; returns True only when it seeded the window."""
        if self._initialized or len(history) < 2:
            return False

        now_ms = now_ms if now_ms is not None else history[-1].ts_ms
        cutoff_ms = now_ms - self.timeframe.duration_ms
        relevant = [tick for tick in history if tick.ts_ms >= cutoff_ms]
        if len(relevant) < 2:
            return False

        for previous, current in zip(relevant, relevant[1:]):
            if previous.price <= 0 or current.price <= 0:
                continue
            self._push(ReturnSample(log_return=math.log(current.price / previous.price), ts_ms=current.ts_ms))

        self._initialized = True
        return True

    def add_price(self, price: float, ts_ms: int, previous_price: float | None) -> bool:
        if previous_price is None or previous_price <= 0 or price <= 0:
            return False

        self._push(ReturnSample(log_return=math.log(price / previous_price), ts_ms=ts_ms))
        # Backfill is closed once live returns exist.
        self._initialized = True
        self._expire(ts_ms - self.timeframe.duration_ms)
        return True

    def _push(self, sample: ReturnSample) -> None:
        self._samples.append(sample)
        self._sum_returns += sample.log_return
        self._sum_squared_returns += sample.log_return * sample.log_return
        if sample.log_return != 0.0:
            self._nonzero_count += 1

    def _expire(self, cutoff_ms: int) -> None:
        expired_any = False
        while self._samples and self._samples[0].ts_ms < cutoff_ms:
            expired = self._samples.popleft()
            self._sum_returns -= expired.log_return
            self._sum_squared_returns -= expired.log_return * expired.log_return
            if expired.log_return != 0.0:
                self._nonzero_count -= 1
            self._expired_since_resync += 1
            expired_any = True

        if not expired_any:
            return
        if self._nonzero_count == 0:
            # An all-zero queue sums to exactly zero.
            self._sum_returns = 0.0
            self._sum_squared_returns = 0.0
            self._expired_since_resync = 0
        elif self._expired_since_resync >= RESYNC_EVERY_EXPIRATIONS:
            self._resync()

    def _resync(self) -> None:
        self._sum_returns = math.fsum(sample.log_return for sample in self._samples)
        self._sum_squared_returns = math.fsum(sample.log_return * sample.log_return for sample in self._samples)
        self._expired_since_resync = 0

    def volatility(self) -> float | None:
        """Annualized volatility in percent, or None while the window is too thin."""
        n = len(self._samples)
        if n < 2:
            return None

        mean = self._sum_returns / n
        variance = (self._sum_squared_returns / n) - (mean * mean)
        if variance < 0:
            return None

        periods_per_year = MS_PER_YEAR / self.timeframe.duration_ms
        return math.sqrt(variance) * math.sqrt(periods_per_year) * 100.0


class VolatilityEngine:
    def __init__(self, timeframes: tuple[TimeframeSpec, ...] = TIMEFRAMES) -> None:
        self._windows = {tf.name: ReturnWindow(tf) for tf in timeframes}

    def windows(self) -> list[ReturnWindow]:
        return list(self._windows.values())

    def window(self, timeframe: str) -> ReturnWindow | None:
        spec = get_timeframe(timeframe)
        if spec is None:
            return None
        return self._windows.get(spec.name)

    def initialize(self, history: Sequence[PriceTick], now_ms: int | None = None) -> None:
        for window in self._windows.values():
            window.initialize(history, now_ms)

    def add_price(self, price: float, ts_ms: int, previous_price: float | None) -> None:
        for window in self._windows.values():
            window.add_price(price, ts_ms, previous_price)

    def get_volatility(self, timeframe: str) -> float | None:
        window = self.window(timeframe)
        return window.volatility() if window is not None else None

    def get_volatility_for_duration(self, duration_ms: int) -> float | None:
        spec = timeframe_for_duration(duration_ms)
        if spec is None:
            return None
        return self.get_volatility(spec.name)

    def snapshot(self) -> dict[str, float | None]:
        return {name: window.volatility() for name, window in self._windows.items()}
