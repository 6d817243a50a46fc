from __future__ import annotations

from collections import deque
from typing import Deque

from .models import Bucket, RangeSnapshot
from .timeframes import TIMEFRAMES, TimeframeSpec, align_to_bucket, get_timeframe, timeframe_for_duration


class RangeTracker:
    """Rolling high/low for one timeframe, kept as whole-bucket min/max summaries.

    Buckets arrive in key order, so they sit in a deque capped at the
    timeframe's maximum live bucket count and expire from the left. Dropping a
    whole bucket never requires recomputing the survivors.
    """

    def __init__(self, timeframe: TimeframeSpec) -> None:
        self.timeframe = timeframe
        self._buckets: Deque[Bucket] = deque(maxlen=timeframe.max_buckets)

    @property
    def capacity(self) -> int:
        return self.timeframe.max_buckets

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def bucket_keys(self) -> list[int]:
        return [bucket.key for bucket in self._buckets]

    def add_tick(self, price: float, ts_ms: int) -> bool:
        key = align_to_bucket(ts_ms, self.timeframe.bucket_ms)

        if self._buckets and key < self._buckets[-1].key:
            return False

        if self._buckets and key == self._buckets[-1].key:
            self._buckets[-1].fold(price)
        else:
            self._buckets.append(Bucket(key=key, low=price, high=price))

        self._evict(ts_ms - self.timeframe.duration_ms)
        return True

    def _evict(self, cutoff_ms: int) -> None:
        while self._buckets and self._buckets[0].key < cutoff_ms:
            self._buckets.popleft()

    def high(self) -> float | None:
        if not self._buckets:
            return None
        return max(bucket.high for bucket in self._buckets)

    def low(self) -> float | None:
        if not self._buckets:
            return None
        return min(bucket.low for bucket in self._buckets)

    def snapshot(self) -> RangeSnapshot:
        return RangeSnapshot(high=self.high(), low=self.low())


class RangeEngine:
    def __init__(self, timeframes: tuple[TimeframeSpec, ...] = TIMEFRAMES) -> None:
        self._trackers = {tf.name: RangeTracker(tf) for tf in timeframes}

    def add_tick(self, price: float, ts_ms: int) -> None:
        for tracker in self._trackers.values():
            tracker.add_tick(price, ts_ms)

    def tracker(self, timeframe: str) -> RangeTracker | None:
        spec = get_timeframe(timeframe)
        if spec is None:
            return None
        return self._trackers.get(spec.name)

    def get_high(self, timeframe: str) -> float | None:
        tracker = self.tracker(timeframe)
        return tracker.high() if tracker is not None else None

    def get_low(self, timeframe: str) -> float | None:
        tracker = self.tracker(timeframe)
        return tracker.low() if tracker is not None else None

    def get_range(self, timeframe: str) -> RangeSnapshot:
        tracker = self.tracker(timeframe)
        if tracker is None:
            return RangeSnapshot(high=None, low=None)
        return tracker.snapshot()

    def get_range_for_duration(self, duration_ms: int) -> RangeSnapshot:
        spec = timeframe_for_duration(duration_ms)
        if spec is None:
            return RangeSnapshot(high=None, low=None)
        return self.get_range(spec.name)

    def snapshots(self) -> dict[str, RangeSnapshot]:
        return {name: tracker.snapshot() for name, tracker in self._trackers.items()}
