from __future__ import annotations

import math
from dataclasses import dataclass

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class TimeframeSpec:
    name: str
    duration_ms: int
    bucket_ms: int

    @property
    def max_buckets(self) -> int:
        return math.ceil(self.duration_ms / self.bucket_ms) + 1


# Shorter windows get finer buckets; the live bucket count stays a small constant.
TIMEFRAMES: tuple[TimeframeSpec, ...] = (
    TimeframeSpec(name="5m", duration_ms=5 * MINUTE_MS, bucket_ms=5 * SECOND_MS),
    TimeframeSpec(name="1h", duration_ms=HOUR_MS, bucket_ms=MINUTE_MS),
    TimeframeSpec(name="6h", duration_ms=6 * HOUR_MS, bucket_ms=5 * MINUTE_MS),
    TimeframeSpec(name="24h", duration_ms=DAY_MS, bucket_ms=10 * MINUTE_MS),
    TimeframeSpec(name="7d", duration_ms=7 * DAY_MS, bucket_ms=HOUR_MS),
)

TIMEFRAME_NAMES: tuple[str, ...] = tuple(tf.name for tf in TIMEFRAMES)

_BY_NAME = {tf.name: tf for tf in TIMEFRAMES}
_BY_DURATION = {tf.duration_ms: tf for tf in TIMEFRAMES}


def align_to_bucket(ts_ms: int, bucket_ms: int) -> int:
    if bucket_ms <= 0:
        raise ValueError("bucket granularity must be > 0")
    return (ts_ms // bucket_ms) * bucket_ms


def parse_window_ms(window: str) -> int:
    value = window.strip().lower()
    if not value:
        raise ValueError("window must not be empty")

    unit = value[-1]
    number = int(value[:-1])
    if number <= 0:
        raise ValueError("window must be > 0")

    factors = {
        "s": SECOND_MS,
        "m": MINUTE_MS,
        "h": HOUR_MS,
        "d": DAY_MS,
    }
    if unit not in factors:
        raise ValueError(f"unsupported window unit: {unit}")
    return number * factors[unit]


def get_timeframe(name: str) -> TimeframeSpec | None:
    return _BY_NAME.get(name.strip().lower())


def timeframe_for_duration(duration_ms: int) -> TimeframeSpec | None:
    """Exact-duration lookup; there is no nearest-window fallback."""
    return _BY_DURATION.get(duration_ms)
