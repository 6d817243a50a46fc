import random

from src.price_stats.range_tracker import RangeEngine, RangeTracker
from src.price_stats.timeframes import HOUR_MS, MINUTE_MS, get_timeframe


def _tracker(name: str) -> RangeTracker:
    spec = get_timeframe(name)
    assert spec is not None
    return RangeTracker(spec)


def test_empty_tracker_reports_no_data() -> None:
    tracker = _tracker("5m")

    assert tracker.high() is None
    assert tracker.low() is None
    assert tracker.snapshot().range is None


def test_single_tick_sets_high_and_low() -> None:
    tracker = _tracker("1h")

    tracker.add_tick(2.5, 1_000)

    assert tracker.high() == 2.5
    assert tracker.low() == 2.5
    assert tracker.snapshot().range == 0.0


def test_ticks_in_same_bucket_fold_into_one_summary() -> None:
    tracker = _tracker("1h")

    tracker.add_tick(1.0, 60_000)
    tracker.add_tick(3.0, 70_000)
    tracker.add_tick(0.5, 110_000)

    assert tracker.bucket_count == 1
    assert tracker.high() == 3.0
    assert tracker.low() == 0.5


def test_spike_expires_with_its_bucket() -> None:
    tracker = _tracker("5m")

    tracker.add_tick(0.95, 0)
    tracker.add_tick(0.05, 10_000)
    for i in range(28):
        tracker.add_tick(0.40 if i % 2 == 0 else 0.60, 20_000 + i * 10_000)

    assert tracker.high() == 0.95
    assert tracker.low() == 0.05

    for i in range(6):
        tracker.add_tick(0.40 if i % 2 == 0 else 0.60, 300_000 + i * 10_000)

    assert 0.40 <= tracker.high() <= 0.60
    assert 0.40 <= tracker.low() <= 0.60
    assert all(key >= 350_000 - 300_000 for key in tracker.bucket_keys())


def test_backdated_bucket_is_ignored() -> None:
    tracker = _tracker("5m")

    assert tracker.add_tick(1.0, 100_000) is True
    assert tracker.add_tick(9.0, 50_000) is False
    assert tracker.high() == 1.0


def test_bucket_count_never_exceeds_capacity() -> None:
    tracker = _tracker("1h")

    most_seen = 0
    for step in range(3 * 720):
        tracker.add_tick(1.0 + (step % 7) * 0.01, step * 5_000)
        assert tracker.bucket_count <= tracker.capacity
        most_seen = max(most_seen, tracker.bucket_count)

    assert most_seen == tracker.capacity


def test_high_low_match_brute_force_over_aligned_ticks() -> None:
    rng = random.Random(7)
    tracker = _tracker("1h")
    seen: list[tuple[int, float]] = []

    for step in range(400):
        ts = step * MINUTE_MS
        price = round(rng.uniform(0.5, 1.5), 6)
        tracker.add_tick(price, ts)
        seen.append((ts, price))

        in_window = [p for t, p in seen if t >= ts - HOUR_MS]
        assert tracker.high() == max(in_window)
        assert tracker.low() == min(in_window)


def test_engine_feeds_every_timeframe() -> None:
    engine = RangeEngine()

    engine.add_tick(1.0, 0)
    engine.add_tick(2.0, 10 * MINUTE_MS)

    assert engine.get_high("5m") == 2.0
    assert engine.get_low("5m") == 2.0
    assert engine.get_high("1h") == 2.0
    assert engine.get_low("1h") == 1.0
    assert engine.get_low("7d") == 1.0
    assert set(engine.snapshots()) == {"5m", "1h", "6h", "24h", "7d"}


def test_engine_unknown_timeframe_has_no_data() -> None:
    engine = RangeEngine()
    engine.add_tick(1.0, 0)

    assert engine.get_high("2h") is None
    assert engine.get_low("2h") is None
    assert engine.get_range("2h").range is None


def test_engine_duration_lookup_has_no_nearest_fallback() -> None:
    engine = RangeEngine()
    engine.add_tick(1.0, 0)

    assert engine.get_range_for_duration(HOUR_MS).high == 1.0
    assert engine.get_range_for_duration(HOUR_MS - 1).high is None
