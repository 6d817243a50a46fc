import math
import random

import pytest

from src.price_stats import volatility as volatility_module
from src.price_stats.models import PriceTick
from src.price_stats.timeframes import HOUR_MS, get_timeframe
from src.price_stats.volatility import (
    MS_PER_YEAR,
    ReturnWindow,
    VolatilityEngine,
    is_valid_volatility,
)


def _window(name: str = "5m") -> ReturnWindow:
    spec = get_timeframe(name)
    assert spec is not None
    return ReturnWindow(spec)


def _ticks(prices: list[float], step_ms: int = 5_000, start_ms: int = 0) -> list[PriceTick]:
    return [PriceTick(symbol="WIF", price=p, ts_ms=start_ms + i * step_ms) for i, p in enumerate(prices)]


def test_volatility_needs_two_returns() -> None:
    window = _window()

    assert window.volatility() is None
    window.add_price(1.1, 5_000, 1.0)
    assert window.volatility() is None


def test_add_price_ignores_missing_or_non_positive_previous() -> None:
    window = _window()

    assert window.add_price(1.0, 5_000, None) is False
    assert window.add_price(1.0, 5_000, 0.0) is False
    assert window.add_price(1.0, 5_000, -2.0) is False
    assert window.sample_count == 0
    assert window.sum_returns == 0.0


def test_constant_price_has_zero_volatility() -> None:
    window = _window()

    for i in range(1, 6):
        window.add_price(0.5, i * 5_000, 0.5)

    assert window.volatility() == 0.0
    assert is_valid_volatility(window.volatility()) is False


def test_alternating_prices_match_closed_form() -> None:
    window = _window("5m")
    prices = [1.00 if i % 2 == 0 else 1.01 for i in range(11)]

    for i in range(1, len(prices)):
        window.add_price(prices[i], i * 5_000, prices[i - 1])

    expected = math.log(1.01) * math.sqrt(MS_PER_YEAR / 300_000) * 100
    assert window.sample_count == 10
    assert window.volatility() == pytest.approx(expected, rel=1e-6)


def test_expired_returns_leave_the_running_sums() -> None:
    window = _window("5m")

    window.add_price(2.0, 5_000, 1.0)
    window.add_price(1.0, 10_000, 2.0)
    window.add_price(1.5, 400_000, 1.0)
    window.add_price(1.2, 405_000, 1.5)

    remaining = [math.log(1.5 / 1.0), math.log(1.2 / 1.5)]
    assert window.sample_count == 2
    assert window.sum_returns == pytest.approx(sum(remaining))
    assert window.sum_squared_returns == pytest.approx(sum(r * r for r in remaining))
    assert all(sample.ts_ms >= 405_000 - 300_000 for sample in window.samples())


@pytest.mark.parametrize("seed", [3, 11, 29])
def test_flat_window_after_volatile_stretch_is_exactly_zero(seed: int) -> None:
    rng = random.Random(seed)
    window = _window("5m")
    price = 1.0
    ts_ms = 0

    for _ in range(500):
        ts_ms += 5_000
        next_price = price * math.exp(rng.gauss(0.0, 0.02))
        window.add_price(next_price, ts_ms, price)
        price = next_price

    for _ in range(80):
        ts_ms += 5_000
        window.add_price(price, ts_ms, price)

    assert window.sample_count >= 2
    assert all(sample.log_return == 0.0 for sample in window.samples())
    assert window.sum_returns == 0.0
    assert window.sum_squared_returns == 0.0
    assert window.volatility() == 0.0


def test_running_sums_resync_from_queued_returns(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(volatility_module, "RESYNC_EVERY_EXPIRATIONS", 1)
    rng = random.Random(5)
    window = _window("5m")
    price = 1.0

    for step in range(1, 200):
        next_price = price * math.exp(rng.gauss(0.0, 0.05))
        window.add_price(next_price, step * 5_000, price)
        price = next_price

    returns = [sample.log_return for sample in window.samples()]
    assert window.sum_returns == math.fsum(returns)
    assert window.sum_squared_returns == math.fsum(r * r for r in returns)


def test_window_past_duration_reports_no_data() -> None:
    window = _window("5m")

    window.add_price(2.0, 5_000, 1.0)
    window.add_price(1.0, 10_000, 2.0)
    assert window.volatility() is not None

    window.add_price(1.0, 400_000, 1.0)
    assert window.sample_count == 1
    assert window.volatility() is None


def test_negative_variance_is_treated_as_no_data() -> None:
    window = _window()
    window.add_price(1.0, 5_000, 1.0)
    window.add_price(1.0, 10_000, 1.0)

    window._sum_squared_returns = -1e-18  # noqa: SLF001

    assert window.volatility() is None


def test_initialize_backfills_trailing_window_once() -> None:
    window = _window("5m")
    history = _ticks([1.0, 1.1, 1.0, 1.2, 1.1])

    assert window.initialize(history) is True
    count = window.sample_count
    sums = (window.sum_returns, window.sum_squared_returns)

    assert window.initialize(history) is False
    assert window.initialized is True
    assert window.sample_count == count == 4
    assert (window.sum_returns, window.sum_squared_returns) == sums


def test_initialize_only_uses_ticks_inside_window() -> None:
    window = _window("5m")
    history = _ticks([1.0, 2.0, 3.0], step_ms=200_000)

    assert window.initialize(history, now_ms=400_000) is True
    assert window.sample_count == 1
    assert window.sum_returns == pytest.approx(math.log(3.0 / 2.0))


def test_initialize_is_noop_without_two_eligible_ticks() -> None:
    window = _window("5m")

    assert window.initialize(_ticks([1.0])) is False
    assert window.initialize(_ticks([1.0, 2.0], step_ms=400_000)) is False
    assert window.initialized is False
    assert window.sample_count == 0


def test_live_returns_block_later_backfill() -> None:
    window = _window("5m")
    window.add_price(1.1, 5_000, 1.0)

    assert window.initialize(_ticks([1.0, 1.1, 1.2])) is False
    assert window.sample_count == 1


def test_is_valid_volatility_bounds() -> None:
    assert is_valid_volatility(None) is False
    assert is_valid_volatility(0.0) is False
    assert is_valid_volatility(85.0) is True
    assert is_valid_volatility(1999.9) is True
    assert is_valid_volatility(2000.0) is False


def test_engine_annualizes_per_timeframe() -> None:
    engine = VolatilityEngine()
    prices = [1.00 if i % 2 == 0 else 1.01 for i in range(11)]

    for i in range(1, len(prices)):
        engine.add_price(prices[i], i * 5_000, prices[i - 1])

    five_minutes = engine.get_volatility("5m")
    one_hour = engine.get_volatility("1h")
    assert five_minutes is not None and one_hour is not None
    assert five_minutes / one_hour == pytest.approx(math.sqrt(12))
    assert engine.get_volatility_for_duration(HOUR_MS) == one_hour


def test_engine_unknown_timeframe_has_no_data() -> None:
    engine = VolatilityEngine()
    engine.add_price(1.1, 5_000, 1.0)
    engine.add_price(1.0, 10_000, 1.1)

    assert engine.get_volatility("3h") is None
    assert engine.get_volatility_for_duration(HOUR_MS + 1) is None
