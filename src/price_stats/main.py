from __future__ import annotations

import asyncio
import logging
import sqlite3
import time

from .config import Config, load_config
from .fetcher import FetcherConfig, PriceFetcher
from .ingest import TickIngestor
from .models import MarketQuote, PriceTick
from .registry import SymbolRegistry
from .repository import MetricsRepository
from .runtime import get_or_create_registry
from .state import ServiceState, service_state
from .timeframes import HOUR_MS

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

PRUNE_INTERVAL_MS = HOUR_MS


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_fetcher(config: Config) -> PriceFetcher:
    return PriceFetcher(
        config.tokens,
        FetcherConfig(
            jupiter_api_url=config.jupiter_api_url,
            dexscreener_api_url=config.dexscreener_api_url,
            jupiter_refresh_seconds=config.jupiter_refresh_seconds,
            dexscreener_refresh_seconds=config.dexscreener_refresh_seconds,
            dexscreener_request_delay_seconds=config.dexscreener_request_delay_seconds,
            timeout_seconds=config.fetch_timeout_seconds,
            max_retries=config.fetch_max_retries,
        ),
    )


class Collector:
    """One fetch, ingest, persist pass per cycle, all ticks stamped with the cycle time."""

    def __init__(
        self,
        *,
        registry: SymbolRegistry,
        fetcher: PriceFetcher,
        ingestor: TickIngestor,
        repository: MetricsRepository | None,
        persist_price_history: bool = True,
        state: ServiceState | None = None,
    ) -> None:
        self._registry = registry
        self._fetcher = fetcher
        self._ingestor = ingestor
        self._repository = repository
        self._persist_price_history = persist_price_history
        self._state = state or service_state
        self._last_prune_ms: int | None = None

    async def run_cycle(self, now_ms: int | None = None) -> list[PriceTick]:
        now_ms = now_ms if now_ms is not None else _now_ms()
        quotes = await self._fetcher.fetch_quotes()

        self._ingestor.drain_accepted()
        for symbol, quote in quotes.items():
            if quote.price is None or not self._registry.is_tracked(symbol):
                continue
            self._ingestor.submit(PriceTick(symbol=symbol, price=quote.price, ts_ms=now_ms))
        await self._ingestor.join()
        ticks = self._ingestor.drain_accepted()

        self._persist(ticks, quotes, now_ms)
        self._state.record_cycle(now_ms, [tick.symbol for tick in ticks])
        logger.info("[Collector] Cycle at %s recorded %s/%s symbols", now_ms, len(ticks), len(self._registry.symbols))
        return ticks

    def _persist(self, ticks: list[PriceTick], quotes: dict[str, MarketQuote], now_ms: int) -> None:
        if self._repository is None:
            return

        if self._persist_price_history and ticks:
            try:
                self._repository.append_ticks(ticks)
            except sqlite3.Error as exc:
                logger.warning("[Collector] Failed to save price history: %s", exc)

        for metrics in self._registry.all_metrics():
            if metrics.price is None:
                continue
            try:
                self._repository.upsert_metrics(metrics, quotes.get(metrics.symbol))
            except sqlite3.Error as exc:
                logger.warning("[Collector] Failed to save metrics for %s: %s", metrics.symbol, exc)

        if self._last_prune_ms is None or now_ms - self._last_prune_ms >= PRUNE_INTERVAL_MS:
            try:
                self._repository.prune_history(now_ms - self._registry.retention_ms)
            except sqlite3.Error as exc:
                logger.warning("[Collector] Failed to prune price history: %s", exc)
            self._last_prune_ms = now_ms


def seed_registry(registry: SymbolRegistry, repository: MetricsRepository, now_ms: int | None = None) -> int:
    now_ms = now_ms if now_ms is not None else _now_ms()
    since_ms = now_ms - registry.retention_ms
    total = 0
    for symbol in registry.symbols:
        seeded = registry.seed_history(symbol, repository.recent_ticks(symbol, since_ms))
        if seeded:
            logger.info("[Collector] Seeded %s with %s stored ticks", symbol, seeded)
        total += seeded
    return total


async def run() -> None:
    config = load_config()
    logging.getLogger().setLevel(config.log_level)

    registry = get_or_create_registry(config)
    repository = MetricsRepository(config.metrics_db_path)
    if config.seed_from_price_history:
        seed_registry(registry, repository)

    ingestor = TickIngestor(registry, service_state)
    collector = Collector(
        registry=registry,
        fetcher=build_fetcher(config),
        ingestor=ingestor,
        repository=repository,
        persist_price_history=config.persist_price_history,
        state=service_state,
    )

    service_state.add_event(
        "info",
        "collector_started",
        {
            "symbols": config.symbols,
            "fetch_interval_seconds": config.fetch_interval_seconds,
        },
    )
    logger.info(
        "[Collector] Tracking %s every %ss",
        ", ".join(config.symbols),
        config.fetch_interval_seconds,
    )

    await ingestor.start()
    try:
        while True:
            started = time.monotonic()
            try:
                await collector.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.exception("[Collector] Cycle failed: %s", exc)
                service_state.add_event("error", "collector_cycle_failed", {"reason": str(exc)})

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, config.fetch_interval_seconds - elapsed))
    finally:
        await ingestor.stop()


if __name__ == "__main__":
    asyncio.run(run())
