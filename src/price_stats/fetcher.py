from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any

import httpx

from .models import MarketQuote

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetcherConfig:
    jupiter_api_url: str
    dexscreener_api_url: str
    jupiter_refresh_seconds: float = 10.0
    dexscreener_refresh_seconds: float = 60.0
    dexscreener_request_delay_seconds: float = 0.15
    timeout_seconds: float = 10.0
    max_retries: int = 2


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _positive(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value


def parse_jupiter_payload(body: Any, tokens: dict[str, str]) -> dict[str, float]:
    if not isinstance(body, dict):
        return {}

    # Older responses nest the mint map under "data".
    entries = body.get("data") if isinstance(body.get("data"), dict) else body

    prices: dict[str, float] = {}
    for symbol, mint in tokens.items():
        entry = entries.get(mint)
        if not isinstance(entry, dict):
            continue
        price = _positive(_as_float(entry.get("usdPrice", entry.get("price"))))
        if price is not None:
            prices[symbol] = price
    return prices


def parse_dexscreener_payload(body: Any, symbol: str) -> MarketQuote | None:
    if not isinstance(body, dict):
        return None
    pairs = body.get("pairs")
    if not isinstance(pairs, list) or not pairs or not isinstance(pairs[0], dict):
        return None

    pair = pairs[0]
    volume = pair.get("volume") if isinstance(pair.get("volume"), dict) else {}
    change = pair.get("priceChange") if isinstance(pair.get("priceChange"), dict) else {}
    liquidity = pair.get("liquidity") if isinstance(pair.get("liquidity"), dict) else {}

    return MarketQuote(
        symbol=symbol,
        price=_positive(_as_float(pair.get("priceUsd"))),
        source="dexscreener",
        volume_5m=_as_float(volume.get("m5")),
        volume_1h=_as_float(volume.get("h1")),
        volume_6h=_as_float(volume.get("h6")),
        volume_24h=_as_float(volume.get("h24")),
        change_5m=_as_float(change.get("m5")),
        change_1h=_as_float(change.get("h1")),
        change_6h=_as_float(change.get("h6")),
        change_24h=_as_float(change.get("h24")),
        liquidity_usd=_as_float(liquidity.get("usd")),
        market_cap=_as_float(pair.get("marketCap")),
    )


class PriceFetcher:
    """Polls Jupiter for prices and DexScreener for market data.

    Each source has its own refresh interval. Between refreshes the last known
    quote is reused, so every collection cycle still yields one price per
    symbol once a source has answered.
    """

    def __init__(
        self,
        tokens: dict[str, str],
        config: FetcherConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.tokens = dict(tokens)
        self._config = config
        self._transport = transport
        self._jupiter_prices: dict[str, float] = {}
        self._market_quotes: dict[str, MarketQuote] = {}
        self._last_jupiter_fetch: float | None = None
        self._last_dexscreener_fetch: float | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._config.timeout_seconds, transport=self._transport)

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: dict | None = None) -> Any:
        attempts = max(0, self._config.max_retries) + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_error = exc
                if attempt >= attempts - 1:
                    break
                await asyncio.sleep(min(2.0, (0.35 * (2**attempt)) + random.uniform(0.05, 0.25)))

        raise RuntimeError(f"request to {url} failed after retries: {last_error}")

    async def fetch_jupiter_prices(self) -> dict[str, float]:
        params = {"ids": ",".join(self.tokens.values())}
        try:
            async with self._client() as client:
                body = await self._get_json(client, self._config.jupiter_api_url, params=params)
        except RuntimeError as exc:
            logger.warning("[Fetcher] Jupiter prices unavailable: %s", exc)
            return {}

        prices = parse_jupiter_payload(body, self.tokens)
        missing = sorted(set(self.tokens) - set(prices))
        if missing:
            logger.info("[Fetcher] Jupiter returned no price for %s", ", ".join(missing))
        return prices

    async def fetch_dexscreener_quote(self, client: httpx.AsyncClient, symbol: str, mint: str) -> MarketQuote | None:
        url = f"{self._config.dexscreener_api_url.rstrip('/')}/{mint}"
        try:
            body = await self._get_json(client, url)
        except RuntimeError as exc:
            logger.warning("[Fetcher] DexScreener data unavailable for %s: %s", symbol, exc)
            return None
        return parse_dexscreener_payload(body, symbol)

    async def fetch_dexscreener_quotes(self) -> dict[str, MarketQuote]:
        quotes: dict[str, MarketQuote] = {}
        async with self._client() as client:
            for index, (symbol, mint) in enumerate(self.tokens.items()):
                if index and self._config.dexscreener_request_delay_seconds > 0:
                    await asyncio.sleep(self._config.dexscreener_request_delay_seconds)
                quote = await self.fetch_dexscreener_quote(client, symbol, mint)
                if quote is not None:
                    quotes[symbol] = quote
        return quotes

    @staticmethod
    def _is_due(last_fetch: float | None, interval: float, now: float) -> bool:
        return last_fetch is None or now - last_fetch >= interval

    async def fetch_quotes(self, now: float | None = None) -> dict[str, MarketQuote]:
        now = now if now is not None else time.monotonic()

        if self._is_due(self._last_dexscreener_fetch, self._config.dexscreener_refresh_seconds, now):
            self._market_quotes.update(await self.fetch_dexscreener_quotes())
            self._last_dexscreener_fetch = now

        if self._is_due(self._last_jupiter_fetch, self._config.jupiter_refresh_seconds, now):
            self._jupiter_prices.update(await self.fetch_jupiter_prices())
            self._last_jupiter_fetch = now

        merged: dict[str, MarketQuote] = {}
        for symbol in self.tokens:
            market = self._market_quotes.get(symbol)
            jupiter_price = self._jupiter_prices.get(symbol)
            if jupiter_price is not None:
                base = market or MarketQuote(symbol=symbol, price=None, source="jupiter")
                merged[symbol] = replace(base, price=jupiter_price, source="jupiter")
            elif market is not None and market.price is not None:
                merged[symbol] = market
        return merged
