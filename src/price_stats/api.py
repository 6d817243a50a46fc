from __future__ import annotations

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .registry import SymbolRegistry
from .runtime import get_or_create_registry
from .state import service_state
from .timeframes import TIMEFRAME_NAMES, get_timeframe
from .volatility import is_valid_volatility

app = FastAPI(title="Price Stats API", version="0.1.0")


class RangeResponse(BaseModel):
    symbol: str
    timeframe: str
    high: float | None
    low: float | None
    range: float | None


class VolatilityResponse(BaseModel):
    symbol: str
    timeframe: str
    volatility: float | None
    valid: bool


def _registry_for(symbol: str) -> SymbolRegistry:
    registry = get_or_create_registry()
    if not registry.is_tracked(symbol):
        raise HTTPException(status_code=404, detail=f"symbol not tracked: {symbol}")
    return registry


def _timeframe_name(timeframe: str) -> str:
    spec = get_timeframe(timeframe)
    if spec is None:
        raise HTTPException(
            status_code=404,
            detail=f"unknown timeframe: {timeframe}; expected one of {', '.join(TIMEFRAME_NAMES)}",
        )
    return spec.name


@app.get("/healthz")
async def healthz() -> dict:
    return {"ok": True}


@app.get("/status")
async def status() -> dict:
    return service_state.snapshot()


@app.get("/symbols")
async def list_symbols() -> dict:
    return {"items": get_or_create_registry().symbols, "timeframes": list(TIMEFRAME_NAMES)}


@app.get("/symbols/{symbol}/metrics")
async def symbol_metrics(symbol: str) -> dict:
    return _registry_for(symbol).metrics(symbol).as_record()


@app.get("/symbols/{symbol}/range/{timeframe}")
async def symbol_range(symbol: str, timeframe: str) -> dict:
    registry = _registry_for(symbol)
    name = _timeframe_name(timeframe)
    snapshot = registry.query_range(symbol, name)
    response = RangeResponse(
        symbol=symbol,
        timeframe=name,
        high=snapshot.high,
        low=snapshot.low,
        range=snapshot.range,
    )
    return response.model_dump()


@app.get("/symbols/{symbol}/volatility/{timeframe}")
async def symbol_volatility(symbol: str, timeframe: str) -> dict:
    registry = _registry_for(symbol)
    name = _timeframe_name(timeframe)
    volatility = registry.query_volatility(symbol, name)
    response = VolatilityResponse(
        symbol=symbol,
        timeframe=name,
        volatility=volatility,
        valid=is_valid_volatility(volatility),
    )
    return response.model_dump()
