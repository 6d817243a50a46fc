from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque


@dataclass
class ServiceEvent:
    ts: float
    level: str
    message: str
    data: dict = field(default_factory=dict)


class ServiceState:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_ts = time.time()
        self._cycles_completed = 0
        self._last_cycle_ts_ms: int | None = None
        self._last_cycle_symbols: list[str] = []
        self._ticks_recorded = 0
        self._ticks_rejected = 0
        self._events: Deque[ServiceEvent] = deque(maxlen=200)

    def record_cycle(self, ts_ms: int, symbols: list[str]) -> None:
        with self._lock:
            self._cycles_completed += 1
            self._last_cycle_ts_ms = ts_ms
            self._last_cycle_symbols = list(symbols)

    def record_tick_accepted(self) -> None:
        with self._lock:
            self._ticks_recorded += 1

    def record_tick_rejected(self, symbol: str, reason: str) -> None:
        with self._lock:
            self._ticks_rejected += 1
            self._events.append(
                ServiceEvent(
                    ts=time.time(),
                    level="warning",
                    message="tick_rejected",
                    data={"symbol": symbol, "reason": reason},
                )
            )

    def add_event(self, level: str, message: str, data: dict | None = None) -> None:
        with self._lock:
            self._events.append(
                ServiceEvent(
                    ts=time.time(),
                    level=level,
                    message=message,
                    data=data or {},
                )
            )

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "started_ts": self._started_ts,
                "cycles_completed": self._cycles_completed,
                "last_cycle_ts_ms": self._last_cycle_ts_ms,
                "last_cycle_symbols": list(self._last_cycle_symbols),
                "ticks_recorded": self._ticks_recorded,
                "ticks_rejected": self._ticks_rejected,
                "events": [
                    {
                        "ts": e.ts,
                        "level": e.level,
                        "message": e.message,
                        "data": e.data,
                    }
                    for e in list(self._events)
                ],
            }


service_state = ServiceState()
