from __future__ import annotations

import asyncio
import logging

from .errors import InvalidTickError
from .models import PriceTick
from .registry import SymbolRegistry
from .state import ServiceState, service_state

logger = logging.getLogger(__name__)


class TickIngestor:
    """Applies ticks to the registry strictly in arrival order.

    A single worker drains an unbounded FIFO queue, so a burst from upstream
    is delayed rather than reordered or dropped.
    """

    def __init__(self, registry: SymbolRegistry, state: ServiceState | None = None) -> None:
        self._registry = registry
        self._state = state or service_state
        self._queue: asyncio.Queue[PriceTick] = asyncio.Queue()
        self._worker_task: asyncio.Task[None] | None = None
        self._accepted: list[PriceTick] = []

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def apply(self, tick: PriceTick) -> bool:
        try:
            accepted = self._registry.record_tick(tick)
        except InvalidTickError as exc:
            logger.warning("[Ingest] Rejected tick %s: %s", tick, exc)
            self._state.record_tick_rejected(tick.symbol, str(exc))
            return False
        self._accepted.append(accepted)
        self._state.record_tick_accepted()
        return True

    def drain_accepted(self) -> list[PriceTick]:
        accepted, self._accepted = self._accepted, []
        return accepted

    async def start(self) -> None:
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._worker(), name="tick-ingest-worker")

    async def stop(self) -> None:
        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

    def submit(self, tick: PriceTick) -> None:
        self._queue.put_nowait(tick)

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            tick = await self._queue.get()
            try:
                self.apply(tick)
            except Exception as exc:  # noqa: BLE001
                logger.exception("[Ingest] worker failed on %s: %s", tick, exc)
            finally:
                self._queue.task_done()
