from __future__ import annotations

import threading

from .config import Config, load_config
from .registry import SymbolRegistry

_registry: SymbolRegistry | None = None
_lock = threading.Lock()


def build_registry(config: Config) -> SymbolRegistry:
    return SymbolRegistry(config.symbols, retention_ms=config.history_retention_ms)


def get_or_create_registry(config: Config | None = None) -> SymbolRegistry:
    global _registry

    if _registry is not None:
        return _registry

    with _lock:
        if _registry is None:
            _registry = build_registry(config or load_config())
        return _registry


def set_registry(registry: SymbolRegistry | None) -> None:
    global _registry

    with _lock:
        _registry = registry
