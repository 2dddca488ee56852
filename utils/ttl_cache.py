# utils/ttl_cache.py
"""Tiny key/value store with per-entry expiry, injected wherever the bot
needs a cross-signal cache (currency rates). Clock is injectable so tests
can move time forward."""
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLStore:
    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._data: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        item = self._data.get(key)
        if item is None:
            return default
        value, expires_at = item
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return default
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self._data[key] = (value, self._clock() + (self.ttl if ttl is None else ttl))

    def expire(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return sum(1 for k in list(self._data) if k in self)
