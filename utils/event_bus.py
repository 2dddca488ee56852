# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A super-light pub/sub the whole bot can import.

Handlers may be plain functions or coroutines. `publish()` awaits them in
subscription order, so one signal's audit/notification work finishes
before the next signal is processed."""
from __future__ import annotations
import asyncio
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Union

from utils.logger import setup_logger

logger = setup_logger(__name__)

_Handler = Callable[[object], Union[Awaitable[None], None]]


class _EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> None:
        if fn not in self._subs[topic]:
            self._subs[topic].append(fn)

    def unsubscribe(self, topic: str, fn: Optional[_Handler] = None) -> None:
        if fn is None:
            self._subs.pop(topic, None)
        elif fn in self._subs.get(topic, []):
            self._subs[topic].remove(fn)

    async def publish(self, topic: str, payload: object) -> int:
        """Deliver to every subscriber; returns how many handlers succeeded."""
        delivered = 0
        for fn in list(self._subs.get(topic, [])):
            try:
                res = fn(payload)
                if asyncio.iscoroutine(res):
                    await res
                delivered += 1
            except Exception:  # noqa: BLE001 (one bad subscriber must not stop the others)
                logger.exception("[event_bus] handler %r failed on %s", fn, topic)
        return delivered

# singleton – import this everywhere
BUS = _EventBus()

# convenience shims so callers don’t care about the BUS name
subscribe = BUS.subscribe
unsubscribe = BUS.unsubscribe
publish = BUS.publish
