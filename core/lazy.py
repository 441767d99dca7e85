"""
Once-only lazy construction of expensive shared engines.
"""
from __future__ import annotations
from typing import Callable, Generic, Optional, TypeVar
import asyncio
import logging
import time

from core.errors import EngineInitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LazyResource(Generic[T]):
    """
    Builds `factory()` on first `get()` and shares the result.

    Concurrent first callers await the same future, so construction runs once.
    The factory is blocking (model load), so it runs in a worker thread.
    A failed construction stays failed; every later `get()` re-raises it.
    """

    def __init__(self, factory: Callable[[], T], name: str):
        self._factory = factory
        self.name = name
        self._future: Optional[asyncio.Future] = None

    async def get(self) -> T:
        if self._future is None:
            self._future = asyncio.ensure_future(self._build())
        return await asyncio.shield(self._future)

    async def _build(self) -> T:
        t0 = time.monotonic()
        logger.info(f"[startup] building {self.name}...")
        try:
            value = await asyncio.to_thread(self._factory)
        except Exception as e:
            logger.critical(f"[startup] {self.name} construction failed: {e}")
            raise EngineInitError(f"{self.name} construction failed: {e}") from e
        logger.info(f"[startup] {self.name} ready in {(time.monotonic() - t0) * 1000:.0f} ms")
        return value

    @property
    def ready(self) -> bool:
        f = self._future
        return f is not None and f.done() and not f.cancelled() and f.exception() is None

    @property
    def failed(self) -> bool:
        f = self._future
        return f is not None and f.done() and not f.cancelled() and f.exception() is not None
