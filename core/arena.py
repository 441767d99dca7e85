"""
Scoped ownership for per-frame buffers and tensors.

Every frame gets one arena; the frame and each intermediate tensor are
tracked in it and released together when the `with` block exits, on the
success path and on errors alike.
"""
from __future__ import annotations
from typing import Any, Callable, List, Optional, Tuple, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TensorArena:
    """
    Sole owner of large per-frame buffers until scope exit.

    Callers hand tracked objects over rather than keeping their own references,
    so dropping the arena's reference frees them. A `release` callback covers
    objects that need explicit disposal. `released` counts entries dropped.
    """

    def __init__(self, name: str = "frame"):
        self.name = name
        self._held: List[Tuple[Any, Optional[Callable[[Any], None]]]] = []
        self.released = 0

    def __enter__(self) -> "TensorArena":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    def __len__(self) -> int:
        return len(self._held)

    def track(self, obj: T, release: Optional[Callable[[T], None]] = None) -> T:
        """Register `obj` with the arena and hand it back; `release` runs at scope exit."""
        self._held.append((obj, release))
        return obj

    def release(self) -> None:
        """Release everything in reverse acquisition order. Safe to call more than once."""
        held, self._held = self._held, []
        for obj, release in reversed(held):
            if release is None:
                continue
            try:
                release(obj)
            except Exception:
                logger.exception(f"[arena] release failed in arena={self.name}")
        self.released += len(held)
