"""
Frame throttle and sink for one received video track.

Frames arriving faster than the configured interval, or while the previous
frame of the same track is still in inference, are dropped. Nothing is queued.
"""
from __future__ import annotations
from typing import Callable, Optional
import asyncio
import logging
import time

from aiortc.mediastreams import MediaStreamError

from core.models import Frame
from core.registry import StreamSession

logger = logging.getLogger(__name__)


def frame_from_av(av_frame) -> Frame:
    """Adapt a PyAV VideoFrame (as delivered by aiortc) to an I420 Frame."""
    if isinstance(av_frame, Frame):
        return av_frame
    width, height = int(av_frame.width), int(av_frame.height)
    if not width or not height:
        raise ValueError(f"frame without dimensions: {width}x{height}")
    planes = av_frame.to_ndarray(format="yuv420p")
    return Frame(width=width, height=height, data=planes)


class FrameSink:
    """Pulls frames off an aiortc track and feeds throttled survivors to the pipeline."""

    def __init__(
        self,
        track,
        session: StreamSession,
        pipeline,
        interval_ms: float = 200.0,
        clock: Callable[[], float] = time.monotonic,
        on_cleanup: Optional[Callable[["FrameSink"], None]] = None,
    ):
        self.track = track
        self.session = session
        self.pipeline = pipeline
        self.interval_ms = max(0.0, float(interval_ms))
        self._clock = clock
        self._on_cleanup = on_cleanup
        self._recv_task: Optional[asyncio.Task] = None
        self.inflight: Optional[asyncio.Task] = None
        self.received = 0
        self.processed = 0

    # ---- lifecycle ----
    def start(self) -> None:
        if self._recv_task is None and not self.session.closed:
            self.track.on("ended", self.cleanup)
            self._recv_task = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        try:
            while not self.session.closed:
                try:
                    frame = await self.track.recv()
                except MediaStreamError:
                    logger.info(f"[sink] track={self.session.track_id} ended")
                    break
                self.offer(frame)
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        """Stop receiving and deregister. Only the first call has any effect."""
        if self.session.closed:
            return
        self.session.closed = True
        task = self._recv_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        self._recv_task = None
        try:
            self.track.remove_listener("ended", self.cleanup)
        except (AttributeError, KeyError):
            # never attached (start() not called) or track without an emitter
            pass
        logger.info(
            f"[sink] stopped track={self.session.track_id} received={self.received} processed={self.processed}"
        )
        if self._on_cleanup is not None:
            try:
                self._on_cleanup(self)
            except Exception:
                logger.exception(f"[sink] cleanup hook failed for track={self.session.track_id}")

    # ---- throttling ----
    def offer(self, frame) -> bool:
        """
        Decide whether `frame` gets processed.

        Returns:
            bool: True when the frame was handed to the pipeline, False when dropped.
        """
        self.received += 1
        if self.session.closed or frame is None:
            return False
        now = self._clock() * 1000.0
        last = self.session.last_processed_at
        if last is not None and now - last < self.interval_ms:
            return False
        if self.session.busy:
            logger.debug(f"[sink] track={self.session.track_id} busy; dropping frame")
            return False
        self.session.last_processed_at = now
        self.session.busy = True
        self.processed += 1
        self.inflight = asyncio.ensure_future(self._process(frame))
        return True

    async def _process(self, raw) -> None:
        try:
            frame = frame_from_av(raw)
            await self.pipeline.process(self.session, frame)
        except Exception:
            # one bad frame never tears the session down
            logger.exception(f"[sink] frame processing error on track={self.session.track_id}")
        finally:
            self.session.busy = False
