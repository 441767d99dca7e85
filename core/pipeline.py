# core/pipeline.py
"""
Per-frame pipeline: I420 -> RGB -> face detection -> emotion classification -> broadcast.
"""
from __future__ import annotations
from typing import Callable, List
import logging
import time

from core.arena import TensorArena
from core.broadcast import Broadcaster, EMOTION_CHANNEL
from core.classifier import EmotionClassifierStage
from core.detector import FaceDetectorStage
from core.models import EmotionEvent, Frame
from core.registry import StreamSession
from core.yuv import i420_to_rgb

logger = logging.getLogger(__name__)


class EmotionPipeline:
    """Wires the converter, both inference stages and the dispatcher together."""

    def __init__(
        self,
        detector: FaceDetectorStage,
        classifier: EmotionClassifierStage,
        broadcaster: Broadcaster,
        clock: Callable[[], float] = time.time,
    ):
        self.detector = detector
        self.classifier = classifier
        self.broadcaster = broadcaster
        self._clock = clock

    @property
    def ready(self) -> bool:
        return self.detector.ready and self.classifier.ready

    @property
    def failed(self) -> bool:
        return self.detector.failed or self.classifier.failed

    async def warm_up(self) -> None:
        """Build both engines up front; any failure here is fatal for the service."""
        await self.detector.warm_up()
        await self.classifier.warm_up()

    def _note_faces(self, session: StreamSession, count: int) -> None:
        if count > 0 and not session.has_seen_face:
            session.has_seen_face = True
            logger.info(f"[face] new face detected on track={session.track_id} (faces={count})")
        elif count == 0 and session.has_seen_face:
            session.has_seen_face = False
            logger.info(f"[face] face lost on track={session.track_id}")

    async def process(self, session: StreamSession, frame: Frame) -> List[EmotionEvent]:
        """
        Run one frame through the pipeline and publish one event per detected face.

        The converted frame and every intermediate buffer are owned by a per-frame
        arena; no other reference outlives its use, so the buffers are freed when
        the arena is released on return or on error. If the session closed while
        inference was running, the results are computed but not dispatched.

        Returns:
            List[EmotionEvent]: Events that were published (empty when none).
        """
        with TensorArena(f"track={session.track_id}") as arena:
            arena.track(frame)
            rgb = arena.track(i420_to_rgb(frame.data, frame.width, frame.height))

            boxes = await self.detector.detect(rgb)
            self._note_faces(session, len(boxes))
            if not boxes:
                return []

            results = await self.classifier.classify(rgb, boxes, arena=arena)
            del rgb

        if not results:
            logger.debug(f"[emotion] no classifications on track={session.track_id} (faces={len(boxes)})")
            return []
        if session.closed:
            logger.debug(f"[emotion] track={session.track_id} closed during inference; discarding {len(results)} result(s)")
            return []

        ts = int(self._clock() * 1000)
        events: List[EmotionEvent] = []
        for r in results:
            event = EmotionEvent(
                track_id=session.track_id,
                ts=ts,
                box=r.box,
                dominant_emotion=r.dominant,
                emotions=r.emotions,
            )
            await self.broadcaster.publish(EMOTION_CHANNEL, event.to_wire())
            events.append(event)
            dom = r.dominant
            logger.info(
                f"[emotion] {dom.emotion} {dom.probability * 100:.1f}% "
                f"@ box({round(r.box.x)},{round(r.box.y)},{round(r.box.width)}x{round(r.box.height)}) track={session.track_id}"
            )
        return events
