"""
Face detection stage backed by DeepFace's detector backends.
"""
from __future__ import annotations
from typing import Callable, List, Optional
import asyncio
import logging
import threading

import cv2
import numpy as np

from core.config import Settings
from core.lazy import LazyResource
from core.models import DetectionBox

logger = logging.getLogger(__name__)


def to_detection_box(raw) -> Optional[DetectionBox]:
    """
    Normalize one detector result into a DetectionBox.

    Accepted shapes:
      {"facial_area": {x, y, w, h}}            (DeepFace.extract_faces)
      {"region": {x, y, w, h}}                 (DeepFace.analyze)
      {"box": {xMin, yMin, width|xMax, height|yMax}}
      {"topLeft": [x1, y1], "bottomRight": [x2, y2]}
    Anything else yields None.
    """
    if not isinstance(raw, dict):
        return None

    area = raw.get("facial_area") or raw.get("region")
    if isinstance(area, dict) and "x" in area and "y" in area:
        return DetectionBox(
            x=float(area.get("x", 0)),
            y=float(area.get("y", 0)),
            width=float(area.get("w", 0)),
            height=float(area.get("h", 0)),
        )

    box = raw.get("box")
    if isinstance(box, dict) and "xMin" in box and "yMin" in box:
        w = box.get("width", box.get("xMax", 0) - box["xMin"])
        h = box.get("height", box.get("yMax", 0) - box["yMin"])
        return DetectionBox(x=float(box["xMin"]), y=float(box["yMin"]), width=float(w), height=float(h))

    tl, br = raw.get("topLeft"), raw.get("bottomRight")
    if isinstance(tl, (list, tuple)) and isinstance(br, (list, tuple)) and len(tl) >= 2 and len(br) >= 2:
        x1, y1 = float(tl[0]), float(tl[1])
        x2, y2 = float(br[0]), float(br[1])
        return DetectionBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    return None


def clip_to_frame(box: DetectionBox, frame_w: int, frame_h: int) -> DetectionBox:
    """Clamp a pixel box to [0, frame_w] x [0, frame_h]."""
    x1 = min(max(0.0, box.x), float(frame_w))
    y1 = min(max(0.0, box.y), float(frame_h))
    x2 = min(max(0.0, box.x + box.width), float(frame_w))
    y2 = min(max(0.0, box.y + box.height), float(frame_h))
    return DetectionBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def _confidence(raw: dict) -> float:
    conf = raw.get("confidence", raw.get("face_confidence", raw.get("score", 1.0)))
    if isinstance(conf, (list, tuple)):
        conf = conf[0] if conf else 1.0
    try:
        return float(conf)
    except (TypeError, ValueError):
        return 1.0


class DeepFaceEngine:
    """
    Thin wrapper over `DeepFace.extract_faces`.

    DeepFace returns a whole-frame placeholder with confidence 0 when nothing is
    found and enforce_detection=False; the confidence gate filters it out.
    """

    def __init__(self, backend: str = "opencv"):
        # Lazy import for easier testing and to avoid loading heavy stacks too early
        from deepface import DeepFace
        self._df = DeepFace
        self.backend = backend
        self._lock = threading.Lock()
        # warm-up forces backend selection and model load now rather than on the first frame
        self.detect(np.zeros((64, 64, 3), dtype=np.uint8))

    def detect(self, rgb: np.ndarray) -> List[dict]:
        bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        with self._lock:
            faces = self._df.extract_faces(
                img_path=bgr,
                detector_backend=self.backend,
                enforce_detection=False,
                align=False,
            )
        return list(faces or [])


class FaceDetectorStage:
    """Shared, lazily-built face detector returning pixel-space boxes."""

    def __init__(self, settings: Settings, engine_factory: Callable[[], object] | None = None):
        self.s = settings
        factory = engine_factory or (lambda: DeepFaceEngine(backend=settings.DETECTOR_BACKEND))
        self._engine = LazyResource(factory, name="face detector")

    @property
    def ready(self) -> bool:
        return self._engine.ready

    @property
    def failed(self) -> bool:
        return self._engine.failed

    async def warm_up(self) -> None:
        await self._engine.get()

    def _keep(self, raw: dict, box: DetectionBox, frame_w: int, frame_h: int) -> bool:
        if box.width < self.s.MIN_FACE_SIZE or box.height < self.s.MIN_FACE_SIZE:
            return False
        if _confidence(raw) < self.s.MIN_FACE_CONFIDENCE:
            return False
        # whole-frame placeholder means "no face"
        if box.x <= 0 and box.y <= 0 and box.width >= frame_w and box.height >= frame_h:
            return False
        return True

    def boxes_from_raw(self, results, frame_w: int, frame_h: int) -> List[DetectionBox]:
        boxes: List[DetectionBox] = []
        for raw in results or []:
            box = to_detection_box(raw)
            if box is None:
                logger.debug(f"[face] unrecognized detector result shape: {type(raw).__name__}")
                continue
            box = clip_to_frame(box, frame_w, frame_h)
            if self._keep(raw, box, frame_w, frame_h):
                boxes.append(box)
        return boxes

    async def detect(self, rgb: np.ndarray) -> List[DetectionBox]:
        """
        Detect faces in one RGB frame (H, W, 3).

        Returns:
            List[DetectionBox]: Pixel-space boxes; empty when no face is present.
        """
        engine = await self._engine.get()
        h, w = rgb.shape[:2]
        results = await asyncio.to_thread(engine.detect, rgb)
        boxes = self.boxes_from_raw(results, w, h)
        logger.debug(f"[face] faces_detected={len(boxes)} raw={len(results or [])}")
        return boxes
