"""
Emotion classification stage: batched crop/resize of face regions into a
48x48 grayscale Keras model (FER-style, 7 classes).
"""
from __future__ import annotations
from contextlib import nullcontext
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple
import asyncio
import logging
import threading

import numpy as np

from core.arena import TensorArena
from core.config import Settings
from core.emotion import score_vector, dominant_emotion
from core.errors import ModelNotFoundError
from core.lazy import LazyResource
from core.models import BoxModel, DetectionBox, EmotionResult

logger = logging.getLogger(__name__)

IMAGE_SIZE = 48  # model expects 48x48 grayscale
MODEL_RELATIVE = Path("face_emotion_model") / "model.h5"
BASE_DIR = Path(__file__).resolve().parents[1]


def model_candidates(settings: Settings) -> List[Path]:
    """Ordered model locations: explicit override, working dir, module-relative, repo assets."""
    candidates: List[Path] = []
    if settings.EMOTION_MODEL_PATH:
        candidates.append(Path(settings.EMOTION_MODEL_PATH))
    candidates += [
        Path.cwd() / "assets" / MODEL_RELATIVE,
        Path(__file__).resolve().parent / "assets" / MODEL_RELATIVE,
        BASE_DIR / "assets" / MODEL_RELATIVE,
    ]
    seen, ordered = set(), []
    for c in candidates:
        key = str(c)
        if key not in seen:
            seen.add(key)
            ordered.append(c)
    return ordered


def resolve_model_path(settings: Settings) -> Path:
    candidates = model_candidates(settings)
    for path in candidates:
        if path.is_file():
            logger.info(f"[emotion] model found at {path}")
            return path
    raise ModelNotFoundError(candidates)


def load_keras_model(path: Path):
    """Load the model definition + weights and run one warm-up prediction."""
    import tensorflow as tf  # lazy: keeps TF out of import time

    logger.info(f"[emotion] loading model {path} (tensorflow {tf.__version__})")
    model = tf.keras.models.load_model(str(path), compile=False)
    model.predict(np.zeros((1, IMAGE_SIZE, IMAGE_SIZE, 1), dtype=np.float32), verbose=0)
    return model


def normalize_box(
    box: DetectionBox,
    frame_width: int,
    frame_height: int,
    margin: float = 0.03,
) -> Tuple[float, float, float, float]:
    """
    Pixel box -> fractional (y1, x1, y2, x2) with an outward margin, clamped to the frame.
    """
    x1 = max(0.0, box.x - box.width * margin)
    y1 = max(0.0, box.y - box.height * margin)
    x2 = min(float(frame_width), box.x + box.width * (1 + margin))
    y2 = min(float(frame_height), box.y + box.height * (1 + margin))
    return (y1 / frame_height, x1 / frame_width, y2 / frame_height, x2 / frame_width)


class EmotionClassifierStage:
    """Shared, lazily-loaded emotion model with a batched per-face forward pass."""

    def __init__(self, settings: Settings, model_factory: Callable[[], object] | None = None):
        self.s = settings
        factory = model_factory or (lambda: load_keras_model(resolve_model_path(settings)))
        self._model = LazyResource(factory, name="emotion classifier")
        self._predict_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._model.ready

    @property
    def failed(self) -> bool:
        return self._model.failed

    async def warm_up(self) -> None:
        await self._model.get()

    async def classify(
        self,
        rgb: np.ndarray,
        boxes: Sequence[DetectionBox],
        arena: Optional[TensorArena] = None,
    ) -> List[EmotionResult]:
        """
        Score every box in one batch.

        Args:
            rgb: Frame as uint8 (H, W, 3).
            boxes: Pixel-space face boxes.
            arena: Per-frame arena owning the intermediates; a private one is used when omitted.

        Returns:
            List[EmotionResult]: One result per box, in input order.
        """
        if not boxes:
            return []
        model = await self._model.get()
        return await asyncio.to_thread(self._classify_sync, model, rgb, list(boxes), arena)

    def _prepare(self, tf, a: TensorArena, rgb: np.ndarray, norm) -> object:
        """Crop, resize and grayscale every box; the arena holds the only reference to each step."""
        batched = a.track(tf.expand_dims(a.track(tf.convert_to_tensor(rgb, dtype=tf.float32)), 0))  # [1,H,W,3]
        crops = a.track(tf.image.crop_and_resize(
            batched,
            a.track(tf.constant(norm, dtype=tf.float32)),        # [N,4]
            a.track(tf.zeros([len(norm)], dtype=tf.int32)),      # [N]
            [IMAGE_SIZE, IMAGE_SIZE],
        ))
        gray = a.track(tf.reduce_mean(crops, axis=3, keepdims=True))  # [N,48,48,1]
        return a.track(gray / 255.0)

    def _classify_sync(self, model, rgb: np.ndarray, boxes: List[DetectionBox], arena: Optional[TensorArena]) -> List[EmotionResult]:
        import tensorflow as tf

        h, w = rgb.shape[:2]
        norm = [normalize_box(b, w, h, self.s.BOX_MARGIN) for b in boxes]
        scope = nullcontext(arena) if arena is not None else TensorArena("classifier")

        with scope as a:
            inputs = self._prepare(tf, a, rgb, norm)
            with self._predict_lock:
                preds = a.track(np.asarray(model.predict(inputs, verbose=0), dtype=np.float64))
            del inputs
            rows = [[float(v) for v in r] for r in preds.reshape(len(boxes), -1)]
            del preds

        results: List[EmotionResult] = []
        for box, raw in zip(boxes, rows):
            emotions = score_vector(raw)
            results.append(EmotionResult(
                box=BoxModel(**box.as_dict()),
                emotions=emotions,
                dominant=dominant_emotion(emotions),
            ))
        return results
