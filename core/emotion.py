"""
Emotion label set, score normalization and dominant-emotion selection.
"""
# core/emotion.py
from __future__ import annotations
from typing import List, Sequence

import numpy as np

from core.models import EmotionScore

EMOTION_LABELS = ("Angry", "Disgust", "Fear", "Happy", "Sad", "Surprise", "Neutral")


def normalize_scores(raw: Sequence[float]) -> np.ndarray:
    """
    Turn raw model outputs into a probability distribution over EMOTION_LABELS.

    Negative and non-finite entries are clamped to 0, missing entries count as 0,
    extra entries are ignored. The result always sums to 1; an all-zero vector
    becomes uniform.
    """
    arr = np.asarray(raw, dtype=np.float64).reshape(-1)
    vec = np.zeros(len(EMOTION_LABELS), dtype=np.float64)
    n = min(arr.size, vec.size)
    vec[:n] = arr[:n]
    vec = np.where(np.isfinite(vec) & (vec > 0), vec, 0.0)

    peak = vec.max()
    if peak <= 0:
        return np.full(len(EMOTION_LABELS), 1.0 / len(EMOTION_LABELS))
    # scale first so huge finite values cannot overflow the sum
    vec = vec / peak
    return vec / vec.sum()


def score_vector(raw: Sequence[float]) -> List[EmotionScore]:
    probs = normalize_scores(raw)
    return [EmotionScore(emotion=label, probability=float(p)) for label, p in zip(EMOTION_LABELS, probs)]


def dominant_emotion(scores: Sequence[EmotionScore]) -> EmotionScore:
    """
    Highest-probability entry; ties go to the earliest label in canonical order.
    """
    if not scores:
        raise ValueError("dominant_emotion needs at least one score")
    best = scores[0]
    for s in scores[1:]:
        if s.probability > best.probability:
            best = s
    return best
