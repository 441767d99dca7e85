import math

import numpy as np
import pytest

from core.emotion import EMOTION_LABELS, dominant_emotion, normalize_scores, score_vector
from core.models import EmotionScore


def test_labels_order():
    assert EMOTION_LABELS == ("Angry", "Disgust", "Fear", "Happy", "Sad", "Surprise", "Neutral")


def test_scores_sum_to_one_in_label_order():
    scores = score_vector([0.1, 0.0, 0.0, 0.7, 0.1, 0.0, 0.1])
    assert [s.emotion for s in scores] == list(EMOTION_LABELS)
    assert math.isclose(sum(s.probability for s in scores), 1.0, abs_tol=1e-9)
    assert all(0.0 <= s.probability <= 1.0 for s in scores)


def test_unnormalized_logits_are_rescaled():
    probs = normalize_scores([2, 0, 0, 6, 0, 0, 2])
    assert math.isclose(probs.sum(), 1.0)
    assert math.isclose(probs[3], 0.6)


def test_bad_entries_clamped_and_short_vector_padded():
    probs = normalize_scores([float("nan"), -3.0, float("inf"), 1.0])
    assert probs.shape == (7,)
    assert probs[3] == 1.0
    assert probs[:3].sum() == 0


def test_all_zero_becomes_uniform():
    probs = normalize_scores([0] * 7)
    assert np.allclose(probs, 1.0 / 7)


def test_huge_values_do_not_overflow():
    probs = normalize_scores([1e308, 1e308, 0, 0, 0, 0, 0])
    assert np.allclose(probs[:2], 0.5)


def test_dominant_is_max():
    scores = score_vector([0.1, 0.0, 0.0, 0.7, 0.1, 0.0, 0.1])
    assert dominant_emotion(scores).emotion == "Happy"


def test_dominant_tie_goes_to_earliest_label():
    scores = [EmotionScore(emotion=l, probability=0.5 if l in ("Sad", "Fear") else 0.0) for l in EMOTION_LABELS]
    assert dominant_emotion(scores).emotion == "Fear"


def test_dominant_empty_raises():
    with pytest.raises(ValueError):
        dominant_emotion([])
