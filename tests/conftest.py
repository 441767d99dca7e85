import pytest

from core.broadcast import Broadcaster
from core.config import Settings
from core.detector import FaceDetectorStage
from core.pipeline import EmotionPipeline
from tests.fakes import FakeDetectorEngine, FakePeerConnection, StubClassifier


@pytest.fixture
def settings():
    return Settings(ICE_SERVERS=None, EMOTION_MODEL_PATH=None, MIN_FACE_SIZE=20, MIN_FACE_CONFIDENCE=0.5)


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def one_face():
    # DeepFace.extract_faces result shape
    return [{"facial_area": {"x": 200, "y": 120, "w": 180, "h": 200}, "confidence": 0.97}]


@pytest.fixture
def make_pipeline(settings, broadcaster):
    def _make(detector_results=None, classifier=None, detector_error=None):
        engine = FakeDetectorEngine(detector_results, error=detector_error)
        detector = FaceDetectorStage(settings, engine_factory=lambda: engine)
        pipeline = EmotionPipeline(detector, classifier or StubClassifier(), broadcaster, clock=lambda: 1700000000.0)
        pipeline.engine = engine
        return pipeline
    return _make


@pytest.fixture(autouse=True)
def reset_fake_pcs():
    FakePeerConnection.instances.clear()
    yield
    FakePeerConnection.instances.clear()
