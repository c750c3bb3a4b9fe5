"""Shared fixtures: fake inference backends and synthetic images."""

from types import SimpleNamespace

import numpy as np
import pytest

from face_match_service.config import Config
from face_match_service.core.data_classes import LivenessVerdict
from face_match_service.models.base import FaceDetectionModel, ModelInfo


class FakeOnnxSession:
    """Stands in for onnxruntime.InferenceSession"""

    def __init__(self, input_shape, output_names, outputs, output_shapes=None):
        self._inputs = [SimpleNamespace(name='input.1', shape=list(input_shape))]
        shapes = output_shapes or [list(np.asarray(o).shape) for o in outputs]
        self._outputs = [SimpleNamespace(name=n, shape=s) for n, s in zip(output_names, shapes)]
        self.outputs = outputs
        self.feeds = []

    def get_inputs(self):
        return self._inputs

    def get_outputs(self):
        return self._outputs

    def run(self, output_names, feed):
        self.feeds.append(feed)
        return self.outputs


class FakeCaffeNet:
    """Stands in for cv2.dnn.Net; forward() returns queued probabilities in order"""

    def __init__(self, probabilities):
        self.probabilities = list(probabilities)
        self.blobs = []

    def empty(self):
        return False

    def setInput(self, blob):
        self.blobs.append(blob)

    def forward(self):
        return np.asarray(self.probabilities.pop(0), dtype=np.float32)


class FakeDetector(FaceDetectionModel):
    """Returns preset detections keyed by image shape, without filtering them"""

    def __init__(self, detections_by_shape):
        super().__init__('fake_detector', {})
        self._is_loaded = True
        self.detections_by_shape = detections_by_shape
        self.calls = []

    def load_model(self):
        self._is_loaded = True

    def unload_model(self):
        self._is_loaded = False

    def is_loaded(self):
        return self._is_loaded

    def get_info(self):
        return ModelInfo('fake', '0', 'test', ['face_detection'], ['numpy_array'], 'detections', {})

    def detect(self, image, confidence_threshold=None):
        self.calls.append((image.shape, confidence_threshold))
        return list(self.detections_by_shape.get(image.shape[:2], []))


class FakeEmbedder:
    """Returns preset unit vectors keyed by crop shape"""

    def __init__(self, vectors_by_shape):
        self.vectors_by_shape = vectors_by_shape
        self.calls = []

    def embed(self, face_crop):
        self.calls.append(face_crop.shape[:2])
        vector = np.asarray(self.vectors_by_shape[face_crop.shape[:2]], dtype=np.float32)
        return vector / np.linalg.norm(vector)


class FakeLiveness:
    def __init__(self, verdict=LivenessVerdict(True, 0.99)):
        self.verdict = verdict
        self.calls = []

    def evaluate(self, image, face_rect, strong_live_threshold=None):
        self.calls.append((face_rect, strong_live_threshold))
        return self.verdict


@pytest.fixture
def model_dir(tmp_path):
    """Directory holding placeholder files for every model artifact"""
    for name in ('scrfd.onnx', 'arcface.onnx', 'deploy_Squeeze.prototxt',
                 'train_add_data_iter_100000.caffemodel'):
        (tmp_path / name).write_bytes(b'placeholder')
    return tmp_path


@pytest.fixture
def config(model_dir):
    cfg = Config()
    cfg.MODELS_DIR = str(model_dir)
    return cfg


@pytest.fixture
def camera_image():
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def document_image():
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(200, 160, 3), dtype=np.uint8)


@pytest.fixture
def face_crop():
    rng = np.random.default_rng(11)
    return rng.integers(0, 256, size=(96, 80, 3), dtype=np.uint8)
