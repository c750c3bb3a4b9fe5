"""
Unit tests for the ArcFace embedder and the similarity helpers.
"""

import numpy as np
import pytest

from face_match_service.core.exceptions import DimensionMismatchError, InvalidInputError, ResourceMissingError
from face_match_service.models.onnx_session import LAYOUT_NCHW, LAYOUT_NHWC
from face_match_service.models.recognition import arcface_embedder
from face_match_service.models.recognition.arcface_embedder import (
    ArcFaceEmbedder,
    cosine_similarity,
    l2_normalize,
)
from tests.conftest import FakeOnnxSession


def _embedder(monkeypatch, model_dir, input_shape, output):
    session = FakeOnnxSession(input_shape, ['embedding'], [output])
    monkeypatch.setattr(arcface_embedder, 'create_onnx_session', lambda *a, **k: session)
    embedder = ArcFaceEmbedder(config={'model_path': str(model_dir / 'arcface.onnx')})
    embedder.load_model()
    return embedder, session


def _raw_output(*values, dim=512):
    output = np.zeros((1, dim), dtype=np.float32)
    output[0, :len(values)] = values
    return output


# ═══════════════════════════════════════════════════════════════
# Similarity helpers
# ═══════════════════════════════════════════════════════════════

class TestCosineSimilarity:

    def test_identical_vectors(self):
        v = np.array([0.3, -1.2, 4.0])
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_symmetric_and_scale_free(self):
        a = np.array([1.0, 2.0, 0.5])
        b = np.array([-0.5, 3.0, 1.0])
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
        assert cosine_similarity(a * 10, b) == pytest.approx(cosine_similarity(a, b), rel=1e-5)

    def test_opposite_vectors(self):
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([-2.0, 0.0])) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity(np.zeros(4), np.ones(4)) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity(np.ones(512), np.ones(128))
        assert exc_info.value.error_code == 'DIMENSION_MISMATCH'


class TestL2Normalize:

    def test_unit_length(self):
        assert np.allclose(l2_normalize(np.array([3.0, 4.0])), [0.6, 0.8])

    def test_zero_vector_unchanged(self):
        assert np.array_equal(l2_normalize(np.zeros(3)), np.zeros(3))


# ═══════════════════════════════════════════════════════════════
# ArcFaceEmbedder
# ═══════════════════════════════════════════════════════════════

class TestArcFaceEmbedder:

    def test_missing_model_file(self, tmp_path):
        embedder = ArcFaceEmbedder(config={'model_path': str(tmp_path / 'none.onnx')})
        with pytest.raises(ResourceMissingError):
            embedder.load_model()

    def test_nchw_input(self, monkeypatch, model_dir, face_crop):
        embedder, session = _embedder(monkeypatch, model_dir, [1, 3, 112, 112], _raw_output(3.0, 4.0))

        vector = embedder.embed(face_crop)

        assert embedder.layout == LAYOUT_NCHW
        assert session.feeds[0]['input.1'].shape == (1, 3, 112, 112)
        assert session.feeds[0]['input.1'].dtype == np.float32
        assert vector.shape == (512,)
        assert vector[:2] == pytest.approx([0.6, 0.8])
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_nhwc_input(self, monkeypatch, model_dir, face_crop):
        embedder, session = _embedder(monkeypatch, model_dir, ['batch', 112, 112, 3], _raw_output(1.0))

        embedder.embed(face_crop)

        assert embedder.layout == LAYOUT_NHWC
        assert session.feeds[0]['input.1'].shape == (1, 112, 112, 3)

    def test_input_is_centered(self, monkeypatch, model_dir):
        embedder, session = _embedder(monkeypatch, model_dir, [1, 3, 112, 112], _raw_output(1.0))

        embedder.embed(np.full((112, 112, 3), 255, dtype=np.uint8))

        assert np.allclose(session.feeds[0]['input.1'], (255 - 127.5) / 128.0)

    def test_embedding_dim_from_output_shape(self, monkeypatch, model_dir):
        embedder, _ = _embedder(monkeypatch, model_dir, [1, 3, 112, 112], _raw_output(1.0, dim=128))
        assert embedder.embedding_dim == 128

    def test_zero_output_is_not_normalized(self, monkeypatch, model_dir, face_crop):
        embedder, _ = _embedder(monkeypatch, model_dir, [1, 3, 112, 112], _raw_output())
        assert not embedder.embed(face_crop).any()

    def test_rejects_malformed_crop(self, monkeypatch, model_dir):
        embedder, _ = _embedder(monkeypatch, model_dir, [1, 3, 112, 112], _raw_output(1.0))
        with pytest.raises(InvalidInputError):
            embedder.embed(np.zeros((0, 10, 3), dtype=np.uint8))
