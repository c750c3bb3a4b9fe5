"""
Decision engine tests with scripted detector, embedder and liveness models.

Geometry used throughout:
    document 200x160, face (40, 50, 80, 100), 0.12 padding -> crop 124x98
    camera 480x640, face A (100, 100, 60, 60) -> crop 84x84
                    face B (300, 150, 120, 120) -> crop 168x168
"""

import numpy as np
import pytest

from face_match_service.core.data_classes import BoundingBox, Detection, FaceEmbedding, LivenessVerdict
from face_match_service.core.exceptions import InvalidInputError, NoFaceDetectedError
from face_match_service.processors.face_extractor import FaceEmbeddingExtractor
from face_match_service.processors.face_matcher import IdLiveFaceMatcher, find_best_match
from tests.conftest import FakeDetector, FakeEmbedder, FakeLiveness

DOCUMENT_SHAPE = (200, 160)
CAMERA_SHAPE = (480, 640)

DOCUMENT_FACE = Detection(BoundingBox(40, 50, 80, 100), 0.95)
FACE_A = Detection(BoundingBox(100, 100, 60, 60), 0.90)
FACE_B = Detection(BoundingBox(300, 150, 120, 120), 0.85)

VECTORS = {
    (124, 98): [1.0, 0.0, 0.0],
    (84, 84): [0.2, 1.0, 0.0],
    (168, 168): [0.8, 0.6, 0.0],
}


def _matcher(config, detections=None, liveness=None):
    detections = detections if detections is not None else {
        DOCUMENT_SHAPE: [DOCUMENT_FACE],
        CAMERA_SHAPE: [FACE_A, FACE_B],
    }
    detector = FakeDetector(detections)
    embedder = FakeEmbedder(VECTORS)
    liveness = liveness or FakeLiveness()
    return IdLiveFaceMatcher(detector, embedder, liveness, config=config), detector, embedder, liveness


def _face(vector, box=BoundingBox(0, 0, 10, 10)):
    return FaceEmbedding(box=box, crop_box=box, confidence=0.9, vector=np.asarray(vector, dtype=np.float32))


# ═══════════════════════════════════════════════════════════════
# Best pair search
# ═══════════════════════════════════════════════════════════════

class TestFindBestMatch:

    def test_global_maximum(self):
        document = [('clahe', np.array([1.0, 0.0])), ('masked', np.array([0.0, 1.0]))]
        faces = [_face([1.0, 1.0]), _face([0.1, 1.0])]

        index, similarity, variant = find_best_match(document, faces)

        assert (index, variant) == (1, 'masked')
        assert similarity == pytest.approx(1.0 / np.sqrt(1.01))

    def test_ties_keep_first(self):
        document = [('clahe', np.array([1.0, 0.0])), ('gamma_clahe', np.array([1.0, 0.0]))]
        faces = [_face([2.0, 0.0]), _face([3.0, 0.0])]

        assert find_best_match(document, faces)[0::2] == (0, 'clahe')

    def test_no_faces(self):
        index, similarity, variant = find_best_match([('clahe', np.ones(2))], [])
        assert index == -1
        assert similarity == float('-inf')
        assert variant is None


# ═══════════════════════════════════════════════════════════════
# Face extraction
# ═══════════════════════════════════════════════════════════════

class TestFaceEmbeddingExtractor:

    def test_largest_face_is_padded(self, document_image):
        detector = FakeDetector({DOCUMENT_SHAPE: [Detection(BoundingBox(0, 0, 20, 20), 0.99), DOCUMENT_FACE]})
        extractor = FaceEmbeddingExtractor(detector, FakeEmbedder(VECTORS), document_padding=0.12)

        detection, crop_box, crop = extractor.extract_largest_face(document_image)

        assert detection is DOCUMENT_FACE
        assert crop_box == BoundingBox(31, 38, 98, 124)
        assert crop.shape == (124, 98, 3)

    def test_low_confidence_faces_are_ignored(self, document_image):
        detector = FakeDetector({DOCUMENT_SHAPE: [Detection(BoundingBox(40, 50, 80, 100), 0.3)]})
        extractor = FaceEmbeddingExtractor(detector, FakeEmbedder(VECTORS), min_confidence=0.5)

        with pytest.raises(NoFaceDetectedError):
            extractor.extract_largest_face(document_image)

    def test_low_confidence_large_face_does_not_hide_smaller_one(self, document_image):
        small = Detection(BoundingBox(10, 10, 40, 40), 0.9)
        detector = FakeDetector({DOCUMENT_SHAPE: [Detection(BoundingBox(0, 0, 150, 190), 0.3), small]})
        extractor = FaceEmbeddingExtractor(detector, FakeEmbedder(VECTORS), min_confidence=0.5)

        detection, _, _ = extractor.extract_largest_face(document_image)

        assert detection is small
        assert detector.calls == [((200, 160, 3), 0.5)]

    def test_equal_area_keeps_first(self, document_image):
        first = Detection(BoundingBox(10, 10, 40, 40), 0.7)
        second = Detection(BoundingBox(100, 100, 40, 40), 0.9)
        detector = FakeDetector({DOCUMENT_SHAPE: [first, second]})

        assert detector.detect_largest(document_image, 0.5) is first

    def test_all_faces_in_detection_order(self, camera_image):
        detector = FakeDetector({CAMERA_SHAPE: [FACE_A, FACE_B]})
        extractor = FaceEmbeddingExtractor(detector, FakeEmbedder(VECTORS), camera_padding=0.2)

        faces = extractor.get_all_face_embeddings(camera_image)

        assert [f.box for f in faces] == [FACE_A.box, FACE_B.box]
        assert faces[1].crop_box == BoundingBox(276, 126, 168, 168)
        assert faces[0].dimension == 3

    def test_no_camera_faces_is_empty(self, camera_image):
        extractor = FaceEmbeddingExtractor(FakeDetector({}), FakeEmbedder(VECTORS))
        assert extractor.get_all_face_embeddings(camera_image) == []


# ═══════════════════════════════════════════════════════════════
# IdLiveFaceMatcher
# ═══════════════════════════════════════════════════════════════

class TestIdLiveFaceMatcher:

    def test_accepts_best_camera_face(self, config, document_image, camera_image):
        matcher, _, embedder, liveness = _matcher(config)

        result = matcher.match_id_to_camera(document_image, camera_image)

        assert result.is_same_person
        assert result.best_similarity == pytest.approx(0.8)
        assert result.matched_rect == FACE_B.box
        assert result.matched_variant == 'clahe'
        assert result.is_live_face
        assert result.anti_spoof_confidence == pytest.approx(0.99)
        # four document variants, then two camera faces
        assert embedder.calls == [(124, 98)] * 4 + [(84, 84), (168, 168)]

    def test_liveness_runs_on_detected_box(self, config, document_image, camera_image):
        matcher, _, _, liveness = _matcher(config)

        matcher.match_id_to_camera(document_image, camera_image, strong_live_threshold=0.9)

        assert liveness.calls == [(FACE_B.box, 0.9)]

    def test_below_threshold(self, config, document_image, camera_image):
        matcher, _, _, _ = _matcher(config)

        result = matcher.match_id_to_camera(document_image, camera_image, similarity_threshold=0.85)

        assert not result.is_same_person
        assert result.is_live_face
        assert result.verdict == 'BELOW_THRESHOLD'
        assert result.annotated_image[210, 420].tolist() == [0, 165, 255]

    def test_spoof_is_never_same_person(self, config, document_image, camera_image):
        matcher, _, _, _ = _matcher(config, liveness=FakeLiveness(LivenessVerdict(False, 0.93)))

        result = matcher.match_id_to_camera(document_image, camera_image)

        assert result.best_similarity >= 0.4
        assert not result.is_same_person
        assert result.verdict == 'SPOOF'
        assert result.annotated_image[210, 420].tolist() == [0, 0, 255]

    def test_accepted_box_is_green(self, config, document_image, camera_image):
        matcher, _, _, _ = _matcher(config)
        result = matcher.match_id_to_camera(document_image, camera_image)
        assert result.annotated_image[210, 420].tolist() == [0, 255, 0]

    def test_camera_image_is_not_modified(self, config, document_image, camera_image):
        matcher, _, _, _ = _matcher(config)

        result = matcher.match_id_to_camera(document_image, camera_image)

        assert not camera_image.any()
        assert result.annotated_image.any()
        assert not result.annotated_image.flags.writeable

    def test_missing_document_face_stops_early(self, config, document_image, camera_image):
        matcher, detector, _, liveness = _matcher(config, detections={CAMERA_SHAPE: [FACE_A]})

        with pytest.raises(NoFaceDetectedError) as exc_info:
            matcher.match_id_to_camera(document_image, camera_image)

        assert exc_info.value.error_code == 'NO_FACE_DETECTED'
        assert [shape[:2] for shape, _ in detector.calls] == [DOCUMENT_SHAPE]
        assert liveness.calls == []

    def test_missing_camera_face(self, config, document_image, camera_image):
        matcher, _, _, liveness = _matcher(config, detections={DOCUMENT_SHAPE: [DOCUMENT_FACE]})

        with pytest.raises(NoFaceDetectedError):
            matcher.match_id_to_camera(document_image, camera_image)
        assert liveness.calls == []

    def test_face_confidence_override_reaches_detector(self, config, document_image, camera_image):
        matcher, detector, _, _ = _matcher(config)

        matcher.match_id_to_camera(document_image, camera_image, face_confidence_threshold=0.8)

        assert {threshold for _, threshold in detector.calls} == {0.8}

    @pytest.mark.parametrize('kwargs', [
        {'similarity_threshold': 1.5},
        {'face_confidence_threshold': -0.1},
        {'strong_live_threshold': 2.0},
    ])
    def test_threshold_out_of_range(self, config, document_image, camera_image, kwargs):
        matcher, _, _, _ = _matcher(config)
        with pytest.raises(InvalidInputError):
            matcher.match_id_to_camera(document_image, camera_image, **kwargs)

    @pytest.mark.parametrize('kwargs', [
        {'similarity_threshold': 'high'},
        {'strong_live_threshold': [0.5]},
    ])
    def test_non_numeric_threshold(self, config, document_image, camera_image, kwargs):
        matcher, detector, _, _ = _matcher(config)
        with pytest.raises(InvalidInputError):
            matcher.match_id_to_camera(document_image, camera_image, **kwargs)
        assert detector.calls == []

    def test_numeric_string_threshold_is_accepted(self, config, document_image, camera_image):
        matcher, _, _, _ = _matcher(config)
        result = matcher.match_id_to_camera(document_image, camera_image, similarity_threshold='0.9')
        assert not result.is_same_person

    def test_malformed_images(self, config, document_image):
        matcher, _, _, _ = _matcher(config)

        with pytest.raises(InvalidInputError):
            matcher.match_id_to_camera(document_image, np.zeros((0, 0, 3), np.uint8))
        with pytest.raises(InvalidInputError):
            matcher.match_id_to_camera(np.zeros((10, 10), np.uint8), document_image)
