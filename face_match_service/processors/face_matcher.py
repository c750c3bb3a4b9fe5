#!/usr/bin/env python3
"""
ID to Live Face Matcher
=======================

Decision engine: embeds the document portrait in several preprocessed
variants, embeds every camera face, picks the best pairing, checks liveness
on that face and renders the annotated result.
"""

import logging
from typing import Optional, List, Tuple

import numpy as np

from ..config import Config
from ..core.data_classes import LivenessVerdict, FaceEmbedding, VerificationResult
from ..core.exceptions import InvalidInputError, NoFaceDetectedError
from ..core.constants import SOURCE_DOCUMENT, SOURCE_CAMERA, ERROR_MESSAGES
from ..models.base import FaceDetectionModel, EmbeddingModel, LivenessModel
from ..models.recognition.arcface_embedder import cosine_similarity
from ..utils.annotation import ResultAnnotator
from ..utils.helpers import is_valid_image, PerformanceTimer
from .face_extractor import FaceEmbeddingExtractor
from .id_face_preprocessor import IdFacePreprocessor

logger = logging.getLogger(__name__)


def find_best_match(document_embeddings: List[Tuple[str, np.ndarray]],
                    camera_faces: List[FaceEmbedding]) -> Tuple[int, float, Optional[str]]:
    """
    Global maximum similarity over all (camera face, document variant) pairs

    Ties keep the first pair reached, camera faces in detection order and
    variants in build order.

    Returns:
        (camera face index or -1, best similarity or -inf, winning variant name)
    """
    best_similarity = float('-inf')
    best_index = -1
    best_variant = None

    for index, face in enumerate(camera_faces):
        for variant_name, vector in document_embeddings:
            similarity = cosine_similarity(vector, face.vector)
            if similarity > best_similarity:
                best_similarity = similarity
                best_index = index
                best_variant = variant_name

    return best_index, best_similarity, best_variant


def _check_threshold(name: str, value: Optional[float]) -> Optional[float]:
    """Per-call threshold as a float in [0, 1], or None when not given"""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{name} must be a number (got {value!r})", name)
    if not 0.0 <= number <= 1.0:
        raise InvalidInputError(f"{ERROR_MESSAGES['threshold_out_of_range']} (got {value})", name)
    return number


class IdLiveFaceMatcher:
    """Document portrait vs. live camera face verification"""

    def __init__(self, detector: FaceDetectionModel, embedder: EmbeddingModel,
                 liveness: LivenessModel, config: Optional[Config] = None,
                 preprocessor: Optional[IdFacePreprocessor] = None,
                 annotator: Optional[ResultAnnotator] = None):
        """
        Initialize the matcher

        Args:
            detector: Loaded face detector
            embedder: Loaded face embedder
            liveness: Loaded anti-spoofing model
            config: Configuration object. If None, uses default Config()
            preprocessor: Document variant builder
            annotator: Result renderer
        """
        self.config = config or Config()
        decision = self.config.get_decision_config()

        self.similarity_threshold = decision['similarity_threshold']
        self.face_confidence_threshold = decision['face_confidence_threshold']
        self.strong_live_threshold = decision['strong_live_threshold']

        self.embedder = embedder
        self.liveness = liveness
        self.extractor = FaceEmbeddingExtractor(
            detector, embedder,
            min_confidence=self.face_confidence_threshold,
            document_padding=decision['document_padding'],
            camera_padding=decision['camera_padding']
        )
        self.preprocessor = preprocessor or IdFacePreprocessor(self.config.get_preprocessor_config())
        self.annotator = annotator or ResultAnnotator()

    def embed_document(self, id_image: np.ndarray,
                       face_confidence_threshold: float) -> List[Tuple[str, np.ndarray]]:
        """Embeddings of every preprocessing variant of the largest document face"""
        _, _, crop = self.extractor.extract_largest_face(
            id_image, SOURCE_DOCUMENT, confidence_threshold=face_confidence_threshold
        )
        return [
            (variant.name, self.embedder.embed(variant.image))
            for variant in self.preprocessor.build_variants(crop)
        ]

    def match_id_to_camera(self, id_image: np.ndarray, camera_image: np.ndarray,
                           similarity_threshold: Optional[float] = None,
                           face_confidence_threshold: Optional[float] = None,
                           strong_live_threshold: Optional[float] = None) -> VerificationResult:
        """
        Verify that the camera image shows the document holder, live

        Args:
            id_image: Document image (BGR)
            camera_image: Camera image (BGR)
            similarity_threshold: Minimum cosine similarity for a match
            face_confidence_threshold: Detector score floor for both images
            strong_live_threshold: Liveness disagreement acceptance threshold

        Returns:
            VerificationResult with an annotated copy of the camera image

        Raises:
            InvalidInputError: malformed image or out-of-range threshold
            NoFaceDetectedError: no face in the document, or none in the camera image
        """
        if not is_valid_image(id_image):
            raise InvalidInputError(ERROR_MESSAGES['invalid_image'], SOURCE_DOCUMENT)
        if not is_valid_image(camera_image):
            raise InvalidInputError(ERROR_MESSAGES['invalid_image'], SOURCE_CAMERA)

        similarity_threshold = _check_threshold('similarity_threshold', similarity_threshold)
        face_confidence_threshold = _check_threshold('face_confidence_threshold', face_confidence_threshold)
        strong_live_threshold = _check_threshold('strong_live_threshold', strong_live_threshold)

        similarity_threshold = self.similarity_threshold if similarity_threshold is None else similarity_threshold
        face_threshold = self.face_confidence_threshold if face_confidence_threshold is None else face_confidence_threshold
        live_threshold = self.strong_live_threshold if strong_live_threshold is None else strong_live_threshold

        with PerformanceTimer("ID to camera verification", 'INFO'):
            # Document first: a missing document face fails before any camera work
            document_embeddings = self.embed_document(id_image, face_threshold)

            camera_faces = self.extractor.get_all_face_embeddings(
                camera_image, confidence_threshold=face_threshold
            )
            if not camera_faces:
                raise NoFaceDetectedError(SOURCE_CAMERA, ERROR_MESSAGES['no_camera_face'])

            best_index, best_similarity, best_variant = find_best_match(document_embeddings, camera_faces)

            matched_rect = None
            verdict = LivenessVerdict(False, 0.0)
            if best_index >= 0:
                matched_rect = camera_faces[best_index].box
                verdict = self.liveness.evaluate(camera_image, matched_rect, live_threshold)

            is_same_person = best_similarity >= similarity_threshold and verdict.is_live

            annotated = self.annotator.render(
                camera_image, matched_rect,
                is_live=verdict.is_live,
                is_same_person=is_same_person,
                similarity=best_similarity,
                liveness_confidence=verdict.confidence,
                face_confidence_threshold=face_threshold
            )

        logger.info(
            f"Verification: same_person={is_same_person} similarity={best_similarity:.3f} "
            f"variant={best_variant} live={verdict.is_live} ({verdict.confidence:.3f}) "
            f"faces={len(camera_faces)}"
        )

        return VerificationResult(
            is_same_person=bool(is_same_person),
            best_similarity=float(best_similarity),
            matched_rect=matched_rect,
            is_live_face=bool(verdict.is_live),
            anti_spoof_confidence=float(verdict.confidence),
            annotated_image=annotated,
            matched_variant=best_variant
        )
