#!/usr/bin/env python3
"""
Face Embedding Extractor
========================

Detects faces, pads and crops them, and runs the embedder on each crop.
"""

import logging
from typing import Optional, List, Tuple

import numpy as np

from ..core.data_classes import BoundingBox, Detection, FaceEmbedding
from ..core.exceptions import NoFaceDetectedError
from ..core.constants import (
    FACE_CONFIDENCE_THRESHOLD,
    DOCUMENT_FACE_PADDING,
    CAMERA_FACE_PADDING,
    SOURCE_DOCUMENT,
    SOURCE_CAMERA,
    ERROR_MESSAGES
)
from ..models.base import FaceDetectionModel, EmbeddingModel

logger = logging.getLogger(__name__)


class FaceEmbeddingExtractor:
    """Detector + embedder pipeline for single and multi-face images"""

    def __init__(self, detector: FaceDetectionModel, embedder: EmbeddingModel,
                 min_confidence: float = FACE_CONFIDENCE_THRESHOLD,
                 document_padding: float = DOCUMENT_FACE_PADDING,
                 camera_padding: float = CAMERA_FACE_PADDING):
        self.detector = detector
        self.embedder = embedder
        self.min_confidence = min_confidence
        self.document_padding = document_padding
        self.camera_padding = camera_padding

    def _detect(self, image: np.ndarray, confidence_threshold: Optional[float]) -> List[Detection]:
        threshold = self.min_confidence if confidence_threshold is None else confidence_threshold
        detections = self.detector.detect(image, threshold)
        return [d for d in detections if d.confidence >= threshold]

    def extract_largest_face(self, image: np.ndarray, source: str = SOURCE_DOCUMENT,
                             padding: Optional[float] = None,
                             confidence_threshold: Optional[float] = None
                             ) -> Tuple[Detection, BoundingBox, np.ndarray]:
        """
        Find the largest face and return it with its padded crop

        Args:
            image: BGR image
            source: Image role used in the error message
            padding: Fraction of the face size added on each side
            confidence_threshold: Detection score floor

        Returns:
            (detection, padded box, cropped copy)

        Raises:
            NoFaceDetectedError: if no face passes the threshold
        """
        threshold = self.min_confidence if confidence_threshold is None else confidence_threshold
        largest = self.detector.detect_largest(image, threshold)

        if largest is None:
            message = ERROR_MESSAGES['no_document_face'] if source == SOURCE_DOCUMENT else None
            raise NoFaceDetectedError(source, message)

        padding = self.document_padding if padding is None else padding
        height, width = image.shape[:2]
        crop_box = largest.box.pad(padding, width, height)

        logger.debug(f"Largest {source} face {largest.box.to_dict()} conf={largest.confidence:.3f}")
        return largest, crop_box, crop_box.crop(image)

    def get_embedding(self, image: np.ndarray, source: str = SOURCE_DOCUMENT,
                      padding: Optional[float] = None,
                      confidence_threshold: Optional[float] = None) -> FaceEmbedding:
        """Embedding of the largest face; raises NoFaceDetectedError when there is none"""
        detection, crop_box, crop = self.extract_largest_face(image, source, padding, confidence_threshold)
        return FaceEmbedding(
            box=detection.box,
            crop_box=crop_box,
            confidence=detection.confidence,
            vector=self.embedder.embed(crop)
        )

    def get_all_face_embeddings(self, image: np.ndarray,
                                padding: Optional[float] = None,
                                confidence_threshold: Optional[float] = None) -> List[FaceEmbedding]:
        """Embeddings of every detected face, in detection order; may be empty"""
        padding = self.camera_padding if padding is None else padding
        height, width = image.shape[:2]

        faces = []
        for detection in self._detect(image, confidence_threshold):
            crop_box = detection.box.pad(padding, width, height)
            if crop_box.is_empty:
                continue
            faces.append(FaceEmbedding(
                box=detection.box,
                crop_box=crop_box,
                confidence=detection.confidence,
                vector=self.embedder.embed(crop_box.crop(image))
            ))

        logger.debug(f"Embedded {len(faces)} {SOURCE_CAMERA} face(s)")
        return faces
