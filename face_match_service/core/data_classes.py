#!/usr/bin/env python3
"""
Core Data Classes for Face Match Service
========================================

Boxes, detections, embeddings and verification results passed between the
detector, embedder, liveness classifier and the decision engine.
"""

import base64
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

import numpy as np

from .constants import VERDICT_ACCEPTED, VERDICT_SPOOF, VERDICT_BELOW_THRESHOLD


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned integer rectangle; non-positive width or height means empty"""
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def empty(cls) -> 'BoundingBox':
        return cls(0, 0, 0, 0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        if self.is_empty:
            return 0
        return self.width * self.height

    def clamp(self, image_width: int, image_height: int) -> 'BoundingBox':
        """Intersect the box with the image rectangle"""
        x1 = max(0, min(self.x, image_width))
        y1 = max(0, min(self.y, image_height))
        x2 = max(0, min(self.right, image_width))
        y2 = max(0, min(self.bottom, image_height))
        return BoundingBox(x1, y1, max(0, x2 - x1), max(0, y2 - y1))

    def pad(self, fraction: float, image_width: int, image_height: int) -> 'BoundingBox':
        """
        Grow the box by a fraction of its own size on every side

        Args:
            fraction: Padding as a fraction of width (horizontal) and height (vertical)
            image_width: Width the result is clamped to
            image_height: Height the result is clamped to
        """
        pad_x = int(self.width * fraction)
        pad_y = int(self.height * fraction)
        x1 = max(0, self.x - pad_x)
        y1 = max(0, self.y - pad_y)
        x2 = min(image_width, self.right + pad_x)
        y2 = min(image_height, self.bottom + pad_y)
        return BoundingBox(x1, y1, max(0, x2 - x1), max(0, y2 - y1))

    def iou(self, other: 'BoundingBox') -> float:
        """Intersection over union; 0.0 when the union is empty"""
        ix1 = max(self.x, other.x)
        iy1 = max(self.y, other.y)
        ix2 = min(self.right, other.right)
        iy2 = min(self.bottom, other.bottom)
        inter = max(0, ix2 - ix1) * max(0, iy2 - iy1)
        union = self.area + other.area - inter
        if union <= 0:
            return 0.0
        return inter / union

    def crop(self, image: np.ndarray) -> np.ndarray:
        """Copy the image region under the box"""
        return image[self.y:self.bottom, self.x:self.right].copy()

    def to_dict(self) -> Dict[str, int]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class Detection:
    """One detected face"""
    box: BoundingBox
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {'box': self.box.to_dict(), 'confidence': float(self.confidence)}


@dataclass(eq=False)
class FaceEmbedding:
    """Embedding of one face together with the boxes it was computed from"""
    box: BoundingBox
    crop_box: BoundingBox
    confidence: float
    vector: np.ndarray

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass(frozen=True)
class LivenessVerdict:
    """Result from liveness/anti-spoofing analysis"""
    is_live: bool
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {'is_live': bool(self.is_live), 'confidence': float(self.confidence)}

    @property
    def label(self) -> str:
        return 'Live' if self.is_live else 'Spoof'


@dataclass(frozen=True, eq=False)
class VerificationResult:
    """Final decision of one document to camera comparison"""
    is_same_person: bool
    best_similarity: float
    matched_rect: Optional[BoundingBox]
    is_live_face: bool
    anti_spoof_confidence: float
    annotated_image: np.ndarray = field(repr=False)
    matched_variant: Optional[str] = None

    def __post_init__(self):
        # The caller may keep a reference; freeze the pixels too
        self.annotated_image.setflags(write=False)

    @property
    def verdict(self) -> str:
        if not self.is_live_face:
            return VERDICT_SPOOF
        if self.is_same_person:
            return VERDICT_ACCEPTED
        return VERDICT_BELOW_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization (image excluded)"""
        return {
            'is_same_person': bool(self.is_same_person),
            'best_similarity': float(self.best_similarity),
            'matched_rect': self.matched_rect.to_dict() if self.matched_rect else None,
            'is_live_face': bool(self.is_live_face),
            'anti_spoof_confidence': float(self.anti_spoof_confidence),
            'matched_variant': self.matched_variant,
            'verdict': self.verdict,
        }


@dataclass
class VerificationOutcome:
    """Success or failure of one verification request"""
    success: bool
    result: Optional[VerificationResult] = None
    annotated_image_jpeg: Optional[bytes] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, result: VerificationResult, jpeg: bytes) -> 'VerificationOutcome':
        return cls(success=True, result=result, annotated_image_jpeg=jpeg)

    @classmethod
    def failure(cls, message: str, error_code: Optional[str] = None) -> 'VerificationOutcome':
        return cls(success=False, error=message, error_code=error_code)

    def to_dict(self) -> Dict[str, Any]:
        """Response document; an absent rect is None, never a zero-size rect"""
        if not self.success or self.result is None:
            return {
                'success': False,
                'is_same_person': False,
                'best_similarity': 0.0,
                'matched_face_rect': None,
                'is_live_face': False,
                'anti_spoof_confidence': 0.0,
                'annotated_image_base64': None,
                'error': self.error,
                'error_code': self.error_code,
            }

        result = self.result
        rect = result.matched_rect
        encoded = None
        if self.annotated_image_jpeg:
            encoded = base64.b64encode(self.annotated_image_jpeg).decode('utf-8')

        return {
            'success': True,
            'is_same_person': bool(result.is_same_person),
            'best_similarity': float(result.best_similarity),
            'matched_face_rect': rect.to_dict() if rect is not None and not rect.is_empty else None,
            'is_live_face': bool(result.is_live_face),
            'anti_spoof_confidence': float(result.anti_spoof_confidence),
            'matched_variant': result.matched_variant,
            'verdict': result.verdict,
            'annotated_image_base64': encoded,
            'error': None,
            'error_code': None,
        }
