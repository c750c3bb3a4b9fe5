#!/usr/bin/env python3
"""
Face Match Service
==================

Verifies that the person in a live camera image is the person pictured on an
identity document, rejecting printed-photo and screen-replay spoofs.
"""

from .config import Config, get_config
from .core.data_classes import (
    BoundingBox, Detection, FaceEmbedding, LivenessVerdict,
    VerificationResult, VerificationOutcome
)
from .core.exceptions import (
    FaceMatchServiceError, ResourceMissingError, ModelLoadError,
    ModelNotLoadedError, InvalidInputError, NoFaceDetectedError,
    DimensionMismatchError, ConfigurationError
)
from .services.verification_service import VerificationService

__version__ = "1.0.0"

__all__ = [
    'Config', 'get_config',
    'BoundingBox', 'Detection', 'FaceEmbedding', 'LivenessVerdict',
    'VerificationResult', 'VerificationOutcome',
    'FaceMatchServiceError', 'ResourceMissingError', 'ModelLoadError',
    'ModelNotLoadedError', 'InvalidInputError', 'NoFaceDetectedError',
    'DimensionMismatchError', 'ConfigurationError',
    'VerificationService',
]
