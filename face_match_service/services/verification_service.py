#!/usr/bin/env python3
"""
Verification Service
====================

Process-level entry point: owns the loaded models, runs the matcher and
turns every outcome into a VerificationOutcome (success with JPEG, or a
failure message and code; never a partial result).
"""

import logging
from typing import Optional

import numpy as np

from ..config import Config
from ..core.data_classes import VerificationOutcome
from ..core.exceptions import FaceMatchServiceError, ModelNotLoadedError, INTERNAL_ERROR_CODE, log_exception
from ..core.constants import SOURCE_DOCUMENT, SOURCE_CAMERA
from ..processors.face_matcher import IdLiveFaceMatcher
from ..utils.helpers import decode_image_bytes, encode_image_to_jpeg
from .model_manager import ModelManager, DETECTOR, EMBEDDER, LIVENESS

logger = logging.getLogger(__name__)


class VerificationService:
    """Identity verification with model lifetime scoped to start()/stop()"""

    def __init__(self, config: Optional[Config] = None,
                 model_manager: Optional[ModelManager] = None):
        self.config = config or Config()
        self.model_manager = model_manager or ModelManager(self.config)
        self.matcher: Optional[IdLiveFaceMatcher] = None

    @property
    def is_running(self) -> bool:
        return self.matcher is not None

    def start(self) -> None:
        """
        Validate configuration and load every model

        Raises:
            ConfigurationError: invalid configuration
            ResourceMissingError: a model file is missing
            ModelLoadError: a model file could not be parsed
        """
        if self.is_running:
            return

        self.config.validate_configuration()
        self.model_manager.load_all_models()

        self.matcher = IdLiveFaceMatcher(
            detector=self.model_manager.get_model(DETECTOR, auto_load=False),
            embedder=self.model_manager.get_model(EMBEDDER, auto_load=False),
            liveness=self.model_manager.get_model(LIVENESS, auto_load=False),
            config=self.config
        )
        logger.info("Verification service started")

    def stop(self) -> None:
        """Release every model"""
        self.matcher = None
        self.model_manager.unload_all_models()
        logger.info("Verification service stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    def verify(self, id_image: np.ndarray, camera_image: np.ndarray,
               similarity_threshold: Optional[float] = None,
               face_confidence_threshold: Optional[float] = None,
               strong_live_threshold: Optional[float] = None) -> VerificationOutcome:
        """
        Compare two decoded BGR images

        Returns:
            VerificationOutcome; every error, service or backend, becomes a
            failure outcome
        """
        if not self.is_running:
            error = ModelNotLoadedError('verification_service')
            return VerificationOutcome.failure(error.message, error.error_code)

        try:
            result = self.matcher.match_id_to_camera(
                id_image, camera_image,
                similarity_threshold=similarity_threshold,
                face_confidence_threshold=face_confidence_threshold,
                strong_live_threshold=strong_live_threshold
            )
            jpeg = encode_image_to_jpeg(result.annotated_image, self.config.JPEG_QUALITY)
            return VerificationOutcome.ok(result, jpeg)

        except FaceMatchServiceError as e:
            log_exception(logger, e)
            return VerificationOutcome.failure(e.message, e.error_code)

        except Exception as e:
            log_exception(logger, e)
            return VerificationOutcome.failure(str(e), INTERNAL_ERROR_CODE)

    def verify_bytes(self, id_image_data: bytes, camera_image_data: bytes,
                     similarity_threshold: Optional[float] = None,
                     face_confidence_threshold: Optional[float] = None,
                     strong_live_threshold: Optional[float] = None) -> VerificationOutcome:
        """Decode two encoded images (JPEG, PNG, ...) and verify them"""
        try:
            id_image = decode_image_bytes(id_image_data, SOURCE_DOCUMENT)
            camera_image = decode_image_bytes(camera_image_data, SOURCE_CAMERA)
        except FaceMatchServiceError as e:
            log_exception(logger, e)
            return VerificationOutcome.failure(e.message, e.error_code)
        except Exception as e:
            log_exception(logger, e)
            return VerificationOutcome.failure(str(e), INTERNAL_ERROR_CODE)

        return self.verify(
            id_image, camera_image,
            similarity_threshold=similarity_threshold,
            face_confidence_threshold=face_confidence_threshold,
            strong_live_threshold=strong_live_threshold
        )
