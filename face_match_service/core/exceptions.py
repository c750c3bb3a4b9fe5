#!/usr/bin/env python3
"""
Custom Exceptions for Face Match Service
========================================

Every failure the service reports carries a stable error_code, which is
what ends up in a failed VerificationOutcome.
"""

from typing import Optional, Dict, Any


class FaceMatchServiceError(Exception):
    """Base exception for all face match service errors"""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for responses"""
        return {
            'error': self.error_code,
            'message': self.message,
            'details': self.details
        }


class ResourceMissingError(FaceMatchServiceError):
    """Raised when a required model artifact is not on disk"""

    def __init__(self, resource_name: str, path: str,
                 details: Optional[Dict[str, Any]] = None):
        message = f"Required resource '{resource_name}' not found at '{path}'"
        super().__init__(message, "RESOURCE_MISSING", details)
        self.resource_name = resource_name
        self.path = path


class ModelLoadError(FaceMatchServiceError):
    """Raised when model loading fails"""

    def __init__(self, model_name: str, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"Failed to load {model_name} model: {reason}"
        super().__init__(message, "MODEL_LOAD_ERROR", details)
        self.model_name = model_name
        self.reason = reason


class ModelNotLoadedError(FaceMatchServiceError):
    """Raised when inference is requested from a model that is not loaded"""

    def __init__(self, model_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Model '{model_name}' is not loaded"
        super().__init__(message, "MODEL_NOT_LOADED", details)
        self.model_name = model_name


class InvalidInputError(FaceMatchServiceError):
    """Raised when an image or parameter fails validation"""

    def __init__(self, reason: str, source: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        message = "Invalid input"
        if source:
            message += f" for {source}"
        message += f": {reason}"
        super().__init__(message, "INVALID_INPUT", details)
        self.reason = reason
        self.source = source


class NoFaceDetectedError(FaceMatchServiceError):
    """Raised when a required face is missing from an image"""

    def __init__(self, source: str, message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        message = message or f"No face detected in the {source} image"
        super().__init__(message, "NO_FACE_DETECTED", details)
        self.source = source


class DimensionMismatchError(FaceMatchServiceError):
    """Raised when two embeddings of different lengths are compared"""

    def __init__(self, expected: int, actual: int,
                 details: Optional[Dict[str, Any]] = None):
        message = f"Embedding dimension mismatch: {expected} vs {actual}"
        super().__init__(message, "DIMENSION_MISMATCH", details)
        self.expected = expected
        self.actual = actual


class ConfigurationError(FaceMatchServiceError):
    """Raised when configuration is invalid"""

    def __init__(self, parameter: str, value: Any, reason: str,
                 details: Optional[Dict[str, Any]] = None):
        message = f"Invalid configuration for '{parameter}' = '{value}': {reason}"
        super().__init__(message, "CONFIGURATION_ERROR", details)
        self.parameter = parameter
        self.value = value
        self.reason = reason


# Error categories: a request problem, a property of the images, or a
# deployment fault that no request can fix

CATEGORY_VALIDATION = 'validation'
CATEGORY_PROCESSING = 'processing'
CATEGORY_SYSTEM = 'system'

# Code reported for faults that are not service errors (backend runtime
# failures, OpenCV errors)
INTERNAL_ERROR_CODE = 'INTERNAL_ERROR'

_CATEGORIES = (
    ((InvalidInputError, ConfigurationError), CATEGORY_VALIDATION),
    ((NoFaceDetectedError, DimensionMismatchError), CATEGORY_PROCESSING),
    ((ResourceMissingError, ModelLoadError, ModelNotLoadedError), CATEGORY_SYSTEM),
)


def error_category(error: Exception) -> str:
    """Category of a service error; anything unknown counts as a system fault"""
    for error_types, category in _CATEGORIES:
        if isinstance(error, error_types):
            return category
    return CATEGORY_SYSTEM


def log_exception(logger, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log an error at a level matching its category

    Validation and processing errors describe the request and are logged as
    warnings; system errors are logged as errors.
    """
    category = error_category(error)
    log = logger.error if category == CATEGORY_SYSTEM else logger.warning

    if isinstance(error, FaceMatchServiceError):
        log(f"{error.error_code} ({category}): {error.message}")
        if error.details:
            log(f"  details: {error.details}")
    else:
        log(f"Unexpected {type(error).__name__}: {error}")

    if context:
        log(f"  context: {context}")
