#!/usr/bin/env python3
"""
Helper Functions Utility
========================

Image codec, validation, timing and logging helpers.
"""

import os
import time
import logging
from typing import Optional

import cv2
import numpy as np

from ..core.constants import JPEG_QUALITY, ERROR_MESSAGES
from ..core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

# =============================================================================
# Image Processing Helpers
# =============================================================================

def is_valid_image(image) -> bool:
    """True for a non-empty H x W x 3 uint8 array"""
    return (
        isinstance(image, np.ndarray)
        and image.ndim == 3
        and image.shape[2] == 3
        and image.shape[0] > 0
        and image.shape[1] > 0
        and image.dtype == np.uint8
    )


def encode_image_to_jpeg(image: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
    """
    Encode image to JPEG bytes

    Args:
        image: BGR image
        quality: JPEG quality (1-100)

    Returns:
        Encoded JPEG data
    """
    ok, buffer = cv2.imencode('.jpg', image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise InvalidInputError("JPEG encoding failed", "annotated image")
    return buffer.tobytes()


def decode_image_bytes(data: bytes, source: Optional[str] = None) -> np.ndarray:
    """
    Decode encoded image bytes to a BGR array

    Raises:
        InvalidInputError: when the data is empty or not a decodable image
    """
    if not data:
        raise InvalidInputError(ERROR_MESSAGES['undecodable_image'], source)

    array = np.frombuffer(data, np.uint8)
    image = cv2.imdecode(array, cv2.IMREAD_COLOR)
    if image is None:
        raise InvalidInputError(ERROR_MESSAGES['undecodable_image'], source)
    return image


def load_image(path: str, source: Optional[str] = None) -> np.ndarray:
    """Read an image file as BGR; raises InvalidInputError when missing or unreadable"""
    if not os.path.isfile(path):
        raise InvalidInputError(f"file not found: {path}", source)

    with open(path, 'rb') as handle:
        return decode_image_bytes(handle.read(), source)


# =============================================================================
# Timing Helpers
# =============================================================================

class PerformanceTimer:
    """Logs how long the enclosed block took, and whether it raised"""

    def __init__(self, operation_name: str, log_level: str = 'DEBUG'):
        self.operation_name = operation_name
        self.level = getattr(logging, log_level.upper(), logging.DEBUG)
        self.elapsed_ms: Optional[float] = None
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        outcome = "completed" if exc_type is None else f"failed ({exc_type.__name__})"
        logger.log(self.level, f"{self.operation_name} {outcome} in {self.elapsed_ms:.2f}ms")


# =============================================================================
# Logging Helpers
# =============================================================================

def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None,
                  format_string: Optional[str] = None) -> None:
    """
    Configure the root logger

    Console output goes to stderr so that command output on stdout stays
    machine-readable; log_file adds a second handler.
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=format_string or '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    logger.debug(f"Logging configured: level={log_level}, file={log_file}")
