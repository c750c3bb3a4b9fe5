#!/usr/bin/env python3
"""
ID Face Preprocessor
====================

Photometric variants of a document portrait. Scanned and photographed ID
cards suffer from fading, moire from printed security patterns and busy
backgrounds; each variant targets one of these and the matcher keeps the
best-scoring one.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

import cv2
import numpy as np

from ..core.constants import (
    CLAHE_CLIP_LIMIT,
    CLAHE_TILE_GRID,
    GAMMA_VALUE,
    DESCREEN_SCALE,
    DESCREEN_H,
    DESCREEN_H_COLOR,
    DESCREEN_TEMPLATE_WINDOW,
    DESCREEN_SEARCH_WINDOW,
    MASK_AXIS_X_RATIO,
    MASK_AXIS_Y_RATIO,
    MASK_BLUR_KERNEL,
    MASK_BACKGROUND,
    VARIANT_CLAHE,
    VARIANT_GAMMA_CLAHE,
    VARIANT_DESCREEN,
    VARIANT_MASKED
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class FaceVariant:
    """One named preprocessing of the document face"""
    name: str
    image: np.ndarray


class IdFacePreprocessor:
    """Builds the best-of-N variants for a document face crop"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.clahe_clip_limit = config.get('clahe_clip_limit', CLAHE_CLIP_LIMIT)
        self.clahe_tile_grid = tuple(config.get('clahe_tile_grid', CLAHE_TILE_GRID))
        self.gamma = config.get('gamma', GAMMA_VALUE)

        self.descreen_scale = config.get('descreen_scale', DESCREEN_SCALE)
        self.descreen_h = config.get('descreen_h', DESCREEN_H)
        self.descreen_h_color = config.get('descreen_h_color', DESCREEN_H_COLOR)
        self.descreen_template_window = config.get('descreen_template_window', DESCREEN_TEMPLATE_WINDOW)
        self.descreen_search_window = config.get('descreen_search_window', DESCREEN_SEARCH_WINDOW)

        self.mask_axis_ratios = (
            config.get('mask_axis_x_ratio', MASK_AXIS_X_RATIO),
            config.get('mask_axis_y_ratio', MASK_AXIS_Y_RATIO),
        )
        self.mask_blur_kernel = config.get('mask_blur_kernel', MASK_BLUR_KERNEL)
        self.mask_background = tuple(config.get('mask_background', MASK_BACKGROUND))

    def apply_clahe(self, image: np.ndarray) -> np.ndarray:
        """Contrast-limited histogram equalization of the Lab lightness channel"""
        lab = cv2.cvtColor(image, cv2.COLOR_BGR2LAB)
        l_channel, a_channel, b_channel = cv2.split(lab)

        clahe = cv2.createCLAHE(clipLimit=self.clahe_clip_limit, tileGridSize=self.clahe_tile_grid)
        l_channel = clahe.apply(l_channel)

        return cv2.cvtColor(cv2.merge((l_channel, a_channel, b_channel)), cv2.COLOR_LAB2BGR)

    def apply_gamma(self, image: np.ndarray, gamma: Optional[float] = None) -> np.ndarray:
        """Lookup-table gamma correction with exponent 1/gamma"""
        gamma = gamma or self.gamma
        lut = np.array(
            [np.clip(round(((i / 255.0) ** (1.0 / gamma)) * 255.0), 0, 255) for i in range(256)],
            dtype=np.uint8
        )
        return cv2.LUT(image, lut)

    def remove_moire(self, image: np.ndarray) -> np.ndarray:
        """Down/up resample and non-local-means denoise to flatten printed line patterns"""
        height, width = image.shape[:2]
        scale = self.descreen_scale
        small = cv2.resize(image, (0, 0), fx=scale, fy=scale, interpolation=cv2.INTER_AREA)
        restored = cv2.resize(small, (width, height), interpolation=cv2.INTER_CUBIC)

        denoised = cv2.fastNlMeansDenoisingColored(
            restored, None,
            self.descreen_h, self.descreen_h_color,
            self.descreen_template_window, self.descreen_search_window
        )
        return self.apply_clahe(denoised)

    def apply_soft_face_mask(self, image: np.ndarray) -> np.ndarray:
        """Fade everything outside a centered ellipse into the background color (neutral gray)"""
        height, width = image.shape[:2]

        mask = np.zeros((height, width), dtype=np.uint8)
        center = (width // 2, height // 2)
        axes = (int(width * self.mask_axis_ratios[0]), int(height * self.mask_axis_ratios[1]))
        cv2.ellipse(mask, center, axes, 0, 0, 360, 255, -1)
        mask = cv2.GaussianBlur(mask, (self.mask_blur_kernel, self.mask_blur_kernel), 0)

        weight = (mask.astype(np.float32) / 255.0)[:, :, np.newaxis]
        background = np.empty_like(image, dtype=np.float32)
        background[:] = self.mask_background

        blended = image.astype(np.float32) * weight + background * (1.0 - weight)
        return np.clip(blended, 0, 255).astype(np.uint8)

    def build_variants(self, face: np.ndarray) -> List[FaceVariant]:
        """All variants in a fixed order: clahe, gamma_clahe, descreen, masked"""
        variants = [
            FaceVariant(VARIANT_CLAHE, self.apply_clahe(face)),
            FaceVariant(VARIANT_GAMMA_CLAHE, self.apply_clahe(self.apply_gamma(face))),
            FaceVariant(VARIANT_DESCREEN, self.remove_moire(face)),
            FaceVariant(VARIANT_MASKED, self.apply_clahe(self.apply_soft_face_mask(face))),
        ]
        logger.debug(f"Built {len(variants)} document face variants for {face.shape[1]}x{face.shape[0]} crop")
        return variants
