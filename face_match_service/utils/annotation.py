#!/usr/bin/env python3
"""
Result Annotation
=================

Draws the matched face box and its verdict labels on a copy of the camera image.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from ..core.data_classes import BoundingBox
from ..core.constants import (
    COLOR_ACCEPTED,
    COLOR_SPOOF,
    COLOR_BELOW_THRESHOLD,
    COLOR_TEXT,
    BOX_THICKNESS,
    LABEL_FONT_SCALE,
    LABEL_FONT_THICKNESS,
    LABEL_PADDING,
    LABEL_GAP
)

logger = logging.getLogger(__name__)

FONT = cv2.FONT_HERSHEY_SIMPLEX


def select_color(is_live: bool, is_same_person: bool) -> Tuple[int, int, int]:
    """Box color for a verdict: green accepted, red spoof, orange live but below threshold"""
    if not is_live:
        return COLOR_SPOOF
    if is_same_person:
        return COLOR_ACCEPTED
    return COLOR_BELOW_THRESHOLD


class ResultAnnotator:
    """Renders verification verdicts onto camera images"""

    def __init__(self, font_scale: float = LABEL_FONT_SCALE, thickness: int = LABEL_FONT_THICKNESS,
                 padding: int = LABEL_PADDING, gap: int = LABEL_GAP, box_thickness: int = BOX_THICKNESS):
        self.font_scale = font_scale
        self.thickness = thickness
        self.padding = padding
        self.gap = gap
        self.box_thickness = box_thickness

    def _text_size(self, text: str) -> Tuple[int, int, int]:
        (width, height), baseline = cv2.getTextSize(text, FONT, self.font_scale, self.thickness)
        return width, height, baseline

    def _clamp_x(self, x: int, text_width: int, image_width: int) -> int:
        upper = max(self.padding, image_width - text_width - self.padding)
        return min(max(x, self.padding), upper)

    def _draw_label(self, image: np.ndarray, text: str, x: int, baseline_y: int,
                    text_height: int, baseline: int, color: Tuple[int, int, int]) -> None:
        text_width = self._text_size(text)[0]
        top_left = (x - self.padding, baseline_y - text_height - self.padding)
        bottom_right = (x + text_width + self.padding, baseline_y + baseline + self.padding)
        cv2.rectangle(image, top_left, bottom_right, color, -1)
        cv2.putText(image, text, (x, baseline_y), FONT, self.font_scale, COLOR_TEXT,
                    self.thickness, cv2.LINE_AA)

    def _draw_left_label(self, image: np.ndarray, box: BoundingBox, text: str,
                         color: Tuple[int, int, int]) -> None:
        """Vertical label, rotated 90 degrees counter-clockwise, left of the box"""
        text_width, text_height, baseline = self._text_size(text)
        label_w = text_width + self.padding * 2
        label_h = text_height + baseline + self.padding * 2

        label = np.empty((label_h, label_w, 3), dtype=np.uint8)
        label[:] = color
        cv2.putText(label, text, (self.padding, label_h - self.padding - baseline),
                    FONT, self.font_scale, COLOR_TEXT, self.thickness, cv2.LINE_AA)
        rotated = cv2.rotate(label, cv2.ROTATE_90_COUNTERCLOCKWISE)

        rot_h, rot_w = rotated.shape[:2]
        image_h, image_w = image.shape[:2]
        left_x = max(0, box.x - rot_w - self.gap)
        left_y = max(0, box.y + (box.height - rot_h) // 2)

        copy_w = min(rot_w, image_w - left_x)
        copy_h = min(rot_h, image_h - left_y)
        if copy_w > 0 and copy_h > 0:
            image[left_y:left_y + copy_h, left_x:left_x + copy_w] = rotated[:copy_h, :copy_w]

    def render(self, image: np.ndarray, box: Optional[BoundingBox], is_live: bool,
               is_same_person: bool, similarity: float, liveness_confidence: float,
               face_confidence_threshold: float) -> np.ndarray:
        """
        Annotate a copy of image

        Args:
            image: Camera image (BGR); never modified
            box: Matched face box; no drawing when absent or empty
            is_live: Liveness verdict
            is_same_person: Final decision
            similarity: Best cosine similarity
            liveness_confidence: Fused liveness confidence
            face_confidence_threshold: Detector threshold shown on the left label

        Returns:
            New annotated BGR image
        """
        annotated = image.copy()
        if box is None or box.is_empty:
            return annotated

        image_h, image_w = annotated.shape[:2]
        color = select_color(is_live, is_same_person)

        cv2.rectangle(annotated, (box.x, box.y), (box.right, box.bottom), color, self.box_thickness)

        self._draw_left_label(annotated, box, f"face con.{face_confidence_threshold:.2f}", color)

        # Liveness label above the box, inside it when there is no room
        top_text = f"Live {liveness_confidence:.3f}" if is_live else f"Spoof {liveness_confidence:.3f}"
        top_w, top_h, top_base = self._text_size(top_text)
        top_x = self._clamp_x(box.x + (box.width - top_w) // 2, top_w, image_w)
        top_y = box.y - self.gap
        if top_y - top_h - self.padding < 0:
            top_y = box.y + top_h + self.padding + self.gap
        self._draw_label(annotated, top_text, top_x, top_y, top_h, top_base, color)

        # Similarity label below the box, inside it when it would leave the image
        bottom_text = f"Sim {similarity:.3f}"
        bot_w, bot_h, bot_base = self._text_size(bottom_text)
        bot_x = self._clamp_x(box.x + (box.width - bot_w) // 2, bot_w, image_w)
        bot_y = box.bottom + bot_h + self.gap
        if bot_y + bot_base + self.padding > image_h:
            bot_y = box.bottom - self.gap
        self._draw_label(annotated, bottom_text, bot_x, bot_y, bot_h, bot_base, color)

        logger.debug(f"Annotated {box.to_dict()} with {top_text!r}, {bottom_text!r}")
        return annotated
