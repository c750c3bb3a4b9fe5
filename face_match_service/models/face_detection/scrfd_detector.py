#!/usr/bin/env python3
"""
SCRFD Face Detection Implementation
===================================

Anchor-free multi-stride face detector run through ONNX Runtime.
Raw score/distance heads are decoded per stride, mapped back through the
letterbox transform and filtered with greedy non-maximum suppression.
"""

import time
import logging
from typing import Optional, Dict, Any, List, Tuple

import cv2
import numpy as np

from ..base import FaceDetectionModel, ModelInfo, ModelFactory, ensure_loaded, measure_inference_time
from ..onnx_session import create_onnx_session, infer_input_layout
from ...core.data_classes import BoundingBox, Detection
from ...core.exceptions import ModelLoadError
from ...core.constants import (
    SCRFD_INPUT_SIZE,
    SCRFD_STRIDES,
    SCRFD_INPUT_MEAN,
    SCRFD_INPUT_STD,
    SCRFD_PAD_VALUE,
    SCRFD_LOGIT_UPPER_BOUND,
    SCRFD_LOGIT_LOWER_BOUND,
    SCRFD_LOGIT_MIN_CONFIDENCE,
    FACE_CONFIDENCE_THRESHOLD,
    NMS_IOU_THRESHOLD,
    MIN_FACE_SIZE_PIXELS,
    DEFAULT_ONNX_PROVIDERS,
    MODEL_VERSIONS
)

logger = logging.getLogger(__name__)


def letterbox_image(image: np.ndarray, input_width: int, input_height: int) -> Tuple[np.ndarray, float]:
    """
    Resize keeping aspect ratio and paste at the top-left of a padded canvas

    Returns:
        (canvas, scale) where scale maps source pixels to canvas pixels
    """
    src_h, src_w = image.shape[:2]
    im_ratio = src_h / src_w
    model_ratio = input_height / input_width

    if im_ratio > model_ratio:
        new_h = input_height
        new_w = max(1, int(new_h / im_ratio))
    else:
        new_w = input_width
        new_h = max(1, int(new_w * im_ratio))

    scale = new_h / src_h
    resized = cv2.resize(image, (new_w, new_h))

    canvas = np.full((input_height, input_width, 3), SCRFD_PAD_VALUE, dtype=np.uint8)
    canvas[:new_h, :new_w] = resized
    return canvas, scale


def decode_stride_level(scores: np.ndarray, distances: np.ndarray, stride: int,
                        input_width: int, input_height: int, num_anchors: int,
                        confidence_threshold: float, scale: float,
                        image_width: int, image_height: int,
                        min_face_size: int = MIN_FACE_SIZE_PIXELS) -> List[Detection]:
    """
    Decode one stride level into source-image detections

    Args:
        scores: Per-location scores, probabilities or logits
        distances: Per-location (left, top, right, bottom) distances in stride units
        stride: Feature map stride in input pixels
        input_width, input_height: Network input size
        num_anchors: Anchors per feature map location
        confidence_threshold: Scores must exceed this to be kept
        scale: Letterbox scale (canvas pixels per source pixel)
        image_width, image_height: Source image bounds for clamping
        min_face_size: Minimum side length after clamping

    Returns:
        Detections for this level, not yet suppressed
    """
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    distances = np.asarray(distances, dtype=np.float32).reshape(-1, 4)

    fm_h = input_height // stride
    fm_w = input_width // stride
    expected = fm_h * fm_w * num_anchors
    if scores.size != expected or distances.shape[0] != expected:
        logger.warning(
            f"Stride {stride}: expected {expected} locations, got "
            f"{scores.size} scores / {distances.shape[0]} boxes; level skipped"
        )
        return []

    if scores.size and (scores.max() > SCRFD_LOGIT_UPPER_BOUND or scores.min() < SCRFD_LOGIT_LOWER_BOUND):
        scores = 1.0 / (1.0 + np.exp(-scores))
        confidence_threshold = max(confidence_threshold, SCRFD_LOGIT_MIN_CONFIDENCE)

    detections = []
    for idx in np.flatnonzero(scores > confidence_threshold):
        cell = idx // num_anchors
        cx = float((cell % fm_w) * stride)
        cy = float((cell // fm_w) * stride)
        left, top, right, bottom = distances[idx] * stride

        x1 = min(max((cx - left) / scale, 0.0), float(image_width))
        y1 = min(max((cy - top) / scale, 0.0), float(image_height))
        x2 = min(max((cx + right) / scale, 0.0), float(image_width))
        y2 = min(max((cy + bottom) / scale, 0.0), float(image_height))

        if x2 - x1 < min_face_size or y2 - y1 < min_face_size:
            continue

        box = BoundingBox(int(round(x1)), int(round(y1)),
                          int(round(x2 - x1)), int(round(y2 - y1)))
        detections.append(Detection(box=box, confidence=float(scores[idx])))

    return detections


def non_max_suppression(detections: List[Detection], iou_threshold: float) -> List[Detection]:
    """Greedy NMS: keep the highest score, drop anything overlapping it at or above iou_threshold"""
    ordered = sorted(detections, key=lambda d: d.confidence, reverse=True)
    kept: List[Detection] = []
    for candidate in ordered:
        if all(candidate.box.iou(k.box) < iou_threshold for k in kept):
            kept.append(candidate)
    return kept


class ScrfdFaceDetector(FaceDetectionModel):
    """SCRFD face detector backed by an ONNX Runtime session"""

    def __init__(self, name: str = "scrfd", config: Optional[Dict[str, Any]] = None):
        default_config = {
            'model_path': None,
            'providers': list(DEFAULT_ONNX_PROVIDERS),
            'intra_op_threads': 0,
            'serialize_inference': False,
            'num_anchors': 0,
            'confidence_threshold': FACE_CONFIDENCE_THRESHOLD,
            'nms_threshold': NMS_IOU_THRESHOLD,
            'min_face_size': MIN_FACE_SIZE_PIXELS,
        }

        if config:
            default_config.update(config)

        super().__init__(name, default_config)

        self.session = None
        self.input_name: Optional[str] = None
        self.output_names: List[str] = []
        self.input_width, self.input_height = SCRFD_INPUT_SIZE
        self.num_anchors = 1

    def load_model(self) -> None:
        """Open the ONNX session and read the input geometry"""
        model_path = self._require_file('SCRFD detector model', self.config['model_path'])

        try:
            start_time = time.time()
            self.logger.info(f"Loading SCRFD detector from {model_path}...")

            self.session = create_onnx_session(
                model_path,
                self.config['providers'],
                self.config['intra_op_threads']
            )
            self.input_name = self.session.get_inputs()[0].name
            self.output_names = [output.name for output in self.session.get_outputs()]

            _, self.input_height, self.input_width = infer_input_layout(
                self.session, (SCRFD_INPUT_SIZE[1], SCRFD_INPUT_SIZE[0])
            )

            configured_anchors = int(self.config['num_anchors'])
            if configured_anchors > 0:
                self.num_anchors = configured_anchors
            else:
                self.num_anchors = 2 if len(self.output_names) in (6, 9) else 1

            self._load_time = (time.time() - start_time) * 1000
            self._is_loaded = True

            self.logger.info(
                f"✅ SCRFD detector loaded successfully ({self._load_time:.1f}ms, "
                f"input {self.input_width}x{self.input_height}, {len(self.output_names)} outputs, "
                f"{self.num_anchors} anchors)"
            )

        except Exception as e:
            self._is_loaded = False
            self.session = None
            error_msg = f"Failed to load SCRFD detector: {e}"
            self.logger.error(error_msg)
            raise ModelLoadError(self.name, error_msg)

    def unload_model(self) -> None:
        self.session = None
        self.output_names = []
        self._is_loaded = False
        self.logger.info("SCRFD detector unloaded")

    def is_loaded(self) -> bool:
        return self._is_loaded and self.session is not None

    def get_info(self) -> ModelInfo:
        if self._model_info is None:
            self._model_info = ModelInfo(
                name=self.name,
                version=MODEL_VERSIONS.get('scrfd', 'unknown'),
                provider="InsightFace SCRFD (ONNX Runtime)",
                capabilities=['face_detection', 'multi_face'],
                input_formats=['BGR'],
                output_format='List[Detection]',
                metadata={
                    'input_size': (self.input_width, self.input_height),
                    'strides': list(SCRFD_STRIDES),
                    'num_anchors': self.num_anchors,
                    'providers': self.config['providers'],
                }
            )
        return self._model_info

    def _stride_heads(self, outputs: List[np.ndarray]) -> Dict[int, Tuple[np.ndarray, np.ndarray]]:
        """Pair score and distance tensors per stride, by name when available"""
        by_name = dict(zip(self.output_names, outputs))
        heads = {}
        named = all(f"score_{s}" in by_name and f"bbox_{s}" in by_name for s in SCRFD_STRIDES)

        for i, stride in enumerate(SCRFD_STRIDES):
            if named:
                heads[stride] = (by_name[f"score_{stride}"], by_name[f"bbox_{stride}"])
            elif len(outputs) >= 2 * len(SCRFD_STRIDES):
                # Anonymous exports: scores first, then boxes, then landmarks
                heads[stride] = (outputs[i], outputs[i + len(SCRFD_STRIDES)])
        return heads

    @ensure_loaded
    @measure_inference_time
    def detect(self, image: np.ndarray,
               confidence_threshold: Optional[float] = None) -> List[Detection]:
        """
        Detect faces in a BGR image

        Returns an empty list for empty or malformed images.
        """
        if not self.validate_input(image):
            self.logger.debug("Empty or malformed image passed to detector")
            return []

        threshold = self.config['confidence_threshold'] if confidence_threshold is None else confidence_threshold
        image_height, image_width = image.shape[:2]

        canvas, scale = letterbox_image(image, self.input_width, self.input_height)
        blob = cv2.dnn.blobFromImage(
            canvas,
            1.0 / SCRFD_INPUT_STD,
            (self.input_width, self.input_height),
            (SCRFD_INPUT_MEAN, SCRFD_INPUT_MEAN, SCRFD_INPUT_MEAN),
            swapRB=True
        )

        with self._inference_guard():
            outputs = self.session.run(None, {self.input_name: blob})

        heads = self._stride_heads(outputs)
        if not heads:
            self.logger.warning(f"Unrecognized SCRFD output set: {self.output_names}")
            return []

        candidates: List[Detection] = []
        for stride, (scores, distances) in heads.items():
            candidates.extend(decode_stride_level(
                scores, distances, stride,
                self.input_width, self.input_height, self.num_anchors,
                threshold, scale, image_width, image_height,
                self.config['min_face_size']
            ))

        detections = non_max_suppression(candidates, self.config['nms_threshold'])
        self.logger.debug(f"Detected {len(detections)} face(s) from {len(candidates)} candidates")
        return detections


# Register the model with the factory
ModelFactory.register('scrfd_face_detection', ScrfdFaceDetector)
