#!/usr/bin/env python3
"""
Caffe Anti-Spoofing Liveness Detection Implementation
=====================================================

Binary live/spoof SqueezeNet classifier run through OpenCV DNN.
The same face is classified twice, once with surrounding context and once
tightly cropped, and the two opinions are fused by a confidence-gated rule.
"""

import time
from typing import Optional, Dict, Any

import cv2
import numpy as np

from ..base import LivenessModel, ModelInfo, ModelFactory, ensure_loaded, measure_inference_time
from ...core.data_classes import BoundingBox, LivenessVerdict
from ...core.exceptions import ModelLoadError
from ...core.constants import (
    ANTISPOOF_INPUT_SIZE,
    ANTISPOOF_MEAN,
    ANTISPOOF_LIVE_CLASS,
    ANTISPOOF_EXPAND_FRACTION,
    STRONG_LIVE_THRESHOLD,
    MODEL_VERSIONS
)


def fuse_liveness(expanded: LivenessVerdict, original: LivenessVerdict,
                  strong_threshold: float = STRONG_LIVE_THRESHOLD) -> LivenessVerdict:
    """
    Combine the expanded-crop and tight-crop verdicts

    Agreement averages the confidences. On disagreement the live opinion wins
    only when it is both stronger than the spoof opinion and above
    strong_threshold; otherwise the result is spoof with the spoof confidence.
    """
    if expanded.is_live and original.is_live:
        return LivenessVerdict(True, (expanded.confidence + original.confidence) / 2.0)

    if expanded.is_live and not original.is_live:
        if expanded.confidence > original.confidence and expanded.confidence > strong_threshold:
            return LivenessVerdict(True, expanded.confidence)
        return LivenessVerdict(False, original.confidence)

    if original.is_live and not expanded.is_live:
        if original.confidence > expanded.confidence and original.confidence > strong_threshold:
            return LivenessVerdict(True, original.confidence)
        return LivenessVerdict(False, expanded.confidence)

    return LivenessVerdict(False, (expanded.confidence + original.confidence) / 2.0)


class CaffeAntiSpoofingDetector(LivenessModel):
    """Two-crop anti-spoofing classifier on an OpenCV DNN Caffe network"""

    def __init__(self, name: str = "antispoofing", config: Optional[Dict[str, Any]] = None):
        default_config = {
            'prototxt_path': None,
            'caffemodel_path': None,
            'expand_fraction': ANTISPOOF_EXPAND_FRACTION,
            'strong_live_threshold': STRONG_LIVE_THRESHOLD,
            'serialize_inference': True,
        }

        if config:
            default_config.update(config)

        super().__init__(name, default_config)

        self.net = None

    def load_model(self) -> None:
        """Read the Caffe prototxt and weights"""
        prototxt = self._require_file('anti-spoofing prototxt', self.config['prototxt_path'])
        caffemodel = self._require_file('anti-spoofing caffemodel', self.config['caffemodel_path'])

        try:
            start_time = time.time()
            self.logger.info("Loading anti-spoofing classifier...")

            net = cv2.dnn.readNetFromCaffe(prototxt, caffemodel)
            if net.empty():
                raise ValueError("OpenCV returned an empty network")
            self.net = net

            self._load_time = (time.time() - start_time) * 1000
            self._is_loaded = True

            self.logger.info(f"✅ Anti-spoofing classifier loaded successfully ({self._load_time:.1f}ms)")

        except Exception as e:
            self._is_loaded = False
            self.net = None
            error_msg = f"Failed to load anti-spoofing classifier: {e}"
            self.logger.error(error_msg)
            raise ModelLoadError(self.name, error_msg)

    def unload_model(self) -> None:
        self.net = None
        self._is_loaded = False
        self.logger.info("Anti-spoofing classifier unloaded")

    def is_loaded(self) -> bool:
        return self._is_loaded and self.net is not None

    def get_info(self) -> ModelInfo:
        if self._model_info is None:
            self._model_info = ModelInfo(
                name=self.name,
                version=MODEL_VERSIONS.get('antispoofing', 'unknown'),
                provider="OpenCV DNN (Caffe)",
                capabilities=['liveness_detection', 'anti_spoofing', 'photo_detection', 'screen_detection'],
                input_formats=['BGR'],
                output_format='LivenessVerdict',
                metadata={
                    'input_size': ANTISPOOF_INPUT_SIZE,
                    'expand_fraction': self.config['expand_fraction'],
                    'strong_live_threshold': self.config['strong_live_threshold'],
                }
            )
        return self._model_info

    def classify(self, image: np.ndarray, box: BoundingBox) -> LivenessVerdict:
        """Run the network on one region; arg-max class decides, its probability is the confidence"""
        if box.is_empty:
            return LivenessVerdict(False, 0.0)

        roi = box.crop(image)
        resized = cv2.resize(roi, ANTISPOOF_INPUT_SIZE)
        blob = cv2.dnn.blobFromImage(resized, 1.0, ANTISPOOF_INPUT_SIZE, ANTISPOOF_MEAN,
                                     swapRB=False, crop=False)

        with self._inference_guard():
            self.net.setInput(blob)
            prob = np.asarray(self.net.forward()).reshape(-1)

        class_id = int(np.argmax(prob))
        return LivenessVerdict(class_id == ANTISPOOF_LIVE_CLASS, float(prob[class_id]))

    @ensure_loaded
    @measure_inference_time
    def evaluate(self, image: np.ndarray, face_rect: BoundingBox,
                 strong_live_threshold: Optional[float] = None) -> LivenessVerdict:
        """
        Classify the face under face_rect as live or spoof

        Args:
            image: Full camera image (BGR format)
            face_rect: Detected face box
            strong_live_threshold: Override for the disagreement acceptance threshold

        Returns:
            Fused verdict; spoof at 0.0 for an empty image or rect
        """
        if not self.validate_input(image) or face_rect is None or face_rect.is_empty:
            return LivenessVerdict(False, 0.0)

        threshold = self.config['strong_live_threshold'] if strong_live_threshold is None else strong_live_threshold
        image_height, image_width = image.shape[:2]

        expanded_box = face_rect.pad(self.config['expand_fraction'], image_width, image_height)
        original_box = face_rect.clamp(image_width, image_height)

        expanded = self.classify(image, expanded_box)
        original = self.classify(image, original_box)
        verdict = fuse_liveness(expanded, original, threshold)

        self.logger.debug(
            f"Liveness: expanded {expanded.label} {expanded.confidence:.3f}, "
            f"original {original.label} {original.confidence:.3f} -> "
            f"{verdict.label.upper()} {verdict.confidence:.3f}"
        )
        return verdict


# Register the model with the factory
ModelFactory.register('caffe_antispoofing', CaffeAntiSpoofingDetector)
