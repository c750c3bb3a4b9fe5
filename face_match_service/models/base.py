#!/usr/bin/env python3
"""
Base Model Interfaces for Face Match Service
============================================

Every inference backend (detector, embedder, liveness classifier) derives
from BaseModel, which provides:

- an explicit load/unload lifecycle with a fail-fast check for model files
- a per-model lock taken around forward passes when the backend needs it
- timing of every inference call

ModelFactory maps model type names to classes; implementations register
themselves when their module is imported.
"""

from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Dict, Any, Optional, List
import functools
import logging
import os
import threading
import time

import numpy as np

from ..core.data_classes import BoundingBox, Detection, LivenessVerdict
from ..core.exceptions import ModelNotLoadedError, ModelLoadError, ResourceMissingError, InvalidInputError


@dataclass
class ModelInfo:
    """Static description of a loaded model"""
    name: str
    version: str
    provider: str
    capabilities: List[str]
    input_formats: List[str]
    output_format: str
    metadata: Dict[str, Any]


@dataclass
class ModelPerformance:
    """Load time and running inference timings"""
    load_time_ms: float
    inference_time_ms: float
    inference_count: int = 0


class BaseModel(ABC):
    """Lifecycle, locking and timing shared by all inference backends"""

    def __init__(self, name: str, config: Dict[str, Any]):
        self.name = name
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{name}")
        self._is_loaded = False
        self._load_time = 0.0
        self._model_info: Optional[ModelInfo] = None
        self._performance: Optional[ModelPerformance] = None
        # One lock per model handle
        self._inference_lock = threading.Lock()

    @abstractmethod
    def load_model(self) -> None:
        """Open the model files; raises ResourceMissingError or ModelLoadError"""

    @abstractmethod
    def unload_model(self) -> None:
        """Drop the backend handle"""

    @abstractmethod
    def is_loaded(self) -> bool:
        """True once load_model() succeeded and until unload_model()"""

    @abstractmethod
    def get_info(self) -> ModelInfo:
        """Describe the loaded model"""

    def validate_input(self, input_data: Any) -> bool:
        """Non-empty H x W x 3 uint8 array (BGR)"""
        return (
            isinstance(input_data, np.ndarray)
            and input_data.ndim == 3
            and input_data.shape[2] == 3
            and input_data.shape[0] > 0
            and input_data.shape[1] > 0
            and input_data.dtype == np.uint8
        )

    def get_performance(self) -> Optional[ModelPerformance]:
        return self._performance

    def record_inference(self, elapsed_ms: float) -> None:
        if self._performance is None:
            self._performance = ModelPerformance(load_time_ms=self._load_time, inference_time_ms=0.0)
        self._performance.inference_time_ms = elapsed_ms
        self._performance.inference_count += 1

    def _require_file(self, resource_name: str, path: Optional[str]) -> str:
        """Return path if it names an existing file, else raise ResourceMissingError"""
        if not path or not os.path.isfile(path):
            raise ResourceMissingError(resource_name, str(path))
        return path

    def _inference_guard(self):
        """Lock held around a forward pass when serialization is enabled"""
        if self.config.get('serialize_inference', False):
            return self._inference_lock
        return nullcontext()

    def __enter__(self):
        if not self.is_loaded():
            self.load_model()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unload_model()


class FaceDetectionModel(BaseModel):
    """Detector interface"""

    @abstractmethod
    def detect(self, image: np.ndarray,
               confidence_threshold: Optional[float] = None) -> List[Detection]:
        """
        Detect faces in a BGR image

        Args:
            image: Input image as numpy array (BGR format)
            confidence_threshold: Override for the configured score threshold

        Returns:
            Detections after non-maximum suppression, possibly empty
        """

    def detect_largest(self, image: np.ndarray,
                       confidence_threshold: Optional[float] = None) -> Optional[Detection]:
        """
        Detection with the greatest area; the first one wins ties

        Detections scoring below confidence_threshold are skipped even if the
        backend returned them.
        """
        best = None
        for detection in self.detect(image, confidence_threshold):
            if confidence_threshold is not None and detection.confidence < confidence_threshold:
                continue
            if best is None or detection.box.area > best.box.area:
                best = detection
        return best


class EmbeddingModel(BaseModel):
    """Face embedding interface"""

    @abstractmethod
    def embed(self, face_crop: np.ndarray) -> np.ndarray:
        """L2-normalized 1-D float32 embedding of a BGR face crop"""

    @property
    @abstractmethod
    def embedding_dim(self) -> int:
        """Length of the vectors produced by embed()"""


class LivenessModel(BaseModel):
    """Anti-spoofing interface"""

    @abstractmethod
    def evaluate(self, image: np.ndarray, face_rect: BoundingBox,
                 strong_live_threshold: Optional[float] = None) -> LivenessVerdict:
        """
        Classify the face under face_rect as live or spoof

        Args:
            image: Full camera image (BGR format)
            face_rect: Detected face box in image coordinates
            strong_live_threshold: Override for the fusion acceptance threshold
        """


class ModelFactory:
    """Registry of model classes by type name"""

    _registry: Dict[str, type] = {}

    @classmethod
    def register(cls, model_type: str, model_class: type) -> None:
        cls._registry[model_type] = model_class

    @classmethod
    def create(cls, model_type: str, name: str, config: Dict[str, Any]) -> BaseModel:
        """Instantiate a registered model (not yet loaded)"""
        model_class = cls._registry.get(model_type)
        if model_class is None:
            raise ModelLoadError(name, f"unknown model type '{model_type}'")
        return model_class(name, config)


# Decorators for inference methods

def measure_inference_time(func):
    """Record the wall time of each call on the model"""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        started = time.perf_counter()
        try:
            return func(self, *args, **kwargs)
        finally:
            self.record_inference((time.perf_counter() - started) * 1000)
    return wrapper


def ensure_loaded(func):
    """Raise ModelNotLoadedError when called before load_model()"""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not self.is_loaded():
            raise ModelNotLoadedError(self.name)
        return func(self, *args, **kwargs)
    return wrapper


def validate_input_decorator(func):
    """Raise InvalidInputError unless the first argument is a valid image"""
    @functools.wraps(func)
    def wrapper(self, input_data, *args, **kwargs):
        if not self.validate_input(input_data):
            raise InvalidInputError("expected a non-empty HxWx3 uint8 image", self.name)
        return func(self, input_data, *args, **kwargs)
    return wrapper
