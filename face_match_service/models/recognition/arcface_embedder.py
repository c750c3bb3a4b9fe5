#!/usr/bin/env python3
"""
ArcFace Embedding Implementation
================================

Fixed-length face embeddings from an ArcFace ONNX export, plus the cosine
similarity used to compare them.
"""

import time
from typing import Optional, Dict, Any

import cv2
import numpy as np

from ..base import EmbeddingModel, ModelInfo, ModelFactory, ensure_loaded, validate_input_decorator, measure_inference_time
from ..onnx_session import create_onnx_session, infer_input_layout, LAYOUT_NHWC
from ...core.exceptions import ModelLoadError, DimensionMismatchError
from ...core.constants import (
    ARCFACE_INPUT_SIZE,
    ARCFACE_INPUT_MEAN,
    ARCFACE_INPUT_STD,
    ARCFACE_EMBEDDING_DIM,
    EMBEDDING_NORM_EPSILON,
    DEFAULT_ONNX_PROVIDERS,
    MODEL_VERSIONS
)


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale to unit length; vectors with a near-zero norm are returned unchanged"""
    vector = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vector))
    if norm < EMBEDDING_NORM_EPSILON:
        return vector
    return vector / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine of the angle between two embeddings

    Works on un-normalized input. Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: if the vectors differ in length
    """
    a = np.asarray(a, dtype=np.float32).reshape(-1)
    b = np.asarray(b, dtype=np.float32).reshape(-1)
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(a.shape[0], b.shape[0])

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


class ArcFaceEmbedder(EmbeddingModel):
    """ArcFace recognition network backed by an ONNX Runtime session"""

    def __init__(self, name: str = "arcface", config: Optional[Dict[str, Any]] = None):
        default_config = {
            'model_path': None,
            'providers': list(DEFAULT_ONNX_PROVIDERS),
            'intra_op_threads': 0,
            'serialize_inference': False,
        }

        if config:
            default_config.update(config)

        super().__init__(name, default_config)

        self.session = None
        self.input_name: Optional[str] = None
        self.layout: Optional[str] = None
        self.input_height, self.input_width = ARCFACE_INPUT_SIZE
        self._embedding_dim = ARCFACE_EMBEDDING_DIM

    def load_model(self) -> None:
        """Open the ONNX session and read input layout and embedding size"""
        model_path = self._require_file('ArcFace embedder model', self.config['model_path'])

        try:
            start_time = time.time()
            self.logger.info(f"Loading ArcFace embedder from {model_path}...")

            self.session = create_onnx_session(
                model_path,
                self.config['providers'],
                self.config['intra_op_threads']
            )
            self.input_name = self.session.get_inputs()[0].name
            self.layout, self.input_height, self.input_width = infer_input_layout(
                self.session, ARCFACE_INPUT_SIZE
            )

            output_shape = self.session.get_outputs()[0].shape
            if output_shape and isinstance(output_shape[-1], int) and output_shape[-1] > 0:
                self._embedding_dim = output_shape[-1]

            self._load_time = (time.time() - start_time) * 1000
            self._is_loaded = True

            self.logger.info(
                f"✅ ArcFace embedder loaded successfully ({self._load_time:.1f}ms, "
                f"{self.layout} {self.input_width}x{self.input_height}, dim {self._embedding_dim})"
            )

        except Exception as e:
            self._is_loaded = False
            self.session = None
            error_msg = f"Failed to load ArcFace embedder: {e}"
            self.logger.error(error_msg)
            raise ModelLoadError(self.name, error_msg)

    def unload_model(self) -> None:
        self.session = None
        self._is_loaded = False
        self.logger.info("ArcFace embedder unloaded")

    def is_loaded(self) -> bool:
        return self._is_loaded and self.session is not None

    def get_info(self) -> ModelInfo:
        if self._model_info is None:
            self._model_info = ModelInfo(
                name=self.name,
                version=MODEL_VERSIONS.get('arcface', 'unknown'),
                provider="InsightFace ArcFace (ONNX Runtime)",
                capabilities=['face_embedding'],
                input_formats=['BGR', 'face_crop'],
                output_format='np.ndarray[float32]',
                metadata={
                    'input_size': (self.input_width, self.input_height),
                    'layout': self.layout,
                    'embedding_dim': self._embedding_dim,
                }
            )
        return self._model_info

    @property
    def embedding_dim(self) -> int:
        return self._embedding_dim

    def _prepare_input(self, face_crop: np.ndarray) -> np.ndarray:
        resized = cv2.resize(face_crop, (self.input_width, self.input_height))
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB).astype(np.float32)
        tensor = (rgb - ARCFACE_INPUT_MEAN) / ARCFACE_INPUT_STD
        if self.layout != LAYOUT_NHWC:
            tensor = tensor.transpose(2, 0, 1)
        return np.ascontiguousarray(tensor[np.newaxis, ...], dtype=np.float32)

    @ensure_loaded
    @validate_input_decorator
    @measure_inference_time
    def embed(self, face_crop: np.ndarray) -> np.ndarray:
        """Embed a BGR face crop; the result is L2-normalized"""
        tensor = self._prepare_input(face_crop)

        with self._inference_guard():
            outputs = self.session.run(None, {self.input_name: tensor})

        return l2_normalize(outputs[0])


# Register the model with the factory
ModelFactory.register('arcface_embedding', ArcFaceEmbedder)
