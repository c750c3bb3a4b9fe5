#!/usr/bin/env python3
"""
Configuration Module for Face Match Service
===========================================

Centralized configuration for all service components.
Every value can be overridden through an environment variable of the same name.
"""

import os
from typing import Dict, Any, List

from .core import constants
from .core.exceptions import ConfigurationError


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    """Main configuration class for face match service"""

    # =============================================================================
    # MODEL CONFIGURATION
    # =============================================================================

    MODELS_DIR = os.getenv('MODELS_DIR', os.path.join(os.getcwd(), 'models'))

    DETECTOR_MODEL_FILE = os.getenv('DETECTOR_MODEL_FILE', constants.DETECTOR_MODEL_FILE)
    EMBEDDER_MODEL_FILE = os.getenv('EMBEDDER_MODEL_FILE', constants.EMBEDDER_MODEL_FILE)
    ANTISPOOF_PROTOTXT_FILE = os.getenv('ANTISPOOF_PROTOTXT_FILE', constants.ANTISPOOF_PROTOTXT_FILE)
    ANTISPOOF_CAFFEMODEL_FILE = os.getenv('ANTISPOOF_CAFFEMODEL_FILE', constants.ANTISPOOF_CAFFEMODEL_FILE)

    # ONNX Runtime
    ONNX_PROVIDERS = _parse_list(os.getenv('ONNX_PROVIDERS', ','.join(constants.DEFAULT_ONNX_PROVIDERS)))
    ONNX_INTRA_OP_THREADS = int(os.getenv('ONNX_INTRA_OP_THREADS', '0'))  # 0 = runtime default
    SERIALIZE_ONNX_INFERENCE = os.getenv('SERIALIZE_ONNX_INFERENCE', 'false').lower() == 'true'

    # SCRFD anchors per location; 0 = infer from the output count
    DETECTOR_NUM_ANCHORS = int(os.getenv('DETECTOR_NUM_ANCHORS', '0'))

    # =============================================================================
    # DETECTION THRESHOLDS
    # =============================================================================

    FACE_CONFIDENCE_THRESHOLD = float(os.getenv('FACE_CONFIDENCE_THRESHOLD', str(constants.FACE_CONFIDENCE_THRESHOLD)))
    NMS_THRESHOLD = float(os.getenv('NMS_THRESHOLD', str(constants.NMS_IOU_THRESHOLD)))
    MIN_FACE_SIZE = int(os.getenv('MIN_FACE_SIZE', str(constants.MIN_FACE_SIZE_PIXELS)))

    # =============================================================================
    # DECISION THRESHOLDS
    # =============================================================================

    SIMILARITY_THRESHOLD = float(os.getenv('SIMILARITY_THRESHOLD', str(constants.SIMILARITY_THRESHOLD)))
    STRONG_LIVE_THRESHOLD = float(os.getenv('STRONG_LIVE_THRESHOLD', str(constants.STRONG_LIVE_THRESHOLD)))
    ANTISPOOF_EXPAND_FRACTION = float(os.getenv('ANTISPOOF_EXPAND_FRACTION', str(constants.ANTISPOOF_EXPAND_FRACTION)))

    DOCUMENT_FACE_PADDING = float(os.getenv('DOCUMENT_FACE_PADDING', str(constants.DOCUMENT_FACE_PADDING)))
    CAMERA_FACE_PADDING = float(os.getenv('CAMERA_FACE_PADDING', str(constants.CAMERA_FACE_PADDING)))

    # =============================================================================
    # DOCUMENT PREPROCESSING
    # =============================================================================

    CLAHE_CLIP_LIMIT = float(os.getenv('CLAHE_CLIP_LIMIT', str(constants.CLAHE_CLIP_LIMIT)))
    CLAHE_TILE_GRID = tuple(map(int, os.getenv('CLAHE_TILE_GRID', '8,8').split(',')))
    GAMMA_VALUE = float(os.getenv('GAMMA_VALUE', str(constants.GAMMA_VALUE)))

    # Moire removal: resample factor, then fastNlMeansDenoisingColored parameters
    DESCREEN_SCALE = float(os.getenv('DESCREEN_SCALE', str(constants.DESCREEN_SCALE)))
    DESCREEN_H = float(os.getenv('DESCREEN_H', str(constants.DESCREEN_H)))
    DESCREEN_H_COLOR = float(os.getenv('DESCREEN_H_COLOR', str(constants.DESCREEN_H_COLOR)))
    DESCREEN_TEMPLATE_WINDOW = int(os.getenv('DESCREEN_TEMPLATE_WINDOW', str(constants.DESCREEN_TEMPLATE_WINDOW)))
    DESCREEN_SEARCH_WINDOW = int(os.getenv('DESCREEN_SEARCH_WINDOW', str(constants.DESCREEN_SEARCH_WINDOW)))

    # Soft face mask: ellipse semi-axes as fractions of the crop, edge blur, fill color (BGR)
    MASK_AXIS_X_RATIO = float(os.getenv('MASK_AXIS_X_RATIO', str(constants.MASK_AXIS_X_RATIO)))
    MASK_AXIS_Y_RATIO = float(os.getenv('MASK_AXIS_Y_RATIO', str(constants.MASK_AXIS_Y_RATIO)))
    MASK_BLUR_KERNEL = int(os.getenv('MASK_BLUR_KERNEL', str(constants.MASK_BLUR_KERNEL)))
    MASK_BACKGROUND = tuple(map(int, os.getenv('MASK_BACKGROUND', '127,127,127').split(',')))

    # =============================================================================
    # OUTPUT CONFIGURATION
    # =============================================================================

    JPEG_QUALITY = int(os.getenv('JPEG_QUALITY', str(constants.JPEG_QUALITY)))

    # =============================================================================
    # LOGGING CONFIGURATION
    # =============================================================================

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    LOG_FILE = os.getenv('LOG_FILE')

    # =============================================================================
    # HELPER METHODS
    # =============================================================================

    def model_path(self, file_name: str) -> str:
        return os.path.join(self.MODELS_DIR, file_name)

    def get_detector_config(self) -> Dict[str, Any]:
        """Get SCRFD detector configuration"""
        return {
            'model_path': self.model_path(self.DETECTOR_MODEL_FILE),
            'providers': list(self.ONNX_PROVIDERS),
            'intra_op_threads': self.ONNX_INTRA_OP_THREADS,
            'serialize_inference': self.SERIALIZE_ONNX_INFERENCE,
            'num_anchors': self.DETECTOR_NUM_ANCHORS,
            'confidence_threshold': self.FACE_CONFIDENCE_THRESHOLD,
            'nms_threshold': self.NMS_THRESHOLD,
            'min_face_size': self.MIN_FACE_SIZE,
        }

    def get_embedder_config(self) -> Dict[str, Any]:
        """Get ArcFace embedder configuration"""
        return {
            'model_path': self.model_path(self.EMBEDDER_MODEL_FILE),
            'providers': list(self.ONNX_PROVIDERS),
            'intra_op_threads': self.ONNX_INTRA_OP_THREADS,
            'serialize_inference': self.SERIALIZE_ONNX_INFERENCE,
        }

    def get_antispoofing_config(self) -> Dict[str, Any]:
        """Get anti-spoofing classifier configuration"""
        return {
            'prototxt_path': self.model_path(self.ANTISPOOF_PROTOTXT_FILE),
            'caffemodel_path': self.model_path(self.ANTISPOOF_CAFFEMODEL_FILE),
            'expand_fraction': self.ANTISPOOF_EXPAND_FRACTION,
            'strong_live_threshold': self.STRONG_LIVE_THRESHOLD,
            # OpenCV DNN nets are not safe for concurrent forward passes
            'serialize_inference': True,
        }

    def get_preprocessor_config(self) -> Dict[str, Any]:
        """Get document preprocessing configuration"""
        return {
            'clahe_clip_limit': self.CLAHE_CLIP_LIMIT,
            'clahe_tile_grid': tuple(self.CLAHE_TILE_GRID),
            'gamma': self.GAMMA_VALUE,
            'descreen_scale': self.DESCREEN_SCALE,
            'descreen_h': self.DESCREEN_H,
            'descreen_h_color': self.DESCREEN_H_COLOR,
            'descreen_template_window': self.DESCREEN_TEMPLATE_WINDOW,
            'descreen_search_window': self.DESCREEN_SEARCH_WINDOW,
            'mask_axis_x_ratio': self.MASK_AXIS_X_RATIO,
            'mask_axis_y_ratio': self.MASK_AXIS_Y_RATIO,
            'mask_blur_kernel': self.MASK_BLUR_KERNEL,
            'mask_background': tuple(self.MASK_BACKGROUND),
        }

    def get_decision_config(self) -> Dict[str, float]:
        """Get decision engine thresholds"""
        return {
            'similarity_threshold': self.SIMILARITY_THRESHOLD,
            'face_confidence_threshold': self.FACE_CONFIDENCE_THRESHOLD,
            'strong_live_threshold': self.STRONG_LIVE_THRESHOLD,
            'document_padding': self.DOCUMENT_FACE_PADDING,
            'camera_padding': self.CAMERA_FACE_PADDING,
        }

    def validate_configuration(self) -> bool:
        """
        Validate configuration values

        Raises:
            ConfigurationError: naming the first offending parameter
        """
        unit_interval = {
            'FACE_CONFIDENCE_THRESHOLD': self.FACE_CONFIDENCE_THRESHOLD,
            'NMS_THRESHOLD': self.NMS_THRESHOLD,
            'SIMILARITY_THRESHOLD': self.SIMILARITY_THRESHOLD,
            'STRONG_LIVE_THRESHOLD': self.STRONG_LIVE_THRESHOLD,
        }
        for name, value in unit_interval.items():
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(name, value, "must be between 0 and 1")

        for name in ('ANTISPOOF_EXPAND_FRACTION', 'DOCUMENT_FACE_PADDING', 'CAMERA_FACE_PADDING'):
            value = getattr(self, name)
            if value < 0.0:
                raise ConfigurationError(name, value, "must not be negative")

        if self.MIN_FACE_SIZE < 0:
            raise ConfigurationError('MIN_FACE_SIZE', self.MIN_FACE_SIZE, "must not be negative")
        if self.DETECTOR_NUM_ANCHORS < 0:
            raise ConfigurationError('DETECTOR_NUM_ANCHORS', self.DETECTOR_NUM_ANCHORS, "must not be negative")
        if self.GAMMA_VALUE <= 0.0:
            raise ConfigurationError('GAMMA_VALUE', self.GAMMA_VALUE, "must be positive")
        if not 0.0 < self.DESCREEN_SCALE <= 1.0:
            raise ConfigurationError('DESCREEN_SCALE', self.DESCREEN_SCALE, "must be in (0, 1]")
        for name in ('DESCREEN_TEMPLATE_WINDOW', 'DESCREEN_SEARCH_WINDOW', 'MASK_BLUR_KERNEL'):
            value = getattr(self, name)
            if value < 1 or value % 2 == 0:
                raise ConfigurationError(name, value, "must be a positive odd number")
        if len(self.MASK_BACKGROUND) != 3:
            raise ConfigurationError('MASK_BACKGROUND', self.MASK_BACKGROUND, "must be three BGR values")
        if not 1 <= self.JPEG_QUALITY <= 100:
            raise ConfigurationError('JPEG_QUALITY', self.JPEG_QUALITY, "must be between 1 and 100")
        if not self.ONNX_PROVIDERS:
            raise ConfigurationError('ONNX_PROVIDERS', self.ONNX_PROVIDERS, "at least one provider is required")

        return True


# Development/Testing Configuration
class DevelopmentConfig(Config):
    """Configuration for development environment"""
    LOG_LEVEL = 'DEBUG'


# Production Configuration
class ProductionConfig(Config):
    """Configuration for production environment"""
    LOG_LEVEL = 'WARNING'
    SERIALIZE_ONNX_INFERENCE = True


# Configuration factory
def get_config(environment: str = None) -> Config:
    """Get configuration based on environment"""
    env = environment or os.getenv('ENVIRONMENT', 'default')

    if env.lower() == 'production':
        return ProductionConfig()
    elif env.lower() == 'development':
        return DevelopmentConfig()
    else:
        return Config()
