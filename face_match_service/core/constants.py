#!/usr/bin/env python3
"""
Core Constants for Face Match Service
=====================================

Network input geometry, preprocessing parameters, decision thresholds and
annotation styling shared by the models and processors.
"""

from typing import Dict, Tuple

# =============================================================================
# Model Artifacts
# =============================================================================

DETECTOR_MODEL_FILE = 'scrfd.onnx'
EMBEDDER_MODEL_FILE = 'arcface.onnx'
ANTISPOOF_PROTOTXT_FILE = 'deploy_Squeeze.prototxt'
ANTISPOOF_CAFFEMODEL_FILE = 'train_add_data_iter_100000.caffemodel'

DEFAULT_ONNX_PROVIDERS = ['CPUExecutionProvider']

# =============================================================================
# SCRFD Face Detector
# =============================================================================

SCRFD_INPUT_SIZE = (640, 640)  # (width, height)
SCRFD_STRIDES = (8, 16, 32)
SCRFD_INPUT_MEAN = 127.5
SCRFD_INPUT_STD = 128.0
SCRFD_PAD_VALUE = 0

# Raw scores outside this range are treated as logits
SCRFD_LOGIT_UPPER_BOUND = 1.2
SCRFD_LOGIT_LOWER_BOUND = 0.0
SCRFD_LOGIT_MIN_CONFIDENCE = 0.5

FACE_CONFIDENCE_THRESHOLD = 0.5
NMS_IOU_THRESHOLD = 0.35
MIN_FACE_SIZE_PIXELS = 8

# =============================================================================
# ArcFace Embedder
# =============================================================================

ARCFACE_INPUT_SIZE = (112, 112)
ARCFACE_INPUT_MEAN = 127.5
ARCFACE_INPUT_STD = 128.0
ARCFACE_EMBEDDING_DIM = 512
EMBEDDING_NORM_EPSILON = 1e-12

# =============================================================================
# Anti-Spoofing Classifier
# =============================================================================

ANTISPOOF_INPUT_SIZE = (227, 227)
ANTISPOOF_MEAN = (90.0, 198.0, 121.0)
ANTISPOOF_LIVE_CLASS = 1
ANTISPOOF_EXPAND_FRACTION = 0.4
STRONG_LIVE_THRESHOLD = 0.95

# =============================================================================
# Document Face Preprocessing
# =============================================================================

CLAHE_CLIP_LIMIT = 2.5
CLAHE_TILE_GRID = (8, 8)
GAMMA_VALUE = 0.85

DESCREEN_SCALE = 0.5
DESCREEN_H = 6
DESCREEN_H_COLOR = 6
DESCREEN_TEMPLATE_WINDOW = 7
DESCREEN_SEARCH_WINDOW = 21

MASK_AXIS_X_RATIO = 0.42
MASK_AXIS_Y_RATIO = 0.48
MASK_BLUR_KERNEL = 31
MASK_BACKGROUND = (127, 127, 127)

VARIANT_CLAHE = 'clahe'
VARIANT_GAMMA_CLAHE = 'gamma_clahe'
VARIANT_DESCREEN = 'descreen'
VARIANT_MASKED = 'masked'

# =============================================================================
# Decision Thresholds
# =============================================================================

SIMILARITY_THRESHOLD = 0.40
DOCUMENT_FACE_PADDING = 0.12
CAMERA_FACE_PADDING = 0.20

SOURCE_DOCUMENT = 'document'
SOURCE_CAMERA = 'camera'

VERDICT_ACCEPTED = 'ACCEPTED'
VERDICT_SPOOF = 'SPOOF'
VERDICT_BELOW_THRESHOLD = 'BELOW_THRESHOLD'

# =============================================================================
# Annotation Styling (BGR)
# =============================================================================

COLOR_ACCEPTED: Tuple[int, int, int] = (0, 255, 0)
COLOR_SPOOF: Tuple[int, int, int] = (0, 0, 255)
COLOR_BELOW_THRESHOLD: Tuple[int, int, int] = (0, 165, 255)
COLOR_TEXT: Tuple[int, int, int] = (0, 0, 0)

BOX_THICKNESS = 2
LABEL_FONT_SCALE = 0.7
LABEL_FONT_THICKNESS = 1
LABEL_PADDING = 4
LABEL_GAP = 6

JPEG_QUALITY = 95

# =============================================================================
# Model Versions
# =============================================================================

MODEL_VERSIONS: Dict[str, str] = {
    'scrfd': '10g_bnkps',
    'arcface': 'r100',
    'antispoofing': 'squeezenet_v1',
}

# =============================================================================
# Error Messages
# =============================================================================

ERROR_MESSAGES: Dict[str, str] = {
    'no_document_face': 'No face detected in the ID card image',
    'no_camera_face': 'No face detected in the camera image',
    'invalid_image': 'Image is empty or not a 3-channel BGR array',
    'undecodable_image': 'Image data could not be decoded',
    'threshold_out_of_range': 'Threshold must be between 0 and 1',
}
