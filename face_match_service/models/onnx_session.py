#!/usr/bin/env python3
"""
ONNX Runtime Session Helpers
============================

Session construction and input-shape inspection shared by the SCRFD detector
and the ArcFace embedder.
"""

import logging
from typing import List, Optional, Tuple

import onnxruntime as ort

logger = logging.getLogger(__name__)

LAYOUT_NCHW = 'NCHW'
LAYOUT_NHWC = 'NHWC'


def create_onnx_session(model_path: str, providers: Optional[List[str]] = None,
                        intra_op_threads: int = 0) -> ort.InferenceSession:
    """
    Create an inference session with full graph optimization

    Args:
        model_path: Path to the .onnx file
        providers: Execution providers in priority order
        intra_op_threads: Thread count for a single op; 0 keeps the runtime default
    """
    sess_options = ort.SessionOptions()
    sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    if intra_op_threads > 0:
        sess_options.intra_op_num_threads = intra_op_threads

    available = set(ort.get_available_providers())
    requested = providers or ['CPUExecutionProvider']
    usable = [p for p in requested if p in available] or ['CPUExecutionProvider']
    if len(usable) != len(requested):
        logger.warning(f"Unavailable ONNX providers ignored: {sorted(set(requested) - set(usable))}")

    return ort.InferenceSession(str(model_path), sess_options, providers=usable)


def _as_dim(value) -> Optional[int]:
    # Symbolic dimensions come back as strings or None
    if isinstance(value, int) and value > 0:
        return value
    return None


def infer_input_layout(session, fallback_hw: Tuple[int, int]) -> Tuple[str, int, int]:
    """
    Read the first input's layout and spatial size

    Returns:
        (layout, height, width); NCHW with fallback_hw when the shape is symbolic
    """
    shape = list(session.get_inputs()[0].shape)
    if len(shape) != 4:
        return LAYOUT_NCHW, fallback_hw[0], fallback_hw[1]

    dims = [_as_dim(d) for d in shape]
    if dims[3] == 3 and dims[1] != 3:
        height, width = dims[1], dims[2]
        layout = LAYOUT_NHWC
    else:
        height, width = dims[2], dims[3]
        layout = LAYOUT_NCHW

    return layout, height or fallback_hw[0], width or fallback_hw[1]
