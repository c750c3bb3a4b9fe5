#!/usr/bin/env python3
"""
Face Match Command Line
=======================

Compares an ID card image with a camera image and prints the outcome.

    face-match id_card.jpg camera.jpg --json --output annotated.jpg

Exit codes: 0 verification ran (match or not), 2 verification failed.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import get_config
from .core.constants import SOURCE_DOCUMENT, SOURCE_CAMERA
from .core.data_classes import VerificationOutcome
from .core.exceptions import FaceMatchServiceError, INTERNAL_ERROR_CODE, log_exception
from .services.verification_service import VerificationService
from .utils.helpers import load_image, setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ID card to camera face verification")
    parser.add_argument('id_image', help='Path to the ID card image')
    parser.add_argument('camera_image', help='Path to the camera image')
    parser.add_argument('--models-dir', help='Directory holding the model files (default: $MODELS_DIR)')
    parser.add_argument('--threshold', type=float, default=None,
                        help='Similarity acceptance threshold (default: 0.40)')
    parser.add_argument('--face-confidence', type=float, default=None,
                        help='Face detector confidence threshold (default: 0.5)')
    parser.add_argument('--strong-live', type=float, default=None,
                        help='Liveness strong-acceptance threshold (default: 0.95)')
    parser.add_argument('--output', help='Write the annotated JPEG to this path')
    parser.add_argument('--json', action='store_true', help='Print the full outcome as JSON')
    parser.add_argument('--no-image', action='store_true', help='Omit the base64 image from JSON output')
    parser.add_argument('--environment', default=None, help='Configuration environment name')
    return parser


def _print_outcome(outcome: VerificationOutcome, as_json: bool, include_image: bool) -> None:
    if as_json:
        payload = outcome.to_dict()
        if not include_image:
            payload.pop('annotated_image_base64', None)
        print(json.dumps(payload, indent=2))
        return

    if not outcome.success:
        print(f"❌ Verification failed: {outcome.error}")
        return

    result = outcome.result
    print(f"Same person:     {result.is_same_person}")
    print(f"Best similarity: {result.best_similarity:.3f} ({result.matched_variant})")
    print(f"Live face:       {result.is_live_face} ({result.anti_spoof_confidence:.3f})")
    print(f"Verdict:         {result.verdict}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = get_config(args.environment)
    if args.models_dir:
        config.MODELS_DIR = args.models_dir
    setup_logging(config.LOG_LEVEL, config.LOG_FILE, config.LOG_FORMAT)

    try:
        id_image = load_image(args.id_image, SOURCE_DOCUMENT)
        camera_image = load_image(args.camera_image, SOURCE_CAMERA)

        with VerificationService(config) as service:
            outcome = service.verify(
                id_image, camera_image,
                similarity_threshold=args.threshold,
                face_confidence_threshold=args.face_confidence,
                strong_live_threshold=args.strong_live
            )

    except FaceMatchServiceError as e:
        log_exception(logger, e)
        outcome = VerificationOutcome.failure(e.message, e.error_code)

    except Exception as e:
        log_exception(logger, e)
        outcome = VerificationOutcome.failure(str(e), INTERNAL_ERROR_CODE)

    if outcome.success and args.output:
        with open(args.output, 'wb') as handle:
            handle.write(outcome.annotated_image_jpeg)
        logger.info(f"Annotated image written to {args.output}")

    _print_outcome(outcome, args.json, not args.no_image)
    return EXIT_OK if outcome.success else EXIT_FAILURE


if __name__ == '__main__':
    sys.exit(main())
