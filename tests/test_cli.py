"""
Command line tests; the service is replaced so no models are needed.
"""

import json

import cv2
import numpy as np
import pytest

from face_match_service import cli
from face_match_service.core.data_classes import BoundingBox, VerificationOutcome, VerificationResult


class StubService:
    outcome = None
    calls = []

    def __init__(self, config):
        self.config = config

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def verify(self, id_image, camera_image, **thresholds):
        StubService.calls.append(thresholds)
        return StubService.outcome


@pytest.fixture
def image_files(tmp_path):
    id_path = tmp_path / 'id.png'
    camera_path = tmp_path / 'camera.png'
    cv2.imwrite(str(id_path), np.full((40, 30, 3), 100, np.uint8))
    cv2.imwrite(str(camera_path), np.full((60, 80, 3), 50, np.uint8))
    return str(id_path), str(camera_path)


@pytest.fixture
def stub_service(monkeypatch):
    result = VerificationResult(
        is_same_person=True,
        best_similarity=0.71,
        matched_rect=BoundingBox(5, 6, 20, 20),
        is_live_face=True,
        anti_spoof_confidence=0.98,
        annotated_image=np.zeros((60, 80, 3), np.uint8),
        matched_variant='descreen',
    )
    StubService.outcome = VerificationOutcome.ok(result, b'\xff\xd8fake')
    StubService.calls = []
    monkeypatch.setattr(cli, 'VerificationService', StubService)
    return StubService


class TestCli:

    def test_missing_input_file(self, tmp_path, capsys):
        code = cli.main([str(tmp_path / 'a.jpg'), str(tmp_path / 'b.jpg'), '--json'])

        payload = json.loads(capsys.readouterr().out)
        assert code == cli.EXIT_FAILURE
        assert payload['success'] is False
        assert payload['error_code'] == 'INVALID_INPUT'

    def test_json_output(self, image_files, stub_service, capsys):
        code = cli.main([*image_files, '--json', '--no-image', '--threshold', '0.5'])

        payload = json.loads(capsys.readouterr().out)
        assert code == cli.EXIT_OK
        assert payload['is_same_person'] is True
        assert payload['matched_variant'] == 'descreen'
        assert 'annotated_image_base64' not in payload
        assert stub_service.calls[0]['similarity_threshold'] == pytest.approx(0.5)

    def test_writes_annotated_image(self, image_files, stub_service, tmp_path, capsys):
        output = tmp_path / 'annotated.jpg'

        code = cli.main([*image_files, '--output', str(output)])

        assert code == cli.EXIT_OK
        assert output.read_bytes() == b'\xff\xd8fake'
        assert 'ACCEPTED' in capsys.readouterr().out

    def test_failure_outcome(self, image_files, stub_service, capsys):
        stub_service.outcome = VerificationOutcome.failure('No face detected in the camera image', 'NO_FACE_DETECTED')

        code = cli.main(list(image_files))

        assert code == cli.EXIT_FAILURE
        assert 'No face detected' in capsys.readouterr().out

    def test_unexpected_error_is_reported(self, image_files, stub_service, monkeypatch, capsys):
        def crash(self, id_image, camera_image, **thresholds):
            raise RuntimeError('CUDA failure 700: an illegal memory access was encountered')

        monkeypatch.setattr(stub_service, 'verify', crash)

        code = cli.main([*image_files, '--json'])

        payload = json.loads(capsys.readouterr().out)
        assert code == cli.EXIT_FAILURE
        assert payload['success'] is False
        assert payload['error_code'] == 'INTERNAL_ERROR'
        assert 'illegal memory access' in payload['error']
