"""
Unit tests for document face variants.
"""

import numpy as np
import pytest

from face_match_service.processors.id_face_preprocessor import IdFacePreprocessor


@pytest.fixture
def preprocessor():
    return IdFacePreprocessor()


class TestIdFacePreprocessor:

    def test_variant_order(self, preprocessor, face_crop):
        names = [v.name for v in preprocessor.build_variants(face_crop)]
        assert names == ['clahe', 'gamma_clahe', 'descreen', 'masked']

    def test_variants_keep_shape_and_input(self, preprocessor, face_crop):
        original = face_crop.copy()

        for variant in preprocessor.build_variants(face_crop):
            assert variant.image.shape == face_crop.shape
            assert variant.image.dtype == np.uint8

        assert np.array_equal(face_crop, original)

    def test_gamma_darkens_midtones(self, preprocessor):
        image = np.full((4, 4, 3), 128, dtype=np.uint8)
        assert preprocessor.apply_gamma(image)[0, 0, 0] < 128

    def test_gamma_keeps_extremes(self, preprocessor):
        image = np.array([[[0, 255, 0]]], dtype=np.uint8)
        assert preprocessor.apply_gamma(image).tolist() == [[[0, 255, 0]]]

    def test_soft_mask(self, preprocessor):
        image = np.full((100, 100, 3), 255, dtype=np.uint8)

        masked = preprocessor.apply_soft_face_mask(image)

        assert masked[0, 0].tolist() == [127, 127, 127]
        assert masked[50, 50].tolist() == [255, 255, 255]

    def test_clahe_on_flat_image_stays_flat(self, preprocessor):
        image = np.full((64, 64, 3), 90, dtype=np.uint8)
        result = preprocessor.apply_clahe(image)
        assert result.std() < 1.0

    def test_descreen_handles_small_crops(self, preprocessor):
        image = np.random.default_rng(5).integers(0, 256, size=(24, 20, 3), dtype=np.uint8)
        assert preprocessor.remove_moire(image).shape == (24, 20, 3)

    def test_mask_settings_come_from_config(self):
        preprocessor = IdFacePreprocessor({
            'mask_axis_x_ratio': 0.1,
            'mask_blur_kernel': 1,
            'mask_background': (0, 0, 255),
        })
        image = np.full((100, 100, 3), 255, dtype=np.uint8)

        masked = preprocessor.apply_soft_face_mask(image)

        assert masked[50, 20].tolist() == [0, 0, 255]
        assert masked[50, 50].tolist() == [255, 255, 255]

    def test_preprocessing_config_reaches_variants(self, config, face_crop):
        config.DESCREEN_SCALE = 0.25
        config.DESCREEN_SEARCH_WINDOW = 11
        config.MASK_BACKGROUND = (10, 20, 30)

        preprocessor = IdFacePreprocessor(config.get_preprocessor_config())

        assert preprocessor.descreen_scale == pytest.approx(0.25)
        assert preprocessor.descreen_search_window == 11
        assert preprocessor.descreen_template_window == 7
        assert preprocessor.mask_background == (10, 20, 30)
        assert [v.image.shape for v in preprocessor.build_variants(face_crop)] == [face_crop.shape] * 4
