"""Tests for the preview module.

Tests cover:
- Tone mapping functions (Reinhard, exposure)
- Gamma correction and the full display pipeline
- PNG export and RMSE computation
"""

import numpy as np
import pytest
from PIL import Image as PILImage


class TestToneMapping:
    def test_reinhard(self):
        from mispath.preview.display import tone_map_reinhard

        image = np.array([[[0.0, 1.0, 3.0]]], dtype=np.float32)
        result = tone_map_reinhard(image)
        assert result.dtype == np.float32
        np.testing.assert_allclose(result, [[[0.0, 0.5, 0.75]]])

    def test_reinhard_clips_negative(self):
        from mispath.preview.display import tone_map_reinhard

        result = tone_map_reinhard(np.full((2, 2, 3), -1.0, dtype=np.float32))
        assert np.all(result == 0.0)

    def test_exposure(self):
        from mispath.preview.display import tone_map_exposure

        image = np.array([[[0.0, 1.0, np.log(4.0)]]], dtype=np.float32)
        result = tone_map_exposure(image, exposure=1.0)
        np.testing.assert_allclose(result, [[[0.0, 1.0 - np.exp(-1.0), 0.75]]], rtol=1e-6)
        brighter = tone_map_exposure(image, exposure=2.0)
        assert np.all(brighter >= result)

    @pytest.mark.parametrize("exposure", [0.0, -1.0])
    def test_exposure_must_be_positive(self, exposure):
        from mispath.preview.display import tone_map_exposure

        with pytest.raises(ValueError, match="exposure"):
            tone_map_exposure(np.zeros((1, 1, 3), dtype=np.float32), exposure=exposure)


class TestGamma:
    def test_gamma_encodes_and_clamps(self):
        from mispath.preview.display import apply_gamma

        image = np.array([[[0.25, 1.5, -0.5]]], dtype=np.float32)
        np.testing.assert_allclose(apply_gamma(image, 2.0), [[[0.5, 1.0, 0.0]]])

    def test_gamma_one_is_identity(self):
        from mispath.preview.display import apply_gamma

        image = np.array([[[0.25, 0.5, 0.75]]], dtype=np.float32)
        assert apply_gamma(image, 1.0) is image

    def test_gamma_must_be_positive(self):
        from mispath.preview.display import apply_gamma

        with pytest.raises(ValueError, match="gamma"):
            apply_gamma(np.zeros((1, 1, 3), dtype=np.float32), 0.0)


class TestDisplayPipeline:
    def test_output_in_unit_range(self):
        from mispath.preview.display import process_image_for_display

        image = np.array([[[0.0, 0.5, 20.0]]], dtype=np.float32)
        for method in ("none", "reinhard", "exposure"):
            result = process_image_for_display(image, tone_map=method)
            assert result.dtype == np.float32
            assert np.all((result >= 0.0) & (result <= 1.0))

    def test_non_finite_values_become_black(self):
        from mispath.preview.display import process_image_for_display

        image = np.array([[[np.nan, np.inf, -np.inf]]], dtype=np.float32)
        result = process_image_for_display(image, tone_map="reinhard")
        np.testing.assert_array_equal(result, np.zeros((1, 1, 3)))

    def test_unknown_method(self):
        from mispath.preview.display import process_image_for_display

        with pytest.raises(ValueError, match="Unknown tone mapping"):
            process_image_for_display(np.zeros((1, 1, 3), dtype=np.float32), tone_map="filmic")


class TestExport:
    def test_image_to_uint8_rounds(self):
        from mispath.preview.export import image_to_uint8

        image = np.array([[[0.0, 0.5, 1.0], [2.0, 0.1, 0.999]]], dtype=np.float32)
        result = image_to_uint8(image, gamma=1.0)
        assert result.dtype == np.uint8
        assert result.tolist() == [[[0, 128, 255], [255, 26, 255]]]

    def test_save_png_from_array(self, tmp_path):
        from mispath.preview.export import save_png_from_array

        image = np.zeros((3, 5, 3), dtype=np.float32)
        image[..., 0] = 1.0
        path = tmp_path / "red.png"
        save_png_from_array(image, str(path))
        with PILImage.open(path) as saved:
            assert saved.size == (5, 3)
            assert saved.getpixel((4, 2)) == (255, 0, 0)

    def test_save_png_from_array_rejects_wrong_shape(self, tmp_path):
        from mispath.preview.export import save_png_from_array

        with pytest.raises(ValueError, match="H, W, 3"):
            save_png_from_array(np.zeros((4, 4), dtype=np.float32), str(tmp_path / "bad.png"))

    def test_save_png_from_renderer(self, tmp_path):
        from mispath.camera.pinhole import PinholeCamera, setup_camera
        from mispath.config import IntegratorConfig
        from mispath.core.progressive import ProgressiveRenderer
        from mispath.preview.export import save_png

        setup_camera(
            PinholeCamera(
                lookfrom=(0.0, 0.0, 1.0),
                lookat=(0.0, 0.0, 0.0),
                vup=(0.0, 1.0, 0.0),
                vfov=45.0,
                aspect_ratio=2.0,
            )
        )
        renderer = ProgressiveRenderer(4, 2, integrator_config=IntegratorConfig(environment=(3.0, 1.0, 0.0)))
        renderer.render(1)
        path = tmp_path / "sky.png"
        save_png(renderer, str(path), tone_map="reinhard", gamma=1.0)
        with PILImage.open(path) as saved:
            assert saved.size == (4, 2)
            # Reinhard keeps the over-bright channel below white
            assert saved.getpixel((0, 0)) == (191, 128, 0)

    def test_compute_rmse(self):
        from mispath.preview.export import compute_rmse

        a = np.zeros((2, 2, 3), dtype=np.float32)
        b = np.full((2, 2, 3), 0.5, dtype=np.float32)
        assert compute_rmse(a, a) == 0.0
        assert compute_rmse(a, b) == pytest.approx(0.5)

    def test_compute_rmse_shape_mismatch(self):
        from mispath.preview.export import compute_rmse

        with pytest.raises(ValueError, match="shapes must match"):
            compute_rmse(np.zeros((2, 2, 3)), np.zeros((2, 3, 3)))
