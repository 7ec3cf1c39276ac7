"""Tests for the progressive renderer.

Tests cover:
- Construction, size validation and repr
- Ticking: one completed path per pixel per tick in an empty scene
- Reset, resize and integrator reconfiguration
- Batched rendering with callbacks, render_until
- Image readback and saving
- Reproducibility for a fixed seed
"""

import logging

import numpy as np
import pytest
from PIL import Image as PILImage

SKY = (0.25, 0.5, 1.0)


@pytest.fixture
def sky_renderer():
    """A renderer for an empty scene lit by a uniform environment."""
    from mispath.camera.pinhole import PinholeCamera, setup_camera
    from mispath.config import IntegratorConfig
    from mispath.core.progressive import ProgressiveRenderer

    setup_camera(
        PinholeCamera(
            lookfrom=(0.0, 0.0, 1.0),
            lookat=(0.0, 0.0, 0.0),
            vup=(0.0, 1.0, 0.0),
            vfov=45.0,
            aspect_ratio=1.5,
        )
    )
    return ProgressiveRenderer(6, 4, integrator_config=IntegratorConfig(environment=SKY), seed=3)


class TestConstruction:
    def test_initial_state(self, sky_renderer):
        assert sky_renderer.width == 6
        assert sky_renderer.height == 4
        assert sky_renderer.ticks == 0
        assert sky_renderer.sample_count == 0
        assert sky_renderer.mean_samples_per_pixel == 0.0
        assert sky_renderer.sampler.seed == 3
        assert sky_renderer.integrator_config.environment == SKY

    @pytest.mark.parametrize("size", [(0, 4), (4, -1), (4096, 4)])
    def test_invalid_size(self, size):
        from mispath.core.progressive import ProgressiveRenderer

        with pytest.raises(ValueError):
            ProgressiveRenderer(*size)

    def test_repr(self, sky_renderer):
        assert repr(sky_renderer) == (
            "ProgressiveRenderer(width=6, height=4, ticks=0, strategy='mis')"
        )


class TestTicking:
    def test_each_tick_completes_a_path_per_pixel(self, sky_renderer):
        sky_renderer.render(5)
        assert sky_renderer.ticks == 5
        assert sky_renderer.sample_count == 5 * 6 * 4
        assert sky_renderer.mean_samples_per_pixel == pytest.approx(5.0)
        counts = sky_renderer.get_sample_counts()
        assert counts.shape == (4, 6)
        assert np.all(counts == 5)
        np.testing.assert_allclose(
            sky_renderer.get_radiance_numpy(), np.broadcast_to(SKY, (4, 6, 3)), rtol=1e-6
        )

    def test_reset(self, sky_renderer):
        sky_renderer.render(3)
        sky_renderer.reset()
        assert sky_renderer.ticks == 0
        assert sky_renderer.sample_count == 0
        assert sky_renderer.sampler.tick == 0
        sky_renderer.render(1)
        assert np.all(sky_renderer.get_sample_counts() == 1)

    def test_resize(self, sky_renderer):
        sky_renderer.render(2)
        sky_renderer.resize(3, 5)
        assert (sky_renderer.width, sky_renderer.height) == (3, 5)
        assert sky_renderer.ticks == 0
        assert sky_renderer.sample_count == 0
        sky_renderer.render(2)
        assert sky_renderer.get_radiance_numpy().shape == (5, 3, 3)
        assert sky_renderer.sampler.get_variates_numpy().shape[:2] == (3, 5)
        assert np.all(sky_renderer.get_sample_counts() == 2)

    def test_resize_rejects_invalid_size(self, sky_renderer):
        with pytest.raises(ValueError):
            sky_renderer.resize(0, 5)

    def test_set_integrator_config_restarts(self, sky_renderer):
        from mispath.config import IntegratorConfig
        from mispath.core.integrator import SamplingStrategy, get_strategy

        sky_renderer.render(2)
        sky_renderer.set_integrator_config(IntegratorConfig(strategy="bsdf", environment=(1.0, 1.0, 1.0)))
        assert sky_renderer.ticks == 0
        assert sky_renderer.sample_count == 0
        assert get_strategy() == SamplingStrategy.BSDF_ONLY
        sky_renderer.render(1)
        np.testing.assert_allclose(sky_renderer.get_radiance_numpy(), 1.0)


class TestBatchedRendering:
    def test_callback_after_each_batch(self, sky_renderer):
        calls = []
        sky_renderer.render(10, batch_size=4, callback=lambda done, target: calls.append((done, target)))
        assert calls == [(4, 10), (8, 10), (10, 10)]

        calls.clear()
        sky_renderer.render(5, batch_size=5, callback=lambda done, target: calls.append((done, target)))
        assert calls == [(15, 15)]

    def test_render_progressive_generator(self, sky_renderer):
        progress = list(sky_renderer.render_progressive(3, batch_size=2))
        assert progress == [(2, 3), (3, 3)]
        assert list(sky_renderer.render_progressive(0)) == []
        assert sky_renderer.ticks == 3

    def test_invalid_batch_size(self, sky_renderer):
        with pytest.raises(ValueError, match="batch_size"):
            sky_renderer.render(3, batch_size=0)

    def test_render_until(self, sky_renderer):
        assert sky_renderer.render_until(3.0) == 3
        assert sky_renderer.mean_samples_per_pixel == pytest.approx(3.0)
        # Already there
        assert sky_renderer.render_until(2.0) == 0

    def test_render_until_stops_at_max_ticks(self, sky_renderer, caplog):
        with caplog.at_level(logging.WARNING, logger="mispath.core.progressive"):
            assert sky_renderer.render_until(100.0, max_ticks=2) == 2
        assert "Stopped after 2 ticks" in caplog.text


class TestReadback:
    def test_image_clamped_and_gamma_encoded(self):
        from mispath.config import IntegratorConfig
        from mispath.core.progressive import ProgressiveRenderer

        renderer = ProgressiveRenderer(2, 2, integrator_config=IntegratorConfig(environment=(2.0, 0.25, 0.0)))
        renderer.render(2)
        np.testing.assert_allclose(renderer.get_image_numpy()[0, 0], [1.0, 0.25, 0.0])
        np.testing.assert_allclose(renderer.get_image_numpy(gamma=2.0)[0, 0], [1.0, 0.5, 0.0])

        image = renderer.get_image_uint8(gamma=1.0)
        assert image.dtype == np.uint8
        assert image.shape == (2, 2, 3)
        assert image[1, 1].tolist() == [255, 63, 0]

    def test_save_image(self, sky_renderer, tmp_path):
        sky_renderer.render(1)
        path = tmp_path / "sky.png"
        sky_renderer.save_image(str(path), gamma=1.0)
        with PILImage.open(path) as saved:
            assert saved.size == (6, 4)
            assert saved.mode == "RGB"
            assert saved.getpixel((0, 0)) == (63, 127, 255)


class TestReproducibility:
    def _render_floor(self, seed):
        from mispath.camera.pinhole import PinholeCamera, setup_camera
        from mispath.core.progressive import ProgressiveRenderer
        from mispath.scene.manager import SceneManager

        scene = SceneManager()
        floor = scene.add_diffuse_material((0.6, 0.6, 0.6))
        light = scene.add_light_material((5.0, 5.0, 5.0))
        scene.add_quad((-2.0, -2.0, 0.0), (4.0, 0.0, 0.0), (0.0, 4.0, 0.0), floor)
        scene.add_quad((-0.5, -0.5, 2.0), (0.0, 1.0, 0.0), (1.0, 0.0, 0.0), light)
        scene.build()
        setup_camera(
            PinholeCamera(
                lookfrom=(0.0, -3.0, 1.5),
                lookat=(0.0, 0.0, 0.0),
                vup=(0.0, 0.0, 1.0),
                vfov=50.0,
                aspect_ratio=1.0,
            )
        )
        renderer = ProgressiveRenderer(8, 8, seed=seed)
        renderer.render(6)
        return renderer.get_radiance_numpy().copy()

    def test_same_seed_same_image(self):
        first = self._render_floor(11)
        second = self._render_floor(11)
        np.testing.assert_array_equal(first, second)
        assert first.max() > 0.0

    def test_different_seed_different_image(self):
        first = self._render_floor(11)
        second = self._render_floor(12)
        assert not np.array_equal(first, second)
