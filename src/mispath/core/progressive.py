"""Progressive renderer driving the per-bounce integrator.

The renderer owns the render target, the random sample source and the path
states. Each tick refreshes the variates and advances every pixel's path by
one bounce; paths that complete are merged into the image, so the image
refines continuously while the renderer keeps ticking.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from mispath.core.progressive import ProgressiveRenderer
    >>> from mispath.scene.cornell_box import create_cornell_box_scene
    >>> from mispath.camera.pinhole import setup_camera
    >>>
    >>> scene, camera, _ = create_cornell_box_scene()
    >>> scene.build()
    >>> setup_camera(camera)
    >>>
    >>> renderer = ProgressiveRenderer(256, 256)
    >>> renderer.render(500, batch_size=50)
    >>> image = renderer.get_image_numpy(gamma=2.2)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Generator

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from mispath.config import IntegratorConfig
from mispath.core.accumulator import (
    clear_render_target,
    get_mean_sample_count,
    get_normalized_image_numpy,
    get_radiance_numpy,
    get_sample_count_numpy,
    get_total_samples,
    setup_render_target,
)
from mispath.core.integrator import configure_integrator, reset_paths, tick
from mispath.core.sampler import RandomSampleSource

logger = logging.getLogger(__name__)

# Callback receives (ticks_done, target_ticks)
ProgressCallback = Callable[[int, int], None]


class ProgressiveRenderer:
    """A progressive renderer that advances all paths one bounce per tick.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        integrator_config: Integrator settings; defaults when None.
        seed: Host RNG seed for reproducible variates; None uses the
            Taichi device generator.

    Raises:
        ValueError: If the dimensions are invalid.
    """

    def __init__(
        self,
        width: int,
        height: int,
        integrator_config: IntegratorConfig | None = None,
        seed: int | None = None,
    ) -> None:
        setup_render_target(width, height)
        self._width = width
        self._height = height
        self._config = integrator_config if integrator_config is not None else IntegratorConfig()
        self._sampler = RandomSampleSource(width, height, seed=seed)
        self._ticks = 0
        configure_integrator(self._config)
        reset_paths(width, height)
        logger.debug(
            "Renderer ready: %dx%d, strategy=%s, seed=%s",
            width,
            height,
            self._config.strategy,
            seed,
        )

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def ticks(self) -> int:
        """Number of ticks since the last reset."""
        return self._ticks

    @property
    def sample_count(self) -> int:
        """Total number of completed paths accumulated."""
        return get_total_samples()

    @property
    def mean_samples_per_pixel(self) -> float:
        return get_mean_sample_count()

    @property
    def integrator_config(self) -> IntegratorConfig:
        return self._config

    @property
    def sampler(self) -> RandomSampleSource:
        return self._sampler

    def set_integrator_config(self, config: IntegratorConfig) -> None:
        """Switch integrator settings and restart accumulation."""
        self._config = config
        configure_integrator(config)
        self.reset()

    def reset(self) -> None:
        """Discard accumulated samples and in-flight paths."""
        clear_render_target()
        reset_paths(self._width, self._height)
        self._sampler.reset()
        self._ticks = 0

    def resize(self, width: int, height: int) -> None:
        """Change the image size; accumulation restarts.

        Raises:
            ValueError: If the dimensions are invalid.
        """
        setup_render_target(width, height)
        self._sampler.resize(width, height)
        self._width = width
        self._height = height
        reset_paths(width, height)
        self._ticks = 0

    def tick(self) -> None:
        """Refresh the variates and advance every path by one bounce."""
        self._sampler.advance()
        tick(self._width, self._height)
        self._ticks += 1

    def render(
        self,
        num_ticks: int = 1,
        batch_size: int = 1,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Run ``num_ticks`` ticks, calling ``callback`` after each batch.

        Can be called repeatedly to keep refining the image.

        Example:
            >>> def progress(done, target):
            ...     print(f"{done}/{target} ticks")
            >>> renderer.render(100, batch_size=10, callback=progress)
        """
        for done, target in self.render_progressive(num_ticks, batch_size):
            if callback is not None:
                callback(done, target)

    def render_progressive(
        self,
        num_ticks: int = 1,
        batch_size: int = 1,
    ) -> Generator[tuple[int, int], None, None]:
        """Run ``num_ticks`` ticks, yielding (ticks_done, target) after each batch."""
        if num_ticks <= 0:
            return
        if batch_size <= 0:
            raise ValueError(f"batch_size = {batch_size} must be positive")

        target = self._ticks + num_ticks
        start = time.perf_counter()
        remaining = num_ticks
        while remaining > 0:
            batch = min(batch_size, remaining)
            for _ in range(batch):
                self.tick()
            remaining -= batch
            logger.debug(
                "Tick %d/%d: %.2f samples per pixel", self._ticks, target, self.mean_samples_per_pixel
            )
            yield (self._ticks, target)

        logger.info(
            "Rendered %d ticks in %.2fs (%.2f samples per pixel)",
            num_ticks,
            time.perf_counter() - start,
            self.mean_samples_per_pixel,
        )

    def render_until(self, min_samples_per_pixel: float, max_ticks: int = 100_000) -> int:
        """Tick until the mean sample count reaches ``min_samples_per_pixel``.

        Returns:
            The number of ticks run, at most ``max_ticks``.
        """
        ran = 0
        while ran < max_ticks and self.mean_samples_per_pixel < min_samples_per_pixel:
            self.tick()
            ran += 1
        if self.mean_samples_per_pixel < min_samples_per_pixel:
            logger.warning(
                "Stopped after %d ticks at %.2f samples per pixel (wanted %.2f)",
                ran,
                self.mean_samples_per_pixel,
                min_samples_per_pixel,
            )
        return ran

    def get_radiance_numpy(self) -> npt.NDArray[np.float32]:
        """Linear HDR image, shape (height, width, 3)."""
        return get_radiance_numpy()

    def get_sample_counts(self) -> npt.NDArray[np.int32]:
        return get_sample_count_numpy()

    def get_image_numpy(self, gamma: float = 1.0) -> npt.NDArray[np.float32]:
        """Image clamped to [0, 1] with optional gamma, shape (height, width, 3)."""
        image = get_normalized_image_numpy()
        if gamma != 1.0:
            image = np.power(image, 1.0 / gamma)
        return image

    def get_image_uint8(self, gamma: float = 2.2) -> npt.NDArray[np.uint8]:
        image = self.get_image_numpy(gamma=gamma)
        return (image * 255).astype(np.uint8)

    def save_image(self, filepath: str, gamma: float = 2.2) -> None:
        """Save the clamped, gamma-corrected image with Pillow."""
        PILImage.fromarray(self.get_image_uint8(gamma=gamma), mode="RGB").save(filepath)
        logger.info("Saved %dx%d image to %s", self._width, self._height, filepath)

    def __repr__(self) -> str:
        return (
            f"ProgressiveRenderer(width={self._width}, height={self._height}, "
            f"ticks={self._ticks}, strategy={self._config.strategy!r})"
        )
