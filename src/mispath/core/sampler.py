"""Random sample source: the per-pixel noise buffer consumed by one tick.

Every random decision of a bounce reads one slot of the buffer, so a tick is a
pure function of the path states and the buffer. The buffer is refreshed
once per tick, which keeps consecutive bounces of a path uncorrelated; each
pixel owns its own slots, so no two pixels share a variate.

Slot layout (NUM_VARIATES per pixel):

    0, 1  camera jitter
    2, 3  BSDF direction
    4     lobe selection (plastic, dielectric)
    5     emitter selection
    6, 7  point on the emitter triangle
    8     Russian roulette

Variates come either from Taichi's device generator (seeded by
``ti.init(random_seed=...)``) or from NumPy on the host, where
``default_rng([seed, tick])`` makes every tick reproducible on its own.

Example:
    >>> source = RandomSampleSource(64, 64, seed=7)
    >>> source.advance()     # fill for tick 0
    >>> source.tick
    1
"""

import numpy as np
import taichi as ti

from mispath.core.accumulator import MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH

NUM_VARIATES = 9

DIM_JITTER_U = 0
DIM_JITTER_V = 1
DIM_BSDF_U1 = 2
DIM_BSDF_U2 = 3
DIM_LOBE = 4
DIM_EMITTER = 5
DIM_POINT_U = 6
DIM_POINT_V = 7
DIM_ROULETTE = 8

_noise = ti.field(dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT, NUM_VARIATES))


@ti.kernel
def _fill_device(width: ti.i32, height: ti.i32):
    for i, j in ti.ndrange(width, height):
        for d in ti.static(range(NUM_VARIATES)):
            _noise[i, j, d] = ti.random(ti.f32)


@ti.kernel
def _upload(values: ti.types.ndarray(), width: ti.i32, height: ti.i32):
    for i, j in ti.ndrange(width, height):
        for d in ti.static(range(NUM_VARIATES)):
            _noise[i, j, d] = values[i, j, d]


@ti.func
def get_variate(i: ti.i32, j: ti.i32, dim: ti.i32) -> ti.f32:
    """Variate ``dim`` of pixel (i, j) for the current tick."""
    return _noise[i, j, dim]


class RandomSampleSource:
    """Owner of the noise buffer and its tick counter.

    Args:
        width: Active image width.
        height: Active image height.
        seed: Host generator seed; None uses the Taichi device generator.

    Raises:
        ValueError: If the size is invalid.
    """

    def __init__(self, width: int, height: int, seed: int | None = None) -> None:
        self._check_size(width, height)
        self._width = width
        self._height = height
        self._seed = seed
        self._tick = 0

    @staticmethod
    def _check_size(width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Sample source size ({width}x{height}) must be positive")
        if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
            raise ValueError(
                f"Sample source size ({width}x{height}) exceeds maximum "
                f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
            )

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def seed(self) -> int | None:
        return self._seed

    @property
    def tick(self) -> int:
        """Number of buffers generated since the last reset."""
        return self._tick

    def reset(self) -> None:
        """Restart the tick counter; called on scene load."""
        self._tick = 0

    def resize(self, width: int, height: int) -> None:
        self._check_size(width, height)
        self._width = width
        self._height = height
        self.reset()

    def advance(self) -> None:
        """Refresh every pixel's variates for the next tick."""
        if self._seed is None:
            _fill_device(self._width, self._height)
        else:
            rng = np.random.default_rng([self._seed, self._tick])
            values = rng.random((self._width, self._height, NUM_VARIATES), dtype=np.float32)
            _upload(values, self._width, self._height)
        self._tick += 1

    def upload(self, values: np.ndarray) -> None:
        """Inject caller-supplied variates for every active pixel.

        Args:
            values: Array of shape (width, height, NUM_VARIATES) in [0, 1).

        Raises:
            ValueError: If the shape or range is wrong.
        """
        arr = np.ascontiguousarray(values, dtype=np.float32)
        expected = (self._width, self._height, NUM_VARIATES)
        if arr.shape != expected:
            raise ValueError(f"Variates must have shape {expected}, got {arr.shape}")
        if arr.size and (arr.min() < 0.0 or arr.max() >= 1.0):
            raise ValueError("Variates must lie in [0, 1)")
        _upload(arr, self._width, self._height)

    def set_variates(self, i: int, j: int, values) -> None:
        """Inject the variates of a single pixel.

        Raises:
            ValueError: If the pixel or the number of values is wrong.
        """
        if not (0 <= i < self._width and 0 <= j < self._height):
            raise ValueError(f"Pixel ({i}, {j}) outside {self._width}x{self._height}")
        values = list(values)
        if len(values) != NUM_VARIATES:
            raise ValueError(f"Expected {NUM_VARIATES} variates, got {len(values)}")
        for d, value in enumerate(values):
            _noise[i, j, d] = float(value)

    def get_variates_numpy(self) -> np.ndarray:
        """Current buffer of the active region, shape (width, height, NUM_VARIATES)."""
        return _noise.to_numpy()[: self._width, : self._height].copy()

    def __repr__(self) -> str:
        return (
            f"RandomSampleSource(width={self._width}, height={self._height}, "
            f"seed={self._seed}, tick={self._tick})"
        )
