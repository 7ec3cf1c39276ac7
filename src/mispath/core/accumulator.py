"""Frame accumulator: running per-pixel average of completed path radiance.

A path deposits its radiance once, on the tick it completes. Pixels whose
paths are still bouncing are left untouched, so sample counts differ between
pixels; each pixel keeps its own count and running mean

    avg_n = avg_{n-1} + (x_n - avg_{n-1}) / n

Buffers are preallocated at MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT so that resizing
never recompiles kernels. Pixel (i, j) has its origin at the bottom-left;
NumPy readback returns conventional (height, width, 3) images with the top
row first.
"""

import numpy as np
import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors
vec3 = tm.vec3

# Maximum supported image dimensions
MAX_IMAGE_WIDTH = 1024
MAX_IMAGE_HEIGHT = 1024

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())
_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_sample_count = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Set the active image size and clear the buffers.

    Raises:
        ValueError: If a dimension is non-positive or exceeds the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions ({width}x{height}) must be positive")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )
    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Reset every pixel's mean and sample count to zero."""
    _color_buffer.fill(0.0)
    _sample_count.fill(0)


def get_image_dimensions() -> tuple[int, int]:
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


@ti.func
def sanitize_radiance(radiance: vec3) -> vec3:
    """Replace NaN/Inf components by zero and clamp negatives to zero."""
    color = radiance
    for c in ti.static(range(3)):
        if tm.isnan(color[c]) or tm.isinf(color[c]) or color[c] < 0.0:
            color[c] = 0.0
    return color


@ti.func
def submit(i: ti.i32, j: ti.i32, radiance: vec3):
    """Merge one completed path's radiance into pixel (i, j)."""
    color = sanitize_radiance(radiance)
    _sample_count[i, j] += 1
    n = _sample_count[i, j]
    _color_buffer[i, j] += (color - _color_buffer[i, j]) / ti.cast(n, ti.f32)


@ti.kernel
def _submit_kernel(i: ti.i32, j: ti.i32, r: ti.f32, g: ti.f32, b: ti.f32):
    submit(i, j, vec3(r, g, b))


def submit_sample(i: int, j: int, radiance: tuple[float, float, float]) -> None:
    """Host-side ``submit`` for a single pixel.

    Raises:
        RuntimeError: If the render target has not been set up.
        ValueError: If the pixel lies outside the active image.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    if not (0 <= i < width and 0 <= j < height):
        raise ValueError(f"Pixel ({i}, {j}) outside image {width}x{height}")
    _submit_kernel(i, j, float(radiance[0]), float(radiance[1]), float(radiance[2]))


def _to_image(buffer: np.ndarray) -> np.ndarray:
    width, height = get_image_dimensions()
    # (width, height, ...) with bottom-left origin -> (height, width, ...) top row first
    return np.flipud(np.swapaxes(buffer[:width, :height], 0, 1))


def get_radiance_numpy() -> np.ndarray:
    """Linear HDR mean radiance, shape (height, width, 3).

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    return np.ascontiguousarray(_to_image(_color_buffer.to_numpy()), dtype=np.float32)


def get_normalized_image_numpy() -> np.ndarray:
    """Mean radiance clamped to [0, 1], shape (height, width, 3)."""
    return np.clip(get_radiance_numpy(), 0.0, 1.0).astype(np.float32)


def get_sample_count_numpy() -> np.ndarray:
    """Per-pixel sample counts, shape (height, width)."""
    _check_render_target_initialized()
    return np.ascontiguousarray(_to_image(_sample_count.to_numpy()), dtype=np.int32)


def get_total_samples() -> int:
    """Total number of completed paths merged into the image."""
    return int(get_sample_count_numpy().sum())


def get_mean_sample_count() -> float:
    """Average number of samples per pixel."""
    counts = get_sample_count_numpy()
    return float(counts.mean()) if counts.size else 0.0
