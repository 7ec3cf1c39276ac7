"""Pinhole camera model for primary ray generation.

The camera is set up on the host from look-at parameters and stored in
Taichi fields; kernels then turn pixel coordinates plus jitter variates into
world-space rays. The jitter comes from the sample source like every other
random decision, so camera rays are reproducible for a given noise buffer.

The basis (u, v, w) follows the usual convention:
- w points from lookat toward lookfrom (opposite the view direction)
- u points right in the image plane
- v points up in the image plane

Pixel (0, 0) is the bottom-left pixel.

Example:
    >>> camera = PinholeCamera(
    ...     lookfrom=(0.0, 0.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=1.0,
    ... )
    >>> setup_camera(camera)
    >>> # In a kernel: ray = get_ray_jittered(i, j, width, height, ju, jv)
"""

import math
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from mispath.core.ray import Ray, make_ray

# Type alias for 3D vectors
vec3 = tm.vec3


@dataclass
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        lookfrom: Camera position in world space.
        lookat: Point the camera looks at.
        vup: Up direction for camera orientation.
        vfov: Vertical field of view in degrees, in (0, 180).
        aspect_ratio: Image width divided by height.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float]
    vfov: float
    aspect_ratio: float

    def validate(self) -> None:
        """Raises ValueError for a degenerate camera."""
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"vfov = {self.vfov} must lie in (0, 180) degrees")
        if self.aspect_ratio <= 0.0:
            raise ValueError(f"aspect_ratio = {self.aspect_ratio} must be positive")
        forward = np.subtract(self.lookat, self.lookfrom)
        if np.linalg.norm(forward) == 0.0:
            raise ValueError("lookfrom and lookat must differ")
        if np.linalg.norm(np.cross(self.vup, forward)) == 0.0:
            raise ValueError("vup must not be parallel to the view direction")


# =============================================================================
# Camera State
# =============================================================================

_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_u = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_v = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_w = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())


def setup_camera(camera: PinholeCamera) -> None:
    """Compute the camera basis and viewport and store them for kernels.

    The viewport is a virtual image plane at unit distance in front of the
    camera.

    Raises:
        ValueError: If the camera is degenerate.
    """
    camera.validate()

    h = math.tan(math.radians(camera.vfov) / 2.0)
    viewport_height = 2.0 * h
    viewport_width = camera.aspect_ratio * viewport_height

    lookfrom = np.array(camera.lookfrom, dtype=np.float32)
    lookat = np.array(camera.lookat, dtype=np.float32)
    vup = np.array(camera.vup, dtype=np.float32)

    w = lookfrom - lookat
    w = w / np.linalg.norm(w)
    u = np.cross(vup, w)
    u = u / np.linalg.norm(u)
    v = np.cross(w, u)

    horizontal = viewport_width * u
    vertical = viewport_height * v
    lower_left = lookfrom - w - horizontal / 2.0 - vertical / 2.0

    _camera_origin[None] = lookfrom.tolist()
    _camera_u[None] = u.tolist()
    _camera_v[None] = v.tolist()
    _camera_w[None] = w.tolist()
    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = lower_left.tolist()


# =============================================================================
# Ray Generation
# =============================================================================


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Ray through normalized image coordinates (0, 0) bottom-left to (1, 1) top-right."""
    point_on_viewport = (
        _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    )
    origin = _camera_origin[None]
    return make_ray(origin, tm.normalize(point_on_viewport - origin))


@ti.func
def get_ray_jittered(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    jitter_u: ti.f32,
    jitter_v: ti.f32,
) -> Ray:
    """Ray through a point inside pixel (pixel_i, pixel_j).

    Args:
        pixel_i: Pixel column (0 = left).
        pixel_j: Pixel row (0 = bottom).
        width: Image width in pixels.
        height: Image height in pixels.
        jitter_u: Uniform variate for the horizontal sub-pixel offset.
        jitter_v: Uniform variate for the vertical sub-pixel offset.
    """
    u = (ti.cast(pixel_i, ti.f32) + jitter_u) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + jitter_v) / ti.cast(height, ti.f32)
    return get_ray(u, v)


@ti.func
def get_camera_origin() -> vec3:
    return _camera_origin[None]


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Current camera state as plain tuples, for inspection from Python."""
    fields = {
        "origin": _camera_origin,
        "u": _camera_u,
        "v": _camera_v,
        "w": _camera_w,
        "horizontal": _viewport_horizontal,
        "vertical": _viewport_vertical,
        "lower_left": _lower_left_corner,
    }
    info = {}
    for name, fld in fields.items():
        value = fld[None]
        info[name] = (float(value[0]), float(value[1]), float(value[2]))
    return info
