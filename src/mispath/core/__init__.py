"""Core module: rays, random variates and the frame accumulator.

Components:
    ray: Ray type and vector helpers
    sampler: Per-pixel random sample source
    accumulator: Running per-pixel average of completed paths
    integrator: Per-bounce path state machine with NEE, MIS and Russian roulette
    progressive: ProgressiveRenderer driving the integrator tick by tick

The integrator and progressive modules depend on the scene and materials
packages; import them directly from ``mispath.core.integrator`` and
``mispath.core.progressive``.
"""

from .accumulator import (
    MAX_IMAGE_HEIGHT,
    MAX_IMAGE_WIDTH,
    clear_render_target,
    get_image_dimensions,
    get_radiance_numpy,
    get_sample_count_numpy,
    setup_render_target,
    submit_sample,
)
from .ray import RAY_EPSILON, Ray, make_ray, offset_ray_origin, ray_at
from .sampler import NUM_VARIATES, RandomSampleSource

__all__ = [
    "MAX_IMAGE_HEIGHT",
    "MAX_IMAGE_WIDTH",
    "NUM_VARIATES",
    "RAY_EPSILON",
    "RandomSampleSource",
    "Ray",
    "clear_render_target",
    "get_image_dimensions",
    "get_radiance_numpy",
    "get_sample_count_numpy",
    "make_ray",
    "offset_ray_origin",
    "ray_at",
    "setup_render_target",
    "submit_sample",
]
