"""Preview module: tone mapping and image export.

Components:
    display: Reinhard and exposure tone mapping, gamma encoding
    export: PNG export via Pillow and image comparison

Example:
    >>> from mispath.preview import save_png
    >>> save_png(renderer, "output.png", tone_map="reinhard", gamma=2.2)
"""

from .display import (
    ToneMapMethod,
    apply_gamma,
    process_image_for_display,
    tone_map_exposure,
    tone_map_reinhard,
)
from .export import compute_rmse, image_to_uint8, save_png, save_png_from_array

__all__ = [
    # Tone mapping
    "ToneMapMethod",
    "apply_gamma",
    "process_image_for_display",
    "tone_map_exposure",
    "tone_map_reinhard",
    # Export
    "compute_rmse",
    "image_to_uint8",
    "save_png",
    "save_png_from_array",
]
