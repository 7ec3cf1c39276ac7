"""Tone mapping and gamma correction for rendered HDR images.

All operators take and return linear float32 arrays of shape (H, W, 3).

Example:
    >>> from mispath.preview.display import process_image_for_display
    >>> ldr = process_image_for_display(renderer.get_radiance_numpy(), tone_map="reinhard")
"""

from __future__ import annotations

from typing import Literal

import numpy as np
import numpy.typing as npt

ToneMapMethod = Literal["none", "reinhard", "exposure"]


def tone_map_reinhard(image: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Reinhard operator c / (1 + c), mapping [0, inf) into [0, 1)."""
    image = np.maximum(image, 0.0)
    return (image / (1.0 + image)).astype(np.float32)


def tone_map_exposure(
    image: npt.NDArray[np.float32],
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Exposure operator 1 - exp(-c * exposure).

    Raises:
        ValueError: If exposure is not positive.
    """
    if exposure <= 0.0:
        raise ValueError(f"exposure = {exposure} must be positive")
    image = np.maximum(image, 0.0)
    return (1.0 - np.exp(-image * exposure)).astype(np.float32)


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Clamp to [0, 1] and encode with out = in^(1/gamma)."""
    if gamma <= 0.0:
        raise ValueError(f"gamma = {gamma} must be positive")
    if gamma == 1.0:
        return image
    image = np.clip(image, 0.0, 1.0)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def process_image_for_display(
    image: npt.NDArray[np.float32],
    tone_map: ToneMapMethod = "none",
    gamma: float = 2.2,
    exposure: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Full display pipeline: tone map, gamma, final clamp to [0, 1].

    Non-finite input values are treated as black.

    Raises:
        ValueError: For an unknown tone mapping method.
    """
    result = np.nan_to_num(np.asarray(image, dtype=np.float32), nan=0.0, posinf=0.0, neginf=0.0)

    if tone_map == "reinhard":
        result = tone_map_reinhard(result)
    elif tone_map == "exposure":
        result = tone_map_exposure(result, exposure)
    elif tone_map != "none":
        raise ValueError(f"Unknown tone mapping method: {tone_map}")

    result = apply_gamma(result, gamma)
    return np.clip(result, 0.0, 1.0).astype(np.float32)
