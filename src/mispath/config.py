"""Configuration dataclasses and logging setup for the path tracer.

Integrator and render settings are plain dataclasses validated on construction.
They are passed explicitly to the renderer rather than read from module state.

Example:
    >>> from mispath.config import Config, IntegratorConfig, setup_logging
    >>> setup_logging()
    >>> config = Config(integrator=IntegratorConfig(strategy="bsdf"))
    >>> config.integrator.min_bounces_before_rr
    5
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field

# Logger namespace shared by every module in the package
LOGGER_NAME = "mispath"

VALID_STRATEGIES = ("mis", "bsdf", "light")
VALID_TONE_MAPS = ("none", "reinhard", "exposure")


# =============================================================================
# Logging Configuration
# =============================================================================


def setup_logging(
    level: int = logging.INFO,
    log_file: str | None = None,
    format_string: str | None = None,
) -> logging.Logger:
    """Set up and return the package logger.

    Handlers are installed only once, so repeated calls just update the level.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file path to also write logs to.
        format_string: Optional custom format string.

    Returns:
        The configured ``mispath`` logger.
    """
    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%H:%M:%S")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)

    return logger


# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class IntegratorConfig:
    """Settings for the per-bounce integrator.

    Attributes:
        strategy: "mis" combines light and BSDF sampling, "bsdf" disables light
            sampling, "light" counts emitter hits only where light sampling
            cannot reach them (camera rays and delta bounces).
        min_bounces_before_rr: Bounce count at which Russian roulette starts.
        max_rr_probability: Upper bound on the roulette survival probability.
        environment: Constant radiance returned by rays that leave the scene.
    """

    strategy: str = "mis"
    min_bounces_before_rr: int = 5
    max_rr_probability: float = 0.95
    environment: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        if self.strategy not in VALID_STRATEGIES:
            raise ValueError(
                f"Unknown sampling strategy {self.strategy!r}; expected one of {VALID_STRATEGIES}"
            )
        if self.min_bounces_before_rr < 0:
            raise ValueError(
                f"min_bounces_before_rr = {self.min_bounces_before_rr} must be non-negative"
            )
        if not 0.0 < self.max_rr_probability < 1.0:
            raise ValueError(
                f"max_rr_probability = {self.max_rr_probability} must lie in (0, 1) "
                "so that every path terminates"
            )
        if len(self.environment) != 3 or any(c < 0.0 for c in self.environment):
            raise ValueError(f"Environment radiance {self.environment} must be a non-negative RGB")


@dataclass
class RenderConfig:
    """Settings for a progressive render.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        ticks: Number of integrator ticks (one bounce per pixel each).
        batch_size: Ticks between progress reports.
        seed: Host RNG seed. None uses the Taichi device generator.
        output: Output PNG path.
        gamma: Display gamma applied on export.
        tone_map: Tone mapping method applied on export.
    """

    width: int = 256
    height: int = 256
    ticks: int = 1000
    batch_size: int = 50
    seed: int | None = None
    output: str = "render.png"
    gamma: float = 2.2
    tone_map: str = "reinhard"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Image dimensions ({self.width}x{self.height}) must be positive")
        if self.ticks < 0:
            raise ValueError(f"ticks = {self.ticks} must be non-negative")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size = {self.batch_size} must be positive")
        if self.gamma <= 0.0:
            raise ValueError(f"gamma = {self.gamma} must be positive")
        if self.tone_map not in VALID_TONE_MAPS:
            raise ValueError(
                f"Unknown tone mapping method {self.tone_map!r}; expected one of {VALID_TONE_MAPS}"
            )


@dataclass
class Config:
    """Top-level configuration bundling integrator and render settings."""

    integrator: IntegratorConfig = field(default_factory=IntegratorConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
