#!/usr/bin/env python3
"""Render the Cornell box scene.

Builds the Cornell box, runs the progressive integrator for a fixed number of
ticks and saves a tone-mapped PNG. Each tick advances every pixel's path by
one bounce, so the number of completed samples per pixel is roughly the
number of ticks divided by the mean path length.

Usage:
    python examples/render_cornell_box.py [options]

Options:
    --width WIDTH         Image width in pixels (default: 256)
    --height HEIGHT       Image height in pixels (default: 256)
    --ticks TICKS         Number of integrator ticks (default: 1000)
    --batch-size SIZE     Ticks per progress update (default: 50)
    --strategy NAME       mis, bsdf or light (default: mis)
    --seed SEED           Host RNG seed for reproducible renders
    --tone-map NAME       none, reinhard or exposure (default: reinhard)
    --output OUTPUT       Output file path (default: cornell_box.png)
    --cpu                 Force the CPU backend
    --verbose             Log per-batch progress

Example:
    python examples/render_cornell_box.py --width 128 --height 128 --ticks 400 --strategy bsdf
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import taichi as ti

from mispath.config import (
    VALID_STRATEGIES,
    VALID_TONE_MAPS,
    Config,
    IntegratorConfig,
    RenderConfig,
    setup_logging,
)

logger = logging.getLogger("mispath.examples.render_cornell_box")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the Cornell box scene.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=256, help="Image width in pixels (default: 256)")
    parser.add_argument(
        "--height", type=int, default=256, help="Image height in pixels (default: 256)"
    )
    parser.add_argument(
        "--ticks", type=int, default=1000, help="Number of integrator ticks (default: 1000)"
    )
    parser.add_argument(
        "--batch-size", type=int, default=50, help="Ticks per progress update (default: 50)"
    )
    parser.add_argument(
        "--strategy",
        choices=VALID_STRATEGIES,
        default="mis",
        help="Light transport sampling strategy (default: mis)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Host RNG seed")
    parser.add_argument(
        "--tone-map",
        choices=VALID_TONE_MAPS,
        default="reinhard",
        help="Tone mapping applied on export (default: reinhard)",
    )
    parser.add_argument(
        "--output", type=str, default="cornell_box.png", help="Output file path"
    )
    parser.add_argument("--cpu", action="store_true", help="Force the CPU backend")
    parser.add_argument("--verbose", action="store_true", help="Log per-batch progress")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> Config:
    """Build a validated Config from parsed arguments.

    Raises:
        ValueError: If any setting is out of range.
    """
    return Config(
        integrator=IntegratorConfig(strategy=args.strategy),
        render=RenderConfig(
            width=args.width,
            height=args.height,
            ticks=args.ticks,
            batch_size=args.batch_size,
            seed=args.seed,
            output=args.output,
            tone_map=args.tone_map,
        ),
    )


def render_cornell_box(config: Config) -> Path:
    """Render the Cornell box scene and save it.

    Returns:
        Path to the saved image file.
    """
    # Imported after ti.init so module-level fields land in the right runtime
    from mispath.camera.pinhole import setup_camera
    from mispath.core.progressive import ProgressiveRenderer
    from mispath.preview.export import save_png
    from mispath.scene.cornell_box import create_cornell_box_scene

    render = config.render
    scene, camera, _ = create_cornell_box_scene()
    camera.aspect_ratio = render.width / render.height
    scene.build()
    setup_camera(camera)

    renderer = ProgressiveRenderer(
        render.width, render.height, integrator_config=config.integrator, seed=render.seed
    )
    logger.info(
        "Rendering %dx%d for %d ticks with strategy %r",
        render.width,
        render.height,
        render.ticks,
        config.integrator.strategy,
    )

    def progress_callback(done: int, target: int) -> None:
        logger.debug("Progress: %d/%d ticks", done, target)

    renderer.render(render.ticks, batch_size=render.batch_size, callback=progress_callback)

    output_file = Path(render.output)
    save_png(renderer, str(output_file), tone_map=render.tone_map, gamma=render.gamma)
    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = config_from_args(args)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if args.cpu:
        ti.init(arch=ti.cpu, fast_math=False)
    else:
        ti.init(arch=ti.gpu, fast_math=False)

    try:
        output = render_cornell_box(config)
    except (ValueError, RuntimeError) as e:
        logger.error("Render failed: %s", e)
        return 1
    logger.info("Saved to %s", output.absolute())
    return 0


if __name__ == "__main__":
    sys.exit(main())
