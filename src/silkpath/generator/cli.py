"""Command line interface of the generation driver.

Usage::

    silkpath-generate --hijab silk_wrap --provider gemini --color "dusty rose"
    python -m silkpath.generator --amazon --no-caption
    python -m silkpath.generator --setup

The dashboard runs this module as a subprocess and builds its arguments with
:func:`build_argv`.  Exit status is ``0`` when at least one image was added to
the gallery and ``1`` otherwise.
"""

from __future__ import annotations

import argparse
import logging
import sys

from silkpath.core.exceptions import StudioError
from silkpath.generator.driver import GenerationDriver, GenerationOptions
from silkpath.generator.inputs import ensure_input_layout

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="silkpath-generate",
        description="Generate hijab fashion photos from style references and add them to the gallery.",
    )
    parser.add_argument("--hijab", help="Only use photos from this hijab style folder")
    parser.add_argument("--color", help="Render the hijab in this colour")
    parser.add_argument("--provider", choices=["openai", "gemini"], help="Image provider")
    parser.add_argument(
        "--amazon",
        action="store_true",
        help="Marketplace product shot on a white background instead of a portrait",
    )
    parser.add_argument(
        "--caption",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write captions with the vision model (default: on)",
    )
    parser.add_argument("--prompt", help="Extra direction appended to the prompt")
    parser.add_argument(
        "--style-images",
        help="Comma-separated file names from style_input to use instead of a random pick",
    )
    parser.add_argument("--setup", action="store_true", help="Create the input folders and exit")
    return parser


def options_from_args(args: argparse.Namespace) -> GenerationOptions:
    style_images = [name.strip() for name in (args.style_images or "").split(",") if name.strip()]
    return GenerationOptions(
        hijab=args.hijab or None,
        color=args.color or None,
        provider=args.provider,
        amazon=args.amazon,
        caption=args.caption,
        prompt=args.prompt or None,
        style_images=style_images,
    )


def build_argv(options: GenerationOptions) -> list[str]:
    """Translate options back into CLI flags for a subprocess run.

    Free-text values use the ``--flag=value`` form so a value starting with
    ``-`` is never read as another option.
    """
    argv: list[str] = []
    if options.hijab:
        argv.append(f"--hijab={options.hijab}")
    if options.color:
        argv.append(f"--color={options.color}")
    if options.provider:
        argv += ["--provider", options.provider]
    if options.amazon:
        argv.append("--amazon")
    argv.append("--caption" if options.caption else "--no-caption")
    if options.prompt:
        argv.append(f"--prompt={options.prompt}")
    if options.style_images:
        argv.append(f"--style-images={','.join(options.style_images)}")
    return argv


def main(argv: list[str] | None = None) -> int:
    from silkpath.core.config import config

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)

    if args.setup:
        for directory in ensure_input_layout(config.style_input_dir, config.hijab_input_dir, config.output_dir):
            logger.info(f"Created {directory}")
        logger.info(f"Add style inspiration photos to: {config.style_input_dir}")
        logger.info(f"Add hijab images to subdirectories in: {config.hijab_input_dir}")
        return 0

    try:
        created = GenerationDriver(config).run(options_from_args(args))
    except StudioError as e:
        logger.error(f"Error in main process: {e}")
        return 1

    if not created:
        logger.error("No images were generated")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
