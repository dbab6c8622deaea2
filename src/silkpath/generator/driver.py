"""Batch generation run: style references + hijab photos -> gallery records.

For every selected hijab photo the driver:

1. compiles the prompt,
2. asks the image provider for a composite photo,
3. saves it under its real image format (detected with Pillow),
4. writes a caption (Gemini vision, or a fixed fallback),
5. appends exactly one record to ``gallery.json``.

A failure on one photo is logged and the run continues with the next one.
"""

from __future__ import annotations

import io
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from silkpath.core.exceptions import GenerationError
from silkpath.core.gallery_store import GalleryStore
from silkpath.generator.inputs import HijabImage, list_hijab_images, select_style_images
from silkpath.generator.prompt_builder import build_generation_prompt, fallback_caption
from silkpath.generator.providers import GeminiCaptioner, ImageProvider, create_image_provider

logger = logging.getLogger(__name__)

_FORMAT_EXTENSIONS = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp", "GIF": "gif"}


@dataclass
class GenerationOptions:
    """Options for one generator run (mirrors the CLI flags)."""

    hijab: str | None = None
    color: str | None = None
    provider: str | None = None
    amazon: bool = False
    caption: bool = True
    prompt: str | None = None
    style_images: list[str] = field(default_factory=list)


def detect_extension(data: bytes) -> str:
    """Return the file extension matching the real format of ``data``.

    Raises:
        GenerationError: The bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
    except UnidentifiedImageError as e:
        raise GenerationError("Provider returned data that is not an image") from e
    return _FORMAT_EXTENSIONS.get(fmt or "", "png")


def save_image(data: bytes, output_dir: Path, stem: str) -> str:
    """Write image bytes to ``output_dir`` and return the file name used."""
    extension = detect_extension(data)
    filename = f"{stem}.{extension}"
    suffix = 1
    while (output_dir / filename).exists():
        filename = f"{stem}_{suffix}.{extension}"
        suffix += 1
    (output_dir / filename).write_bytes(data)
    logger.info(f"Saved image to: {output_dir / filename}")
    return filename


class GenerationDriver:
    """Run one batch of generations and record the results.

    Args:
        cfg: Studio configuration (paths, models, API keys).
        provider: Image provider; built from ``cfg`` when omitted.
        captioner: Caption writer; built from ``cfg`` when omitted and a
            Gemini key is configured.
        gallery: Gallery store; built from ``cfg`` when omitted.
        rng: Random source for style image selection.
        sleep: Pause between provider calls.
        clock: Seconds since the epoch, used for file names.
    """

    def __init__(
        self,
        cfg,
        *,
        provider: ImageProvider | None = None,
        captioner: GeminiCaptioner | None = None,
        gallery: GalleryStore | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.provider = provider
        self.captioner = captioner
        self.gallery = gallery or GalleryStore(cfg.gallery_db, cfg.output_dir)
        self.rng = rng
        self.sleep = sleep
        self.clock = clock

    def run(self, options: GenerationOptions) -> list[dict]:
        """Generate one image per selected hijab photo.

        Returns:
            The gallery records that were created.

        Raises:
            GenerationError: Inputs are missing.
            ConfigurationError: The provider's API key is missing.
        """
        provider = self.provider or create_image_provider(
            options.provider or self.cfg.image_provider, self.cfg
        )
        style_images = select_style_images(
            self.cfg.style_input_dir,
            names=options.style_images or None,
            count=self.cfg.style_image_count,
            rng=self.rng,
        )
        logger.info(f"Selected {len(style_images)} style images: {[p.name for p in style_images]}")

        hijab_images = list_hijab_images(self.cfg.hijab_input_dir, options.hijab)
        if not hijab_images:
            raise GenerationError(f"No hijab images found in {self.cfg.hijab_input_dir} subdirectories")
        logger.info(f"Found {len(hijab_images)} hijab images")

        captioner = self._captioner(options)
        prompt = build_generation_prompt(
            len(style_images),
            color=options.color,
            amazon=options.amazon,
            custom_prompt=options.prompt,
        )

        created = []
        for index, hijab_image in enumerate(hijab_images):
            if index:
                self.sleep(self.cfg.generation_delay)
            try:
                created.append(
                    self._generate_one(provider, captioner, style_images, hijab_image, prompt, options)
                )
            except Exception as e:
                logger.error(f"Failed to process hijab image {hijab_image.name}: {e}", exc_info=True)

        logger.info(f"Generation finished: {len(created)}/{len(hijab_images)} images")
        return created

    def _generate_one(
        self,
        provider: ImageProvider,
        captioner: GeminiCaptioner | None,
        style_images: list[Path],
        hijab_image: HijabImage,
        prompt: str,
        options: GenerationOptions,
    ) -> dict:
        logger.info(f"Generating image with {provider.name}: {hijab_image.name}...")
        data = provider.generate(style_images, hijab_image.path, prompt)

        stem = f"{hijab_image.name}_{int(self.clock() * 1000)}"
        filename = save_image(data, self.cfg.output_dir, stem)
        caption = self._caption(captioner, self.cfg.output_dir / filename, hijab_image.name, options)

        return self.gallery.create(
            filename=filename,
            hijab_style=hijab_image.name,
            caption=caption,
            provider=provider.name,
        )

    def _captioner(self, options: GenerationOptions) -> GeminiCaptioner | None:
        if not options.caption:
            return None
        if self.captioner is not None:
            return self.captioner
        if not self.cfg.gemini_api_key:
            logger.warning("GEMINI_API_KEY not set, using fallback captions")
            return None
        return GeminiCaptioner(self.cfg.gemini_api_key, self.cfg.gemini_caption_model)

    def _caption(
        self,
        captioner: GeminiCaptioner | None,
        image_path: Path,
        style_name: str,
        options: GenerationOptions,
    ) -> str:
        if captioner is None:
            return fallback_caption(style_name)
        try:
            caption = captioner.caption(image_path, style_name, color=options.color)
        except Exception as e:
            logger.warning(f"Caption generation failed, using fallback: {e}")
            return fallback_caption(style_name)
        logger.info(f"Caption: {caption[:100]}...")
        return caption
