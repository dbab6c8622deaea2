"""Image and caption providers used by the generation driver.

Two interchangeable image providers compose the final photo from the style
references plus one hijab image:

- ``openai``: ``images.edit`` with ``gpt-image-1``; images are sent as files,
  style references first and the hijab last.
- ``gemini``: ``generate_content`` with the image response modality; the
  prompt is the first part, followed by the same images as inline bytes.

Both return raw image bytes.  Captions are written by a Gemini vision model;
when that fails the caller falls back to a fixed caption.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Protocol

from silkpath.core.exceptions import ConfigurationError, GenerationError
from silkpath.generator.prompt_builder import build_caption_prompt

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".heic", ".heif")

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


def mime_type_for(path: Path) -> str:
    return _MIME_TYPES.get(path.suffix.lower(), "image/png")


class ImageProvider(Protocol):
    name: str

    def generate(self, style_images: list[Path], hijab_image: Path, prompt: str) -> bytes: ...


class OpenAIImageProvider:
    """Compose images with the OpenAI Images Edit API."""

    name = "openai"

    def __init__(self, api_key: str | None, model: str = "gpt-image-1", client=None):
        if client is None:
            if not api_key:
                raise ConfigurationError("OPENAI_API_KEY is not set in environment variables")
            from openai import OpenAI

            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model

    def generate(self, style_images: list[Path], hijab_image: Path, prompt: str) -> bytes:
        files = [(p.name, p.read_bytes(), mime_type_for(p)) for p in [*style_images, hijab_image]]
        logger.info(f"Generating with OpenAI {self.model} from {len(style_images)} style images")

        response = self.client.images.edit(model=self.model, prompt=prompt, image=files)

        data = getattr(response, "data", None) or []
        b64 = getattr(data[0], "b64_json", None) if data else None
        if not b64:
            raise GenerationError("No image data returned from OpenAI")
        return base64.b64decode(b64)


class GeminiImageProvider:
    """Compose images with a Gemini image model."""

    name = "gemini"

    def __init__(self, api_key: str | None, model: str = "gemini-3-pro-image-preview", client=None):
        if client is None:
            if not api_key:
                raise ConfigurationError("GEMINI_API_KEY is not set in environment variables")
            from google import genai

            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model

    def generate(self, style_images: list[Path], hijab_image: Path, prompt: str) -> bytes:
        from google.genai import types

        parts = [types.Part.from_text(text=prompt)]
        for path in [*style_images, hijab_image]:
            parts.append(types.Part.from_bytes(data=path.read_bytes(), mime_type=mime_type_for(path)))
        logger.info(f"Generating with Gemini {self.model} from {len(style_images)} style images")

        response = self.client.models.generate_content(
            model=self.model,
            contents=[types.Content(role="user", parts=parts)],
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )

        image = _first_inline_data(response)
        if image is None:
            raise GenerationError("No image data returned from Gemini")
        return image


class GeminiCaptioner:
    """Write Instagram captions with a Gemini vision model."""

    def __init__(self, api_key: str | None, model: str = "gemini-2.0-flash", client=None):
        if client is None:
            if not api_key:
                raise ConfigurationError("GEMINI_API_KEY is required for caption generation")
            from google import genai

            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model

    def caption(self, image_path: Path, style_name: str, *, color: str | None = None) -> str:
        from google.genai import types

        response = self.client.models.generate_content(
            model=self.model,
            contents=[
                types.Content(
                    role="user",
                    parts=[
                        types.Part.from_text(text=build_caption_prompt(style_name, color=color)),
                        types.Part.from_bytes(
                            data=image_path.read_bytes(),
                            mime_type=mime_type_for(image_path),
                        ),
                    ],
                )
            ],
        )
        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise GenerationError("Caption model returned no text")
        return text


def _first_inline_data(response) -> bytes | None:
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                data = inline.data
                return base64.b64decode(data) if isinstance(data, str) else data
    return None


def create_image_provider(name: str, cfg) -> ImageProvider:
    """Instantiate the image provider selected by ``name``."""
    if name == "gemini":
        return GeminiImageProvider(cfg.gemini_api_key, cfg.gemini_image_model)
    if name == "openai":
        return OpenAIImageProvider(cfg.openai_api_key, cfg.openai_image_model)
    raise ConfigurationError(f"Unknown image provider: {name}")
