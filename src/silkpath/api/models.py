"""Pydantic request models for the dashboard API.

The dashboard JavaScript sends camelCase field names (``imageId``); the
models accept those as aliases as well as the snake_case field names.

Models
------
PostRequest
    Payload for ``POST /api/post-to-instagram``.
CaptionRequest
    Payload for ``PUT /api/caption/{id}``.
TokenRequest
    Payload for ``POST /api/refresh-token`` (manual token paste).
GenerateRequest
    Payload for ``POST /api/generate``: flags for one generator run.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PostRequest(BaseModel):
    """Request body for the ``POST /api/post-to-instagram`` endpoint.

    Attributes:
        image_id: Gallery id of the image to publish.
        caption: Caption to publish with.  Defaults to the stored caption.
    """

    model_config = ConfigDict(populate_by_name=True)

    image_id: int = Field(..., alias="imageId", description="Gallery id of the image.")
    caption: str | None = Field(
        default=None,
        description="Caption override.  None = use the caption stored in the gallery.",
    )


class CaptionRequest(BaseModel):
    caption: str = Field(..., description="New caption text.")


class TokenRequest(BaseModel):
    token: str = Field(default="", description="Facebook user access token pasted by the operator.")


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Every field maps onto one generator CLI flag.
    """

    model_config = ConfigDict(populate_by_name=True)

    hijab_style: str | None = Field(
        default=None,
        alias="hijabStyle",
        description="Only generate for this hijab style folder.",
    )
    color: str | None = Field(default=None, description="Colour override for the hijab.")
    provider: Literal["openai", "gemini"] | None = Field(
        default=None,
        description="Image provider.  None = IMAGE_PROVIDER from the environment.",
    )
    amazon: bool = Field(default=False, description="Marketplace product-shot mode.")
    caption: bool = Field(default=True, description="Generate captions with the vision model.")
    prompt: str | None = Field(default=None, description="Extra direction for the prompt.")
    style_images: list[str] = Field(
        default_factory=list,
        alias="styleImages",
        description="Style reference file names.  Empty = random pick.",
    )
