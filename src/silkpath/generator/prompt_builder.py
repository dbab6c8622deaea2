"""Prompt compilation for the generation driver.

Every generation request is composed from up to four parts:

    [Reference instructions: N style images followed by one hijab image]

    [Scene: Instagram portrait, or marketplace product shot in amazon mode]

    [Optional colour override]

    [Optional operator direction]

Sections are separated by double newlines.  Empty optional parts are omitted.

Usage
-----
::

    prompt = build_generation_prompt(
        style_count=3,
        color="dusty rose",
        amazon=False,
        custom_prompt="Golden hour light on a rooftop.",
    )
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fixed sections.
# ---------------------------------------------------------------------------

_PORTRAIT_SCENE = (
    "Create a professional Instagram portrait matching the style from the reference "
    "images, with the model wearing the hijab from the last image."
)

_AMAZON_SCENE = (
    "Create a clean e-commerce product photo for a marketplace listing: the model "
    "wears the hijab from the last image, framed from the shoulders up, on a pure "
    "white seamless background with soft, even studio lighting. Keep the fabric "
    "texture, pattern, and drape of the hijab accurate. No text, logos, or props."
)

_CAPTION_INSTRUCTIONS = (
    "Include relevant hashtags. Keep it elegant, inspiring, and suitable for a "
    "fashion/lifestyle account. Output ONLY the caption text, nothing else."
)


def display_name(style_name: str) -> str:
    """Turn a folder name such as ``silk_wrap`` into ``silk wrap``."""
    return style_name.replace("_", " ").strip()


def build_generation_prompt(
    style_count: int,
    *,
    color: str | None = None,
    amazon: bool = False,
    custom_prompt: str | None = None,
) -> str:
    """Compile the image generation prompt.

    Args:
        style_count: Number of style reference images sent before the hijab image.
        color: Optional colour the hijab should be rendered in.
        amazon: Use the marketplace product-shot scene instead of the portrait.
        custom_prompt: Free-text direction appended last.

    Returns:
        The compiled prompt with sections separated by double newlines.
    """
    parts: list[str] = []

    if style_count > 0:
        parts.append(
            f"Use the first {style_count} images as style references (lighting, colors, "
            "composition, mood, aesthetic). The last image shows a hijab."
        )
    else:
        parts.append("The image shows a hijab.")

    parts.append(_AMAZON_SCENE if amazon else _PORTRAIT_SCENE)

    if color and color.strip():
        parts.append(
            f"Render the hijab in {color.strip()} while keeping its fabric, pattern, and drape."
        )

    if custom_prompt and custom_prompt.strip():
        parts.append(custom_prompt.strip())

    return "\n\n".join(parts)


def build_caption_prompt(style_name: str, *, color: str | None = None) -> str:
    """Compile the vision prompt used to write an Instagram caption."""
    name = display_name(style_name)
    subject = f'The hijab style is called "{name}"'
    if color and color.strip():
        subject += f" and is shown in {color.strip()}"
    return (
        f"Create an engaging Instagram caption for this hijab fashion photo. {subject}. "
        f"{_CAPTION_INSTRUCTIONS}"
    )


def fallback_caption(style_name: str) -> str:
    """Caption used when the caption model is unavailable."""
    name = display_name(style_name)
    tag = style_name.replace("_", "").replace(" ", "")
    return f"Elegant {name} hijab fashion. #hijabstyle #modestfashion #{tag}"
