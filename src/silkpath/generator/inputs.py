"""Discovery of generation inputs on disk.

Layout::

    style_input/                 style reference photos
    hijab_input/<style name>/    photos of one hijab style, one folder per style
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path

from silkpath.core.exceptions import GenerationError
from silkpath.generator.providers import IMAGE_EXTENSIONS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HijabImage:
    """One clothing photo and the style folder it came from."""

    name: str
    path: Path


def list_image_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
    )


def list_hijab_styles(hijab_dir: Path) -> list[dict]:
    """Return ``{"name", "images"}`` for every style folder, sorted by name."""
    if not hijab_dir.is_dir():
        return []
    styles = []
    for folder in sorted(p for p in hijab_dir.iterdir() if p.is_dir()):
        styles.append({"name": folder.name, "images": len(list_image_files(folder))})
    return styles


def list_hijab_images(hijab_dir: Path, only: str | None = None) -> list[HijabImage]:
    """Collect clothing photos, optionally from a single style folder.

    Raises:
        GenerationError: ``only`` names a folder that does not exist.
    """
    if only:
        folder = hijab_dir / only
        if not folder.is_dir():
            raise GenerationError(f"Hijab style folder not found: {only}")
        folders = [folder]
    else:
        folders = sorted(p for p in hijab_dir.iterdir() if p.is_dir()) if hijab_dir.is_dir() else []

    return [HijabImage(folder.name, image) for folder in folders for image in list_image_files(folder)]


def select_style_images(
    style_dir: Path,
    *,
    names: list[str] | None = None,
    count: int = 3,
    rng: random.Random | None = None,
) -> list[Path]:
    """Pick the style references for one run.

    Args:
        style_dir: Folder of style photos.
        names: Explicit file names to use instead of a random pick.
        count: How many to pick at random.
        rng: Random source.

    Raises:
        GenerationError: No style photos exist, or a named photo is missing.
    """
    available = list_image_files(style_dir)
    if not available:
        raise GenerationError(f"No image files found in {style_dir}")

    if names:
        by_name = {p.name: p for p in available}
        missing = [name for name in names if name not in by_name]
        if missing:
            raise GenerationError(f"Style images not found: {', '.join(missing)}")
        return [by_name[name] for name in names]

    if len(available) < count:
        logger.warning(f"Only {len(available)} style images found. Using all available images.")
    return (rng or random).sample(available, min(count, len(available)))


def ensure_input_layout(style_dir: Path, hijab_dir: Path, output_dir: Path) -> list[Path]:
    """Create the input/output folders plus example style folders.

    Returns:
        The directories that were created.
    """
    created = []
    targets = [style_dir, hijab_dir, output_dir]
    if not any(p.is_dir() for p in hijab_dir.glob("*")):
        targets += [hijab_dir / "hijab_name_1", hijab_dir / "hijab_name_2"]
    for directory in targets:
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            created.append(directory)
    return created
