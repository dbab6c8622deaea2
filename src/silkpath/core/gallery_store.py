"""Gallery metadata storage for SilkPath Studio.

The gallery is intentionally simple:

- metadata lives in a single ``gallery.json`` document, ``{"images": [...]}``
- image files live in the output folder next to it
- listings are reverse-chronological (newest first)

Each record looks like::

    {
      "id": 1760870400000,
      "filename": "silk_wrap_1760870400000.png",
      "hijabStyle": "silk_wrap",
      "caption": "...",
      "createdAt": "2026-10-19T10:40:00.000000+00:00",
      "provider": "gemini",
      "favorited": false,
      "postedToInstagram": true,
      "postedAt": "2026-10-19T11:02:13.000000+00:00"
    }

Records are kept as plain dictionaries so that fields this module does not
know about survive every rewrite untouched.

Every mutation follows read whole document -> mutate in memory -> write whole
document.  Mutations hold a thread lock for the document path and an OS file
lock on ``gallery.json.lock`` next to it, so the dashboard and a generator
subprocess never interleave their read-modify-write cycles.  The document is
replaced atomically, so readers never see a partial write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from filelock import FileLock

from silkpath.core.exceptions import EmptyCaptionError, ImageNotFoundError

logger = logging.getLogger(__name__)

_LOCKS: dict[Path, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = path.resolve()
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.RLock())


def lock_path_for(gallery_db: Path) -> Path:
    """Return the lock file guarding ``gallery_db`` across processes."""
    return gallery_db.with_name(f"{gallery_db.name}.lock")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_gallery_document(gallery_db: Path) -> dict:
    """Load the gallery document, returning an empty gallery on any failure.

    A missing file, invalid JSON, or a document of the wrong shape all yield
    ``{"images": []}`` so the gallery bootstraps itself on first write.
    """
    if not gallery_db.exists():
        return {"images": []}
    try:
        with open(gallery_db, encoding="utf-8") as handle:
            document = json.load(handle)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {gallery_db}, starting with an empty gallery: {e}")
        return {"images": []}

    if isinstance(document, list):
        document = {"images": document}
    if not isinstance(document, dict) or not isinstance(document.get("images"), list):
        return {"images": []}
    document["images"] = [entry for entry in document["images"] if isinstance(entry, dict)]
    return document


def save_gallery_document(gallery_db: Path, document: dict) -> None:
    """Persist the whole gallery document with an atomic rename."""
    gallery_db.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=gallery_db.parent, prefix=".gallery-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2)
        os.replace(tmp_name, gallery_db)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def filter_gallery_entries(
    entries: list[dict],
    *,
    favorites_only: bool = False,
    hijab_style: str | None = None,
    posted: bool | None = None,
) -> list[dict]:
    """Apply favourite, style, and posted filters to gallery entries.

    Args:
        entries: Source gallery entries.
        favorites_only: Whether to keep only favourited entries.
        hijab_style: Optional style label to filter by.
        posted: ``True``/``False`` to keep only posted/unposted entries.

    Returns:
        Filtered gallery entries in their original order.
    """
    filtered = entries
    if favorites_only:
        filtered = [entry for entry in filtered if entry.get("favorited")]
    if hijab_style:
        filtered = [entry for entry in filtered if entry.get("hijabStyle") == hijab_style]
    if posted is not None:
        filtered = [entry for entry in filtered if bool(entry.get("postedToInstagram")) is posted]
    return filtered


def paginate_gallery_entries(entries: list[dict], page: int, per_page: int) -> dict:
    """Paginate gallery entries and clamp the requested page to valid bounds.

    Clamping matters after deletes: removing the last image on the last page
    makes the previous page the new last page.

    Returns:
        Dictionary containing ``total``, ``page``, ``per_page``, ``pages``, and
        ``images`` for the resolved page.
    """
    per_page = max(per_page, 1)
    total = len(entries)
    pages = (total + per_page - 1) // per_page if total > 0 else 1
    resolved_page = min(max(page, 1), pages)

    start = (resolved_page - 1) * per_page
    end = start + per_page

    return {
        "total": total,
        "page": resolved_page,
        "per_page": per_page,
        "pages": pages,
        "images": entries[start:end],
    }


class GalleryStore:
    """File-backed gallery of generated images.

    Args:
        gallery_db: Path to ``gallery.json``.
        image_dir: Directory holding the image files.
        clock: Returns the current time in seconds; new ids are derived from it.
    """

    def __init__(
        self,
        gallery_db: Path,
        image_dir: Path,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.gallery_db = Path(gallery_db)
        self.image_dir = Path(image_dir)
        self.clock = clock
        self._lock = _lock_for(self.gallery_db)
        self._file_lock = FileLock(str(lock_path_for(self.gallery_db)))

    @contextmanager
    def _locked(self):
        """Hold the in-process and cross-process locks for one mutation."""
        self.gallery_db.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._file_lock:
            yield

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> dict:
        return load_gallery_document(self.gallery_db)

    def list_images(self, *, newest_first: bool = True, **filters) -> list[dict]:
        images = filter_gallery_entries(self.load()["images"], **filters)
        if newest_first:
            images = sorted(images, key=_sort_key, reverse=True)
        return images

    def get(self, image_id: int) -> dict:
        return _find(self.load()["images"], image_id)

    def image_path(self, entry: dict) -> Path | None:
        """Path of the entry's image file, or ``None`` if it has no file name."""
        filename = entry.get("filename")
        if not filename:
            return None
        return self.image_dir / Path(filename).name

    def stats(self) -> dict:
        images = self.load()["images"]
        style_counts: dict[str, int] = {}
        for entry in images:
            style = entry.get("hijabStyle", "unknown")
            style_counts[style] = style_counts.get(style, 0) + 1
        return {
            "total_images": len(images),
            "total_favorites": sum(1 for entry in images if entry.get("favorited")),
            "total_posted": sum(1 for entry in images if entry.get("postedToInstagram")),
            "style_counts": style_counts,
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        filename: str,
        hijab_style: str,
        caption: str,
        provider: str,
        image_id: int | None = None,
    ) -> dict:
        """Append a new record and return it.

        The id defaults to the creation time in milliseconds and is bumped
        past the current maximum if that value is already taken.
        """
        with self._locked():
            document = self.load()
            images = document["images"]

            new_id = image_id if image_id is not None else int(self.clock() * 1000)
            taken = {entry.get("id") for entry in images}
            if new_id in taken:
                new_id = max(i for i in taken if isinstance(i, int)) + 1

            entry = {
                "id": new_id,
                "filename": filename,
                "hijabStyle": hijab_style,
                "caption": caption,
                "createdAt": _now_iso(),
                "provider": provider,
                "favorited": False,
            }
            images.append(entry)
            save_gallery_document(self.gallery_db, document)

        logger.info(f"Added gallery image {new_id} ({filename})")
        return entry

    def toggle_favorite(self, image_id: int) -> dict:
        with self._locked():
            document = self.load()
            entry = _find(document["images"], image_id)
            entry["favorited"] = not entry.get("favorited", False)
            save_gallery_document(self.gallery_db, document)
        return entry

    def set_caption(self, image_id: int, caption: str) -> dict:
        caption = (caption or "").strip()
        if not caption:
            raise EmptyCaptionError("Caption cannot be empty")
        with self._locked():
            document = self.load()
            entry = _find(document["images"], image_id)
            entry["caption"] = caption
            save_gallery_document(self.gallery_db, document)
        return entry

    def mark_posted(self, image_id: int, media_id: str | None = None) -> dict:
        with self._locked():
            document = self.load()
            entry = _find(document["images"], image_id)
            entry["postedToInstagram"] = True
            entry["postedAt"] = _now_iso()
            if media_id:
                entry["instagramMediaId"] = media_id
            save_gallery_document(self.gallery_db, document)
        return entry

    def delete(self, image_id: int) -> dict:
        """Remove the record and its image file.

        A missing image file or file name is tolerated so broken entries can
        still be removed.  The file is unlinked only after the document has
        been written.
        """
        with self._locked():
            document = self.load()
            entry = _find(document["images"], image_id)
            document["images"] = [e for e in document["images"] if e is not entry]
            save_gallery_document(self.gallery_db, document)

            filepath = self.image_path(entry)
            if filepath is not None and filepath.exists():
                filepath.unlink()
            else:
                logger.warning(f"Image file already missing for gallery entry {image_id}: {filepath}")

        logger.info(f"Deleted gallery image {image_id}")
        return entry


def _find(images: list[dict], image_id: int) -> dict:
    entry = next((e for e in images if e.get("id") == image_id), None)
    if entry is None:
        raise ImageNotFoundError("Image not found")
    return entry


def _sort_key(entry: dict):
    image_id = entry.get("id")
    return image_id if isinstance(image_id, (int, float)) else 0
