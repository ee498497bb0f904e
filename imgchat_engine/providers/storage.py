"""Timestamped image artifacts and retention."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from ..utils import ensure_dir

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "img_"
IMAGE_SUFFIX = ".png"


def build_image_path(output_dir: Path) -> Path:
    ensure_dir(output_dir)
    stamp = int(time.time() * 1000)
    candidate = output_dir / f"{IMAGE_PREFIX}{stamp}{IMAGE_SUFFIX}"
    while candidate.exists():
        stamp += 1
        candidate = output_dir / f"{IMAGE_PREFIX}{stamp}{IMAGE_SUFFIX}"
    return candidate


def save_image(output_dir: str | Path, data: bytes) -> str:
    """Write `data` under `output_dir` and return the bare filename."""
    image_path = build_image_path(Path(output_dir))
    try:
        image_path.write_bytes(data)
    except OSError as exc:
        raise RuntimeError(f"failed to save image: {exc}") from exc
    logger.info("image saved: %s", image_path)
    return image_path.name


def cleanup_old_images(output_dir: str | Path, max_images: int) -> list[str]:
    """Delete the oldest images (by mtime) beyond `max_images`.

    Returns the names that were removed. Per-file removal errors are logged and
    skipped; a directory listing error propagates to the caller.
    """
    base = Path(output_dir)
    entries: list[tuple[float, str, Path]] = []
    for entry in base.iterdir():
        if not entry.is_file() or entry.suffix != IMAGE_SUFFIX:
            continue
        try:
            mtime = entry.stat().st_mtime
        except OSError:
            continue
        entries.append((mtime, entry.name, entry))

    if len(entries) <= max_images:
        return []

    entries.sort(key=lambda item: (item[0], item[1]))
    removed: list[str] = []
    for _mtime, name, path in entries[: len(entries) - max(0, max_images)]:
        try:
            path.unlink()
        except OSError as exc:
            logger.debug("cleanup: failed to remove %s: %s", path, exc)
            continue
        removed.append(name)
        logger.debug("cleanup: removed old image %s", name)
    logger.debug("cleanup: removed %d old image(s), keeping %d", len(removed), max_images)
    return removed
