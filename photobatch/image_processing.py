from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from PIL import Image

from . import media
from .logging_utils import get_logger


class ProcessingError(RuntimeError):
    pass


def render_resized_jpeg(
    src_path: Path,
    *,
    max_dimension: int,
    quality: int = 92,
    resampling: Image.Resampling = Image.Resampling.LANCZOS,
) -> Path | None:
    """
    Shrink a JPEG so neither side exceeds `max_dimension`.

    - Returns None when the image is already within bounds
    - Keeps the EXIF block untouched (orientation included, pixels are not rotated)
    - Writes to a new temp file named resized*.jpg and returns its path

    Raises ProcessingError with guidance on any failure.
    """
    try:
        with Image.open(src_path) as im:
            w, h = im.size
            if w <= max_dimension and h <= max_dimension:
                return None

            exif = im.info.get("exif")
            scale = max_dimension / float(max(w, h))
            new_size = (max(1, int(w * scale)), max(1, int(h * scale)))
            resized = im.resize(new_size, resampling)
            if resized.mode not in ("RGB", "L"):
                resized = resized.convert("RGB")

            fd, tmp_name = tempfile.mkstemp(prefix="resized", suffix=".jpg")
            os.close(fd)
            dst_path = Path(tmp_name)
            save_kwargs: dict = {"format": "JPEG", "quality": int(quality), "optimize": True}
            if exif:
                save_kwargs["exif"] = exif
            try:
                resized.save(dst_path, **save_kwargs)
            except Exception:
                dst_path.unlink(missing_ok=True)
                raise
            return dst_path
    except Exception as e:  # noqa: BLE001 - we want a clean error surface
        error_msg = str(e)
        if "cannot identify image file" in error_msg.lower():
            guidance = (
                "  This file may not be a valid JPEG, or the file is corrupted.\n"
                "  Try: Open the file in an image viewer to verify it"
            )
        elif "no space left" in error_msg.lower():
            guidance = (
                "  The temp directory is full.\n"
                "  Try: Free up space or point TMPDIR at a larger volume"
            )
        else:
            guidance = "  Try: Check the file is readable and the temp directory is writable"
        raise ProcessingError(
            f"Failed to resize image:\n"
            f"  File: {src_path}\n"
            f"  Error: {type(e).__name__}: {error_msg}\n"
            f"{guidance}"
        ) from e


class ImageTranscoder:
    def __init__(self, *, quality: int = 92, logger: logging.Logger | None = None):
        self.quality = quality
        self.logger = get_logger(logger)

    def is_resize_eligible(self, path: Path) -> bool:
        return media.is_jpeg(path)

    def resize(self, path: Path, max_dimension: int) -> Path:
        """
        Path of a copy within `max_dimension`, or `path` itself when no resize is needed
        or the resize fails. Never raises.
        """
        try:
            out = render_resized_jpeg(path, max_dimension=max_dimension, quality=self.quality)
        except ProcessingError as e:
            self.logger.error(str(e))
            return path
        if out is None:
            return path
        self.logger.debug(f"Resized {path.name} to fit {max_dimension}px -> {out}")
        return out
