from __future__ import annotations

from pathlib import Path


JPEG_EXTS = {".jpg", ".jpeg"}
VIDEO_EXTS = {".mp4", ".mov"}


def is_jpeg(path: Path) -> bool:
    return path.suffix.lower() in JPEG_EXTS


def is_video(path: Path) -> bool:
    return path.suffix.lower() in VIDEO_EXTS


def is_hidden(path: Path) -> bool:
    return path.name.startswith(".")


def is_media(path: Path) -> bool:
    if is_hidden(path):
        return False
    return is_jpeg(path) or is_video(path)
