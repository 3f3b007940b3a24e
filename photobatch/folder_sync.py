from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from . import media
from .albums import AlbumCatalog
from .logging_utils import get_logger
from .models import MediaCandidate
from .naming import album_name_for, media_name_for
from .photo_service import PermissionDenied, PhotoService
from .pipeline import SyncPipeline, SyncResult


MAX_AUTH_RETRIES = 2


@dataclass
class FolderSyncSummary:
    albums: int = 0
    uploaded: int = 0
    failed: int = 0
    not_writable: list[str] = field(default_factory=list)

    def add(self, title: str, res: SyncResult) -> None:
        self.albums += 1
        self.uploaded += res.saved
        self.failed += res.failed + (res.uploaded - res.saved)
        if res.not_writable:
            self.not_writable.append(title)


def collect_folder(folder: Path) -> tuple[list[Path], list[Path]]:
    """
    Media files and subdirectories directly under `folder`, hidden entries excluded, sorted by name.
    """
    files: list[Path] = []
    dirs: list[Path] = []
    for p in folder.iterdir():
        if media.is_hidden(p):
            continue
        if p.is_dir():
            dirs.append(p)
        elif p.is_file() and media.is_media(p):
            files.append(p)
    return sorted(files), sorted(dirs)


def _sync_one(
    base_folder: Path,
    folder: Path,
    files: list[Path],
    *,
    catalog: AlbumCatalog,
    pipeline: SyncPipeline,
) -> tuple[str, SyncResult]:
    # Files directly in the base folder go to an album named after the folder itself.
    title = album_name_for(base_folder, folder) or folder.name
    album = catalog.get_or_create(title)
    candidates = [MediaCandidate(display_name=media_name_for(f), source_file=f) for f in files]
    return title, pipeline.run(album, candidates)


def sync_folders(
    base_folder: Path,
    folders: Iterable[Path],
    *,
    catalog: AlbumCatalog,
    pipeline: SyncPipeline,
    service: PhotoService,
    logger: logging.Logger | None = None,
) -> FolderSyncSummary:
    """
    Walk each folder depth first and sync every directory holding media into its own album.

    A PermissionDenied from any step logs out and retries that directory, at most
    MAX_AUTH_RETRIES times before the error propagates.
    """
    logger = get_logger(logger)
    base_folder = base_folder.resolve()
    summary = FolderSyncSummary()

    stack: list[Path] = []
    for f in folders:
        f = f.resolve()
        if not f.is_dir():
            logger.warning(f"Skipping {f}: not a directory")
            continue
        if f != base_folder and base_folder not in f.parents:
            logger.warning(f"Skipping {f}: not under base folder {base_folder}")
            continue
        stack.append(f)
    stack.reverse()

    while stack:
        folder = stack.pop()
        files, dirs = collect_folder(folder)
        if files:
            attempt = 0
            while True:
                try:
                    title, res = _sync_one(base_folder, folder, files, catalog=catalog, pipeline=pipeline)
                    break
                except PermissionDenied as e:
                    attempt += 1
                    if attempt > MAX_AUTH_RETRIES:
                        raise
                    logger.warning(f"Permission denied syncing {folder} ({e}); logging out and retrying")
                    service.logout()
            summary.add(title, res)
        stack.extend(reversed(dirs))

    return summary
