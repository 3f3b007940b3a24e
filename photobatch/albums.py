from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import TextIO

from .journal import append_jsonl, read_jsonl, write_jsonl
from .logging_utils import get_logger
from .models import Album
from .photo_service import PermissionDenied, PhotoService, PhotoServiceError


class AlbumCatalog:
    """
    Album title -> Album for one run.

    The full album list is loaded lazily on first lookup, either from the
    JSON-lines cache file (when configured and present) or from the service.
    A live load rewrites the cache; albums created afterwards are appended to it.
    """

    def __init__(
        self,
        service: PhotoService,
        *,
        cache_path: Path | None = None,
        skip_album_load: bool = False,
        fixed_album_id: str | None = None,
        max_attempts: int = 100,
        logger: logging.Logger | None = None,
        out: TextIO | None = None,
    ):
        self.service = service
        self.cache_path = cache_path
        self.skip_album_load = skip_album_load
        self.fixed_album_id = fixed_album_id
        self.max_attempts = max(1, max_attempts)
        self.logger = get_logger(logger)
        self.out = out if out is not None else sys.stdout
        self._albums: dict[str, Album] | None = None

    def _mark(self, s: str) -> None:
        self.out.write(s)
        self.out.flush()

    def _load_cache(self, cache_path: Path) -> dict[str, Album] | None:
        self.logger.info(f"Loading albums from cache file: {cache_path}")
        t0 = time.monotonic()
        albums: dict[str, Album] = {}
        try:
            for rec in read_jsonl(cache_path, logger=self.logger):
                try:
                    album = Album.from_record(rec)
                except (KeyError, TypeError, ValueError):
                    self.logger.warning(f"Failed to parse album line from cache: {rec!r}")
                    continue
                albums[album.title] = album
        except OSError as e:
            self.logger.error(f"Error reading albums from cache {cache_path}: {e}")
            return None
        self._mark(f" {len(albums)} albums loaded from cache ({int((time.monotonic() - t0) * 1000)} ms)\n")
        return albums

    def _save_cache(self, cache_path: Path, albums: dict[str, Album]) -> None:
        self.logger.info(f"Saving albums to cache file: {cache_path}")
        try:
            write_jsonl(cache_path, (a.to_record() for a in albums.values()))
        except OSError as e:
            self.logger.error(f"Error writing albums to cache {cache_path}: {e}")

    def _append_cache(self, album: Album) -> None:
        if self.cache_path is None:
            return
        self.logger.info(f"Appending album {album.title} to cache file: {self.cache_path}")
        try:
            append_jsonl(self.cache_path, [album.to_record()])
        except OSError as e:
            self.logger.error(f"Error appending album to cache {self.cache_path}: {e}")

    def list_all(self) -> dict[str, Album]:
        if self.cache_path is not None and self.cache_path.exists():
            cached = self._load_cache(self.cache_path)
            if cached is not None:
                return cached

        self.logger.info("Loading albums from the photo service")
        t0 = time.monotonic()
        albums: dict[str, Album] = {}
        last_error: PhotoServiceError | None = None
        self._mark("Loading albums ")
        for attempt in range(1, self.max_attempts + 1):
            albums = {}
            try:
                for i, album in enumerate(self.service.get_all_albums(), 1):
                    if i % 100 == 0:
                        self._mark(".")
                    albums[album.title] = album
                break
            except PermissionDenied:
                self._mark("\n")
                raise
            except PhotoServiceError as e:
                last_error = e
                self.logger.debug(f"Album listing attempt {attempt}/{self.max_attempts} failed: {e}")
                self._mark("x")
        else:
            self._mark("\n")
            raise PhotoServiceError(
                f"Could not list albums after {self.max_attempts} attempts.\n"
                f"  Last error: {last_error}\n"
                f"  Try: Check network connectivity and retry, or pass --albums-cache to reuse a saved list"
            ) from last_error

        if self.cache_path is not None:
            self._save_cache(self.cache_path, albums)

        self._mark(f" {len(albums)} albums loaded ({int((time.monotonic() - t0) * 1000)} ms)\n")
        return albums

    def _ensure_loaded(self) -> dict[str, Album]:
        if self._albums is None:
            self._albums = {} if self.skip_album_load else self.list_all()
        return self._albums

    def get(self, title: str) -> Album | None:
        if self.fixed_album_id is not None:
            album = self.service.get_album(self.fixed_album_id)
            if self._albums is None:
                self._albums = {}
            if album is not None:
                self._albums[title] = album
            return album
        return self._ensure_loaded().get(title)

    def create(self, title: str) -> Album:
        self.logger.info(f"Creating new album {title}")
        albums = self._ensure_loaded()
        album = self.service.create_album(title)
        albums[title] = album
        self._append_cache(album)
        return album

    def get_or_create(self, title: str) -> Album:
        album = self.get(title)
        if album is None:
            album = self.create(title)
        return album

    def __len__(self) -> int:
        return len(self._albums or {})
