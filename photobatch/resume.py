from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, TextIO

from .journal import append_jsonl, load_token, read_jsonl, save_token
from .logging_utils import get_logger
from .models import Album, AlbumFileRecord, MediaItemInfo
from .photo_service import PermissionDenied, PhotoService, PhotoServiceError


@dataclass
class AlbumScanResult:
    total_albums: int
    already_done: int = 0
    recorded: int = 0
    failed: list[str] = field(default_factory=list)


@dataclass
class LibraryScanResult:
    resumed_from: str | None
    pages: int = 0
    items: int = 0
    complete: bool = False


@dataclass
class OrphanReport:
    total_albums: int
    total_library_items: int
    total_unique_items_in_albums: int
    orphans: list[MediaItemInfo]

    @property
    def orphan_count(self) -> int:
        return len(self.orphans)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalAlbums": self.total_albums,
            "totalLibraryItems": self.total_library_items,
            "totalUniqueItemsInAlbums": self.total_unique_items_in_albums,
            "orphanCount": self.orphan_count,
            "orphans": [{"id": o.id, "filename": o.filename} for o in self.orphans],
        }


class ResumeStore:
    """
    Crash-safe journals for the full-library orphan scan.

    - album journal: one AlbumFileRecord line per finished album; an albumId
      that is present is never fetched again
    - library journal: every library item, appended page by page
    - token file: the page token to resume from; absent once the scan is complete

    Page items are appended before the token moves forward, so a crash can
    replay at most one page and never skips one.
    """

    def __init__(
        self,
        *,
        album_medias_path: Path,
        library_medias_path: Path,
        library_token_path: Path,
        logger: logging.Logger | None = None,
        out: TextIO | None = None,
    ):
        self.album_medias_path = album_medias_path
        self.library_medias_path = library_medias_path
        self.library_token_path = library_token_path
        self.logger = get_logger(logger)
        self.out = out if out is not None else sys.stdout

    def _say(self, s: str, *, end: str = "\n") -> None:
        self.out.write(s + end)
        self.out.flush()

    def completed_album_ids(self) -> set[str]:
        ids: set[str] = set()
        for rec in read_jsonl(self.album_medias_path, logger=self.logger):
            album_id = rec.get("albumId")
            if album_id:
                ids.add(str(album_id))
        return ids

    def scan_albums(self, service: PhotoService, albums: Iterable[Album]) -> AlbumScanResult:
        albums = list(albums)
        done = self.completed_album_ids()
        result = AlbumScanResult(total_albums=len(albums))
        self._say(f"Processing albums (resuming from {len(done)} already processed)...")

        for n, album in enumerate(albums, 1):
            if album.id in done:
                result.already_done += 1
                continue
            self._say(f"\rProcessing album {n}/{len(albums)}: {album.title}", end="")
            try:
                files = service.retrieve_files_from_album(album)
            except PermissionDenied:
                raise
            except PhotoServiceError as e:
                self.logger.error(f"Error retrieving files from album {album.title}: {e}")
                result.failed.append(album.id)
                continue
            rec = AlbumFileRecord(
                album_name=album.title,
                album_id=album.id,
                files=sorted(files, key=lambda m: (m.filename, m.id)),
            )
            append_jsonl(self.album_medias_path, [rec.to_record()])
            done.add(album.id)
            result.recorded += 1

        self._say("\nFinished processing albums.")
        return result

    def scan_library(self, service: PhotoService) -> LibraryScanResult:
        token = load_token(self.library_token_path)
        result = LibraryScanResult(resumed_from=token)
        self._say(f"Processing library items (resuming with token: {token or 'START'})...")

        while True:
            try:
                page = service.list_media_items(token)
            except PermissionDenied:
                raise
            except PhotoServiceError as e:
                self.logger.error(f"Error listing library items (token {token or 'START'}): {e}")
                self._say("")
                return result

            if page.items:
                append_jsonl(self.library_medias_path, (m.to_record() for m in page.items))
            token = page.next_page_token or None
            save_token(self.library_token_path, token)

            result.pages += 1
            result.items += len(page.items)
            self._say(f"\rProcessed {result.items} library items...", end="")
            if token is None:
                break

        result.complete = True
        self._say("\nFinished processing library items.")
        return result

    def reconcile(self) -> OrphanReport:
        in_albums: set[str] = set()
        album_count = 0
        for rec in read_jsonl(self.album_medias_path, logger=self.logger):
            try:
                entry = AlbumFileRecord.from_record(rec)
            except (KeyError, TypeError, ValueError):
                self.logger.warning(f"Skipping malformed album record: {rec!r}")
                continue
            album_count += 1
            in_albums.update(f.id for f in entry.files)

        seen: set[str] = set()
        orphans: list[MediaItemInfo] = []
        for rec in read_jsonl(self.library_medias_path, logger=self.logger):
            try:
                item = MediaItemInfo.from_record(rec)
            except (KeyError, TypeError, ValueError):
                self.logger.warning(f"Skipping malformed library record: {rec!r}")
                continue
            # A page replayed after a crash shows up twice in the journal.
            if item.id in seen:
                continue
            seen.add(item.id)
            if item.id not in in_albums:
                orphans.append(item)

        return OrphanReport(
            total_albums=album_count,
            total_library_items=len(seen),
            total_unique_items_in_albums=len(in_albums),
            orphans=orphans,
        )
