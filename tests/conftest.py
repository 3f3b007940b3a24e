from __future__ import annotations

import io
import threading
import time
from pathlib import Path

import pytest
from rich.console import Console

from photobatch.models import Album, MediaCandidate, MediaItemInfo, MediaItemsPage
from photobatch.pipeline import SyncPipeline


class FakePhotoService:
    """
    In-memory PhotoService. Scripted errors are raised in order, one per call.
    """

    def __init__(
        self,
        albums: list[Album] | None = None,
        album_files: dict[str, set[MediaItemInfo]] | None = None,
        library_pages: dict[str | None, MediaItemsPage | Exception] | None = None,
    ):
        self.albums: dict[str, Album] = {a.id: a for a in albums or []}
        self.album_files = album_files or {}
        self.library_pages = library_pages or {}
        self.fail_uploads: set[str] = set()
        self.upload_delays: dict[str, float] = {}
        self.upload_errors: dict[str, Exception] = {}
        self.list_albums_errors: list[Exception] = []
        self.retrieve_errors: dict[str, Exception] = {}
        self.save_errors: list[Exception] = []

        self.upload_calls: list[tuple[str, Path]] = []
        self.save_calls: list[tuple[str, list[str]]] = []
        self.retrieve_calls: list[str] = []
        self.list_albums_calls = 0
        self.created: list[str] = []
        self.page_calls: list[str | None] = []
        self.logout_calls = 0
        self._lock = threading.Lock()

    def add_album(self, album: Album, filenames: tuple[str, ...] = ()) -> Album:
        self.albums[album.id] = album
        self.album_files[album.id] = {MediaItemInfo(id=f"{album.id}-{n}", filename=n) for n in filenames}
        return album

    def get_all_albums(self):
        self.list_albums_calls += 1
        if self.list_albums_errors:
            raise self.list_albums_errors.pop(0)
        return list(self.albums.values())

    def get_album(self, album_id):
        return self.albums.get(album_id)

    def create_album(self, title):
        album = Album(title=title, id=f"new-{len(self.created) + 1}", writable=True)
        self.albums[album.id] = album
        self.created.append(title)
        return album

    def retrieve_files_from_album(self, album):
        self.retrieve_calls.append(album.id)
        if album.id in self.retrieve_errors:
            raise self.retrieve_errors[album.id]
        return set(self.album_files.get(album.id, set()))

    def upload_single_file(self, name, path):
        with self._lock:
            self.upload_calls.append((name, Path(path)))
        if name in self.upload_delays:
            time.sleep(self.upload_delays[name])
        if name in self.upload_errors:
            raise self.upload_errors[name]
        if name in self.fail_uploads:
            return None
        return f"tok-{name}"

    def save_to_album(self, album, tokens):
        if self.save_errors:
            raise self.save_errors.pop(0)
        self.save_calls.append((album.id, list(tokens)))

    def list_media_items(self, page_token):
        self.page_calls.append(page_token)
        page = self.library_pages[page_token]
        if isinstance(page, Exception):
            raise page
        return page

    def logout(self):
        self.logout_calls += 1


class RecordingTranscoder:
    """
    Treats .jpg as eligible and "resizes" by copying to a sibling file.
    """

    def __init__(self, *, copy: bool = False):
        self.copy = copy
        self.calls: list[Path] = []
        self.outputs: list[Path] = []
        self._lock = threading.Lock()

    def is_resize_eligible(self, path: Path) -> bool:
        return path.suffix.lower() in (".jpg", ".jpeg")

    def resize(self, path: Path, max_dimension: int) -> Path:
        with self._lock:
            self.calls.append(path)
        if not self.copy:
            return path
        out = path.with_name(f"resized-{path.name}")
        out.write_bytes(path.read_bytes())
        with self._lock:
            self.outputs.append(out)
        return out


@pytest.fixture
def fake_service() -> FakePhotoService:
    return FakePhotoService()


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), force_terminal=False, width=200)


@pytest.fixture
def make_pipeline(console: Console):
    def _make(service, transcoder=None, **kwargs) -> SyncPipeline:
        kwargs.setdefault("resize_workers", 2)
        kwargs.setdefault("poll_seconds", 0.01)
        kwargs.setdefault("sleep", lambda s: None)
        return SyncPipeline(service, transcoder or RecordingTranscoder(), console=console, **kwargs)

    return _make


@pytest.fixture
def make_candidates(tmp_path: Path):
    def _make(names: list[str]) -> list[MediaCandidate]:
        out = []
        for n in names:
            p = tmp_path / n
            p.write_bytes(b"data-" + n.encode())
            out.append(MediaCandidate(display_name=Path(n).stem, source_file=p))
        return out

    return _make
