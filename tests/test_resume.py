from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from photobatch.models import Album, MediaItemInfo, MediaItemsPage
from photobatch.photo_service import PermissionDenied, PhotoServiceError
from photobatch.resume import ResumeStore


@pytest.fixture
def store(tmp_path: Path) -> ResumeStore:
    return ResumeStore(
        album_medias_path=tmp_path / "album_medias.json",
        library_medias_path=tmp_path / "library_medias.json",
        library_token_path=tmp_path / "library_page_token.txt",
        out=io.StringIO(),
    )


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def _item(i: str) -> MediaItemInfo:
    return MediaItemInfo(id=i, filename=f"f{i}.jpg")


def test_scan_albums_writes_one_record_per_album(store, fake_service):
    a1 = fake_service.add_album(Album("One", "a1"), ("x.jpg",))
    a2 = fake_service.add_album(Album("Two", "a2"), ("y.jpg", "z.jpg"))

    res = store.scan_albums(fake_service, [a1, a2])

    rows = _lines(store.album_medias_path)
    assert [r["albumId"] for r in rows] == ["a1", "a2"]
    assert rows[1]["albumName"] == "Two"
    assert {f["filename"] for f in rows[1]["files"]} == {"y.jpg", "z.jpg"}
    assert res.recorded == 2


def test_scan_albums_resumes_without_duplicates(store, fake_service):
    a1 = fake_service.add_album(Album("One", "a1"))
    a2 = fake_service.add_album(Album("Two", "a2"))
    a3 = fake_service.add_album(Album("Three", "a3"))
    store.scan_albums(fake_service, [a1, a2])
    fake_service.retrieve_calls.clear()

    res = store.scan_albums(fake_service, [a1, a2, a3])

    assert fake_service.retrieve_calls == ["a3"]
    assert [r["albumId"] for r in _lines(store.album_medias_path)] == ["a1", "a2", "a3"]
    assert res.already_done == 2
    assert store.completed_album_ids() == {"a1", "a2", "a3"}


def test_scan_albums_leaves_failed_album_for_next_run(store, fake_service):
    a1 = fake_service.add_album(Album("One", "a1"))
    a2 = fake_service.add_album(Album("Two", "a2"))
    fake_service.retrieve_errors = {"a1": PhotoServiceError("flaky")}

    res = store.scan_albums(fake_service, [a1, a2])

    assert res.failed == ["a1"]
    assert store.completed_album_ids() == {"a2"}


def test_scan_albums_propagates_permission_denied(store, fake_service):
    a1 = fake_service.add_album(Album("One", "a1"))
    fake_service.retrieve_errors = {"a1": PermissionDenied("UNAUTHENTICATED")}

    with pytest.raises(PermissionDenied):
        store.scan_albums(fake_service, [a1])


def test_completed_album_ids_ignores_malformed_lines(store):
    store.album_medias_path.write_text(
        '{"albumName": "A", "albumId": "a1", "files": []}\n{broken\n',
        encoding="utf-8",
    )
    assert store.completed_album_ids() == {"a1"}


def test_scan_library_pages_until_done_and_clears_token(store, fake_service):
    fake_service.library_pages = {
        None: MediaItemsPage([_item("1"), _item("2")], "p2"),
        "p2": MediaItemsPage([_item("3")], None),
    }

    res = store.scan_library(fake_service)

    assert res.complete is True
    assert res.items == 3
    assert [r["id"] for r in _lines(store.library_medias_path)] == ["1", "2", "3"]
    assert not store.library_token_path.exists()


def test_scan_library_keeps_token_after_failure_and_resumes(store, fake_service):
    fake_service.library_pages = {
        None: MediaItemsPage([_item("1")], "p2"),
        "p2": PhotoServiceError("503"),
    }

    res = store.scan_library(fake_service)

    assert res.complete is False
    assert store.library_token_path.read_text(encoding="utf-8") == "p2"
    assert [r["id"] for r in _lines(store.library_medias_path)] == ["1"]

    fake_service.library_pages["p2"] = MediaItemsPage([_item("2")], "")
    fake_service.page_calls.clear()

    res = store.scan_library(fake_service)

    assert fake_service.page_calls == ["p2"]
    assert res.resumed_from == "p2"
    assert res.complete is True
    assert [r["id"] for r in _lines(store.library_medias_path)] == ["1", "2"]
    assert not store.library_token_path.exists()


def test_reconcile_reports_orphans(store):
    store.album_medias_path.write_text(
        json.dumps({"albumName": "A", "albumId": "a1", "files": [{"id": "1", "filename": "f1"}, {"id": "2", "filename": "f2"}]})
        + "\n",
        encoding="utf-8",
    )
    store.library_medias_path.write_text(
        "".join(json.dumps({"id": i, "filename": f"f{i}"}) + "\n" for i in ("1", "2", "3")),
        encoding="utf-8",
    )

    report = store.reconcile()

    assert report.to_dict() == {
        "totalAlbums": 1,
        "totalLibraryItems": 3,
        "totalUniqueItemsInAlbums": 2,
        "orphanCount": 1,
        "orphans": [{"id": "3", "filename": "f3"}],
    }


def test_reconcile_counts_replayed_page_once(store):
    store.library_medias_path.write_text(
        "".join(json.dumps({"id": i, "filename": f"f{i}"}) + "\n" for i in ("1", "2", "2", "3", "3")),
        encoding="utf-8",
    )

    report = store.reconcile()

    assert report.total_library_items == 3
    assert [o.id for o in report.orphans] == ["1", "2", "3"]


def test_reconcile_with_no_journals(store):
    report = store.reconcile()
    assert report.total_albums == 0
    assert report.orphan_count == 0


def test_reconcile_survives_torn_non_ascii_line(store: ResumeStore, tmp_path: Path):
    (tmp_path / "album_medias.json").write_text(
        json.dumps({"albumName": "A", "albumId": "a1", "files": [{"id": "1", "filename": "f1.jpg"}]}) + "\n",
        encoding="utf-8",
    )
    (tmp_path / "library_medias.json").write_bytes(
        b'{"id": "1", "filename": "f1.jpg"}\n{"id": "2", "filename": "caf\xc3\n{"id": "3", "filename": "f3.jpg"}\n'
    )

    report = store.reconcile()

    assert [o.id for o in report.orphans] == ["3"]
