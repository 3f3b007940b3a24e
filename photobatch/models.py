from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Album:
    title: str
    id: str
    writable: bool = True

    def to_record(self) -> dict[str, Any]:
        return {"title": self.title, "id": self.id, "writable": self.writable}

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "Album":
        writable = rec.get("writable", rec.get("isWriteable", False))
        return cls(title=str(rec["title"]), id=str(rec["id"]), writable=bool(writable))


@dataclass(frozen=True)
class MediaCandidate:
    display_name: str
    source_file: Path


@dataclass(frozen=True, order=True)
class UploadedMedia:
    display_name: str
    upload_token: str = field(compare=False)
    source_file: Path = field(compare=False)


@dataclass(frozen=True)
class MediaItemInfo:
    id: str
    filename: str
    base_url: str | None = field(default=None, compare=False)

    def to_record(self) -> dict[str, Any]:
        rec: dict[str, Any] = {"id": self.id, "filename": self.filename}
        if self.base_url:
            rec["baseUrl"] = self.base_url
        return rec

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "MediaItemInfo":
        return cls(id=str(rec["id"]), filename=str(rec.get("filename", "")), base_url=rec.get("baseUrl"))


@dataclass(frozen=True)
class MediaItemsPage:
    items: list[MediaItemInfo]
    next_page_token: str | None = None


@dataclass(frozen=True)
class AlbumFileRecord:
    album_name: str
    album_id: str
    files: list[MediaItemInfo]

    def to_record(self) -> dict[str, Any]:
        return {
            "albumName": self.album_name,
            "albumId": self.album_id,
            "files": [{"id": f.id, "filename": f.filename} for f in self.files],
        }

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> "AlbumFileRecord":
        return cls(
            album_name=str(rec.get("albumName", "")),
            album_id=str(rec["albumId"]),
            files=[MediaItemInfo.from_record(f) for f in rec.get("files") or []],
        )
