from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol

from .models import Album, MediaItemInfo, MediaItemsPage


class PhotoServiceError(RuntimeError):
    pass


class PermissionDenied(PhotoServiceError):
    """
    The remote service rejected our credentials.

    Never retried where it is raised; the caller is expected to log out
    (dropping stored credentials) and try the unit of work again.
    """


_AUTH_MARKERS = ("UNAUTHENTICATED", "invalid_grant")


def is_authorization_error(exc: BaseException) -> bool:
    """
    True if `exc`, or anything in its cause/context chain, is an authorization failure.
    """
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        if isinstance(cur, PermissionDenied):
            return True
        text = str(cur)
        if any(marker in text for marker in _AUTH_MARKERS):
            return True
        cur = cur.__cause__ or cur.__context__
    return False


class PhotoService(Protocol):
    def get_all_albums(self) -> Iterable[Album]: ...

    def get_album(self, album_id: str) -> Album | None: ...

    def create_album(self, title: str) -> Album: ...

    def retrieve_files_from_album(self, album: Album) -> set[MediaItemInfo]: ...

    def upload_single_file(self, name: str, path: Path) -> str | None: ...

    def save_to_album(self, album: Album, tokens: list[str]) -> None: ...

    def list_media_items(self, page_token: str | None) -> MediaItemsPage: ...

    def logout(self) -> None: ...
