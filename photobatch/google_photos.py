from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import Any, Callable, Iterator

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .logging_utils import get_logger
from .models import Album, MediaItemInfo, MediaItemsPage
from .photo_service import PermissionDenied, PhotoServiceError, is_authorization_error


API_ROOT = "https://photoslibrary.googleapis.com/v1"
SCOPES = ["https://www.googleapis.com/auth/photoslibrary"]

ALBUM_PAGE_SIZE = 50
MEDIA_PAGE_SIZE = 100
ADD_TO_ALBUM_BATCH_SIZE = 50


def load_credentials(
    *,
    credentials_path: Path,
    token_path: Path,
    logger: logging.Logger | None = None,
) -> Credentials:
    """
    Stored user credentials, refreshed if needed; otherwise run the browser consent flow.

    The authorized-user token is written to `token_path` so later runs skip the flow.
    """
    logger = get_logger(logger)
    creds: Credentials | None = None
    if token_path.exists():
        try:
            creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
        except ValueError as e:
            logger.warning(f"Stored token {token_path} is unusable ({e}); re-authenticating")
            creds = None

    if creds is not None and creds.valid:
        return creds

    if creds is not None and creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except RefreshError as e:
            raise PermissionDenied(
                f"Stored credentials were rejected while refreshing.\n"
                f"  Error: {e}\n"
                f"  Try: photobatch logout, then run the command again to re-authorize"
            ) from e
    else:
        if not credentials_path.exists():
            raise PhotoServiceError(
                f"OAuth client secrets not found:\n"
                f"  Path: {credentials_path}\n"
                f"  Try: Download an OAuth client (Desktop app) JSON from the Google Cloud console\n"
                f"       and save it there, or pass --credentials"
            )
        logger.info("Opening browser for Google Photos authorization")
        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
        creds = flow.run_local_server(port=0)

    token_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = token_path.with_suffix(token_path.suffix + ".tmp")
    tmp.write_text(creds.to_json(), encoding="utf-8")
    tmp.replace(token_path)
    return creds


def _album_from_json(d: dict[str, Any]) -> Album:
    try:
        return Album(title=str(d.get("title", "")), id=str(d["id"]), writable=bool(d.get("isWriteable", False)))
    except (KeyError, TypeError, AttributeError) as e:
        raise PhotoServiceError(f"Unexpected album in response: {d!r}") from e


def _item_from_json(d: dict[str, Any]) -> MediaItemInfo:
    try:
        return MediaItemInfo(id=str(d["id"]), filename=str(d.get("filename", "")), base_url=d.get("baseUrl"))
    except (KeyError, TypeError, AttributeError) as e:
        raise PhotoServiceError(f"Unexpected media item in response: {d!r}") from e


class GooglePhotosAPI:
    """
    PhotoService over the Google Photos Library REST API.

    Every HTTP failure is translated here: auth problems become PermissionDenied,
    anything else PhotoServiceError. Nothing upstream looks at error text.
    """

    def __init__(
        self,
        *,
        credentials_path: Path,
        credentials_dir: Path,
        session: requests.Session | None = None,
        list_attempts: int = 100,
        create_attempts: int = 3,
        create_retry_seconds: float = 30.0,
        timeout_seconds: float = 120.0,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.credentials_path = credentials_path
        self.credentials_dir = credentials_dir
        self._session = session
        self.list_attempts = max(1, list_attempts)
        self.create_attempts = max(1, create_attempts)
        self.create_retry_seconds = create_retry_seconds
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger(logger)
        self._sleep = sleep

    @property
    def token_path(self) -> Path:
        return self.credentials_dir / "token.json"

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            creds = load_credentials(
                credentials_path=self.credentials_path,
                token_path=self.token_path,
                logger=self.logger,
            )
            self._session = AuthorizedSession(creds)
        return self._session

    def logout(self) -> None:
        self.logger.info(f"Removing stored credentials in {self.credentials_dir}")
        if self.credentials_dir.exists():
            shutil.rmtree(self.credentials_dir)
        if self._session is not None:
            self._session.close()
        self._session = None

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        if not url.startswith("http"):
            url = API_ROOT + url
        kwargs.setdefault("timeout", self.timeout_seconds)
        try:
            resp = self.session.request(method, url, **kwargs)
        except RefreshError as e:
            raise PermissionDenied(f"Google rejected the stored credentials: {e}") from e
        except requests.RequestException as e:
            if is_authorization_error(e):
                raise PermissionDenied(f"{method} {url} failed: {e}") from e
            raise PhotoServiceError(f"{method} {url} failed: {type(e).__name__}: {e}") from e

        if resp.status_code in (401, 403) or (resp.status_code >= 400 and "UNAUTHENTICATED" in resp.text):
            raise PermissionDenied(
                f"{method} {url} was refused ({resp.status_code}).\n"
                f"  Response: {resp.text[:500]}\n"
                f"  Try: photobatch logout, then re-authorize"
            )
        if resp.status_code >= 400:
            raise PhotoServiceError(f"{method} {url} failed ({resp.status_code}): {resp.text[:500]}")
        return resp

    def _json(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        resp = self._request(method, url, **kwargs)
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            raise PhotoServiceError(f"{method} {url} returned a non-JSON body: {resp.text[:200]}") from e
        if not isinstance(data, dict):
            raise PhotoServiceError(f"{method} {url} returned unexpected JSON: {resp.text[:200]}")
        return data

    def get_all_albums(self) -> Iterator[Album]:
        token: str | None = None
        while True:
            params: dict[str, Any] = {"pageSize": ALBUM_PAGE_SIZE}
            if token:
                params["pageToken"] = token
            data = self._json("GET", "/albums", params=params)
            for d in data.get("albums", []):
                yield _album_from_json(d)
            token = data.get("nextPageToken")
            if not token:
                return

    def get_album(self, album_id: str) -> Album | None:
        try:
            return _album_from_json(self._json("GET", f"/albums/{album_id}"))
        except PermissionDenied:
            raise
        except PhotoServiceError as e:
            self.logger.error(f"Cannot get album {album_id}: {e}")
            return None

    def create_album(self, title: str) -> Album:
        last_error: PhotoServiceError | None = None
        for attempt in range(1, self.create_attempts + 1):
            try:
                data = self._json("POST", "/albums", json={"album": {"title": title}})
            except PermissionDenied:
                raise
            except PhotoServiceError as e:
                last_error = e
                if attempt < self.create_attempts:
                    self.logger.error(f"Error creating album {title}, retrying after {self.create_retry_seconds:.0f}s: {e}")
                    self._sleep(self.create_retry_seconds)
                continue
            album = _album_from_json(data)
            # Albums we create are always ours to add to.
            return Album(title=album.title or title, id=album.id, writable=True)
        raise PhotoServiceError(f"Could not create album {title} after {self.create_attempts} attempts") from last_error

    def _search_album(self, album_id: str) -> set[MediaItemInfo]:
        items: set[MediaItemInfo] = set()
        token: str | None = None
        while True:
            body: dict[str, Any] = {"albumId": album_id, "pageSize": MEDIA_PAGE_SIZE}
            if token:
                body["pageToken"] = token
            data = self._json("POST", "/mediaItems:search", json=body)
            items.update(_item_from_json(d) for d in data.get("mediaItems", []))
            token = data.get("nextPageToken")
            if not token:
                return items

    def retrieve_files_from_album(self, album: Album) -> set[MediaItemInfo]:
        last_error: PhotoServiceError | None = None
        for attempt in range(1, self.list_attempts + 1):
            try:
                return self._search_album(album.id)
            except PermissionDenied:
                raise
            except PhotoServiceError as e:
                last_error = e
                self.logger.warning(f"Listing album {album.title} failed: {e} (retry {attempt})")
        raise PhotoServiceError(f"Couldn't retrieve medias from album {album.title}") from last_error

    def upload_single_file(self, name: str, path: Path) -> str | None:
        self.logger.debug(f"Uploading {name}")
        headers = {
            "Content-type": "application/octet-stream",
            "X-Goog-Upload-File-Name": name,
            "X-Goog-Upload-Protocol": "raw",
        }
        try:
            with path.open("rb") as f:
                resp = self._request("POST", "/uploads", headers=headers, data=f)
        except PermissionDenied:
            raise
        except (PhotoServiceError, OSError) as e:
            self.logger.error(f"Can't upload file {path}: {e}")
            return None
        token = resp.text.strip()
        if not token:
            self.logger.error(f"Can't upload file {path}: empty upload token")
            return None
        self.logger.debug(f"Uploaded {name}")
        return token

    def save_to_album(self, album: Album, tokens: list[str]) -> None:
        if not tokens:
            return
        body = {
            "albumId": album.id,
            "newMediaItems": [{"simpleMediaItem": {"uploadToken": t}} for t in tokens],
        }
        data = self._json("POST", "/mediaItems:batchCreate", json=body)
        for res in data.get("newMediaItemResults", []):
            status = res.get("status") or {}
            code = status.get("code", 0)
            if code:
                self.logger.error(f"Error setting item to album: {code} - {status.get('message', '')}")

    def list_media_items(self, page_token: str | None) -> MediaItemsPage:
        params: dict[str, Any] = {"pageSize": MEDIA_PAGE_SIZE}
        if page_token:
            params["pageToken"] = page_token
        data = self._json("GET", "/mediaItems", params=params)
        return MediaItemsPage(
            items=[_item_from_json(d) for d in data.get("mediaItems", [])],
            next_page_token=data.get("nextPageToken") or None,
        )

    def get_media_item(self, media_id: str) -> MediaItemInfo:
        return _item_from_json(self._json("GET", f"/mediaItems/{media_id}"))

    def batch_add_media_items(self, album_id: str, media_ids: list[str]) -> None:
        for start in range(0, len(media_ids), ADD_TO_ALBUM_BATCH_SIZE):
            chunk = media_ids[start : start + ADD_TO_ALBUM_BATCH_SIZE]
            self._json("POST", f"/albums/{album_id}:batchAddMediaItems", json={"mediaItemIds": chunk})

    def update_media_item_description(self, media_id: str, description: str) -> MediaItemInfo:
        data = self._json(
            "PATCH",
            f"/mediaItems/{media_id}",
            params={"updateMask": "description"},
            json={"description": description},
        )
        return _item_from_json(data)

    def download_media_item(self, item: MediaItemInfo, dest_dir: Path) -> Path:
        if not item.base_url:
            raise PhotoServiceError(f"Media item {item.id} has no download URL")
        dest_dir.mkdir(parents=True, exist_ok=True)
        out = dest_dir / Path(item.filename or item.id).name
        tmp = out.with_suffix(out.suffix + ".tmp")
        try:
            with requests.get(item.base_url + "=d", stream=True, timeout=self.timeout_seconds) as resp:
                resp.raise_for_status()
                with tmp.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=1024 * 1024):
                        f.write(chunk)
        except requests.RequestException as e:
            tmp.unlink(missing_ok=True)
            raise PhotoServiceError(f"Download of {item.filename} failed: {e}") from e
        tmp.replace(out)
        return out
