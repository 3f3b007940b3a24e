from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
import multiprocessing


def _expand(p: str) -> Path:
    return Path(os.path.expanduser(p)).resolve()


def _cpu_count() -> int:
    try:
        return multiprocessing.cpu_count()
    except NotImplementedError:
        return 2


def _clamp(n: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, n))


def _state_path(state_dir: Path, value: str) -> Path:
    # Bare file names live in the state dir; anything with a directory part is taken as given.
    p = Path(os.path.expanduser(value))
    if not p.is_absolute() and p.parent == Path("."):
        p = state_dir / p
    return p.resolve()


def default_resize_workers() -> int:
    return max(1, _cpu_count() - 1)


@dataclass(frozen=True)
class Config:
    state_dir: Path

    album_medias_path: Path
    library_medias_path: Path
    library_token_path: Path
    albums_cache_path: Path | None

    credentials_path: Path
    credentials_dir: Path

    resize_workers: int
    upload_workers: int
    max_dimension: int

    save_batch_size: int
    save_retry_seconds: float
    save_attempts: int
    album_list_attempts: int

    poll_seconds: float
    join_timeout_seconds: float

    @property
    def token_path(self) -> Path:
        return self.credentials_dir / "token.json"


def load_config(
    *,
    state_dir: str | None = None,
    album_medias: str | None = None,
    library_medias: str | None = None,
    library_token: str | None = None,
    albums_cache: str | None = None,
    credentials: str | None = None,
    credentials_dir: str | None = None,
    resize_workers: int | None = None,
    upload_workers: int | None = None,
    max_dimension: int | None = None,
    save_batch_size: int | None = None,
    save_retry_seconds: float | None = None,
    save_attempts: int | None = None,
    album_list_attempts: int | None = None,
    poll_seconds: float | None = None,
    join_timeout_seconds: float | None = None,
) -> Config:
    env = os.environ

    state_dir = state_dir or env.get("PHOTOBATCH_STATE_DIR", ".")
    state = _expand(state_dir)

    album_medias = album_medias or env.get("PHOTOBATCH_ALBUM_MEDIAS", "album_medias.json")
    library_medias = library_medias or env.get("PHOTOBATCH_LIBRARY_MEDIAS", "library_medias.json")
    library_token = library_token or env.get("PHOTOBATCH_LIBRARY_TOKEN", "library_page_token.txt")

    # The album cache is opt-in; an empty value disables it.
    albums_cache = albums_cache if albums_cache is not None else env.get("PHOTOBATCH_ALBUMS_CACHE", "")

    credentials = credentials or env.get("PHOTOBATCH_CREDENTIALS", "credentials.json")
    credentials_dir = credentials_dir or env.get("PHOTOBATCH_CREDENTIALS_DIR", "~/.photobatch/credentials")

    resize_workers = int(
        resize_workers
        if resize_workers is not None
        else env.get("PHOTOBATCH_RESIZE_WORKERS", str(default_resize_workers()))
    )
    upload_workers = int(
        upload_workers if upload_workers is not None else env.get("PHOTOBATCH_UPLOAD_WORKERS", "1")
    )
    max_dimension = int(
        max_dimension if max_dimension is not None else env.get("PHOTOBATCH_MAX_DIMENSION", "4608")
    )

    save_batch_size = int(
        save_batch_size if save_batch_size is not None else env.get("PHOTOBATCH_SAVE_BATCH_SIZE", "10")
    )
    save_retry_seconds = float(
        save_retry_seconds
        if save_retry_seconds is not None
        else env.get("PHOTOBATCH_SAVE_RETRY_SECONDS", "30")
    )
    save_attempts = int(
        save_attempts if save_attempts is not None else env.get("PHOTOBATCH_SAVE_ATTEMPTS", "3")
    )
    album_list_attempts = int(
        album_list_attempts
        if album_list_attempts is not None
        else env.get("PHOTOBATCH_ALBUM_LIST_ATTEMPTS", "100")
    )

    poll_seconds = float(
        poll_seconds if poll_seconds is not None else env.get("PHOTOBATCH_POLL_SECONDS", "0.1")
    )
    join_timeout_seconds = float(
        join_timeout_seconds
        if join_timeout_seconds is not None
        else env.get("PHOTOBATCH_JOIN_TIMEOUT_SECONDS", str(24 * 60 * 60))
    )

    cfg = Config(
        state_dir=state,
        album_medias_path=_state_path(state, album_medias),
        library_medias_path=_state_path(state, library_medias),
        library_token_path=_state_path(state, library_token),
        albums_cache_path=_state_path(state, albums_cache) if albums_cache.strip() else None,
        credentials_path=_state_path(state, credentials),
        credentials_dir=_expand(credentials_dir),
        resize_workers=_clamp(resize_workers, 1, 64),
        upload_workers=_clamp(upload_workers, 1, 16),
        max_dimension=max(1, max_dimension),
        save_batch_size=_clamp(save_batch_size, 1, 50),
        save_retry_seconds=max(0.0, save_retry_seconds),
        save_attempts=max(1, save_attempts),
        album_list_attempts=max(1, album_list_attempts),
        poll_seconds=max(0.01, poll_seconds),
        join_timeout_seconds=join_timeout_seconds,
    )

    cfg.state_dir.mkdir(parents=True, exist_ok=True)
    return cfg
