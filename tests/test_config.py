from __future__ import annotations

from pathlib import Path

import pytest

from photobatch.config import _clamp, _state_path, default_resize_workers, load_config


_ENV = [
    "PHOTOBATCH_STATE_DIR",
    "PHOTOBATCH_ALBUMS_CACHE",
    "PHOTOBATCH_RESIZE_WORKERS",
    "PHOTOBATCH_UPLOAD_WORKERS",
    "PHOTOBATCH_MAX_DIMENSION",
    "PHOTOBATCH_SAVE_BATCH_SIZE",
    "PHOTOBATCH_SAVE_RETRY_SECONDS",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for k in _ENV:
        monkeypatch.delenv(k, raising=False)


def test_clamp():
    assert _clamp(0, 1, 4) == 1
    assert _clamp(9, 1, 4) == 4
    assert _clamp(3, 1, 4) == 3


def test_state_path_joins_bare_names(tmp_path: Path):
    assert _state_path(tmp_path, "x.json") == (tmp_path / "x.json").resolve()
    assert _state_path(tmp_path, str(tmp_path / "sub" / "y.json")) == (tmp_path / "sub" / "y.json").resolve()


def test_default_resize_workers_leaves_a_core_free():
    assert default_resize_workers() >= 1


def test_load_config_defaults(tmp_path: Path):
    cfg = load_config(state_dir=str(tmp_path))
    assert cfg.state_dir == tmp_path.resolve()
    assert cfg.album_medias_path == tmp_path.resolve() / "album_medias.json"
    assert cfg.library_medias_path.name == "library_medias.json"
    assert cfg.library_token_path.name == "library_page_token.txt"
    assert cfg.albums_cache_path is None
    assert cfg.upload_workers == 1
    assert cfg.max_dimension == 4608
    assert cfg.save_batch_size == 10
    assert cfg.save_retry_seconds == 30
    assert cfg.save_attempts == 3
    assert cfg.album_list_attempts == 100
    assert cfg.poll_seconds == pytest.approx(0.1)
    assert cfg.join_timeout_seconds == 86400
    assert cfg.token_path.name == "token.json"


def test_load_config_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PHOTOBATCH_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("PHOTOBATCH_ALBUMS_CACHE", "cache.json")
    monkeypatch.setenv("PHOTOBATCH_RESIZE_WORKERS", "3")
    monkeypatch.setenv("PHOTOBATCH_MAX_DIMENSION", "2048")

    cfg = load_config()

    assert cfg.state_dir == (tmp_path / "state").resolve()
    assert cfg.state_dir.is_dir()
    assert cfg.albums_cache_path == (tmp_path / "state" / "cache.json").resolve()
    assert cfg.resize_workers == 3
    assert cfg.max_dimension == 2048


def test_explicit_args_beat_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PHOTOBATCH_RESIZE_WORKERS", "3")
    cfg = load_config(state_dir=str(tmp_path), resize_workers=5)
    assert cfg.resize_workers == 5


def test_worker_counts_are_clamped(tmp_path: Path):
    cfg = load_config(state_dir=str(tmp_path), resize_workers=0, upload_workers=0)
    assert cfg.resize_workers == 1
    assert cfg.upload_workers == 1
