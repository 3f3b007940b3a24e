from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Iterator

from .logging_utils import get_logger


def read_jsonl(path: Path, *, logger: logging.Logger | None = None) -> Iterator[dict[str, Any]]:
    """
    Yield one dict per line of a JSON-lines file.

    A missing file yields nothing. Blank lines are ignored, unparsable lines
    are logged and skipped.
    """
    logger = get_logger(logger)
    if not path.exists():
        return
    with path.open("rb") as f:
        for lineno, raw in enumerate(f, 1):
            raw = raw.strip()
            if not raw:
                continue
            try:
                rec = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping malformed line {lineno} in {path}: {e}")
                continue
            if not isinstance(rec, dict):
                logger.warning(f"Skipping non-object line {lineno} in {path}")
                continue
            yield rec


def append_jsonl(path: Path, records: Iterable[dict[str, Any]]) -> int:
    """
    Append records and fsync before returning, so a crash afterwards never loses them.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("a", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
            n += 1
        f.flush()
        os.fsync(f.fileno())
    return n


def write_jsonl(path: Path, records: Iterable[dict[str, Any]]) -> int:
    """
    Replace the whole file atomically.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    n = 0
    with tmp.open("w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
            n += 1
        f.flush()
        os.fsync(f.fileno())
    tmp.replace(path)
    return n


def load_token(path: Path) -> str | None:
    if not path.exists():
        return None
    token = path.read_text(encoding="utf-8").strip()
    return token or None


def save_token(path: Path, token: str | None) -> None:
    # No token means the scan is complete, which is recorded by the file's absence.
    if not token:
        path.unlink(missing_ok=True)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(token, encoding="utf-8")
    tmp.replace(path)
