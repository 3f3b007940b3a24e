from __future__ import annotations

import os
import re
from pathlib import Path


_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]{3,4}$")
_LEADING_RE = re.compile(r"^/ *")
_TRAILING_RE = re.compile(r"/ *$")


def album_name_for(base_folder: str | Path, folder: str | Path) -> str:
    """
    Album title for `folder`, relative to `base_folder`.

    Path separators become " / " and underscores become spaces, so
    `/fotos/Diversas/2018/Casa_Natal` under `/fotos` is titled
    "Diversas / 2018 / Casa Natal".
    """
    base = os.path.abspath(str(base_folder)).rstrip("/")
    path = os.path.abspath(str(folder))
    if base and (path == base or path.startswith(base + "/")):
        path = path[len(base):]
    name = path.replace("_", " ")
    name = _TRAILING_RE.sub("", name)
    name = _LEADING_RE.sub("", name)
    return name.replace("/", " / ")


def media_name_for(path: str | Path) -> str:
    # This is also the filename sent on upload, so it is what later album listings report.
    name = _EXTENSION_RE.sub("", Path(path).name)
    return name.replace("_", " ")
