from __future__ import annotations

import os
import shutil
from pathlib import Path


def write_text(path: Path, text: str) -> None:
    # Readers must never observe a half-written file.
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)


def file_length(path: Path) -> int:
    """Size of `path` in bytes; 0 when it does not exist (yet)."""
    try:
        return int(path.stat().st_size)
    except FileNotFoundError:
        return 0


def read_first_line(path: Path) -> str | None:
    with path.open("r", encoding="utf-8", errors="replace") as fp:
        line = fp.readline()
    if not line:
        return None
    return line.rstrip("\r\n")


def delete_recursive(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
