"""Utility helpers: file I/O and JSON reading.

Public helpers:
- save_text(path, content)
- read_text(path)
- read_lines_if_exists(path)
- append_lines(path, lines)
- read_json(path)
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Iterable, List
import json

from .context import VWError, MissingFileError


def save_text(path: str | Path, content: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")


def read_text(path: str | Path) -> str:
    p = Path(path)
    if not p.exists():
        raise MissingFileError(f"Required file not found: {path}")
    try:
        return p.read_text(encoding="utf-8")
    except Exception as e:
        raise VWError(f"Unable to read file {path}: {e}")


def read_lines_if_exists(path: str | Path) -> List[str]:
    """Return trimmed non-blank lines of a text file, or [] when it does not exist."""
    p = Path(path)
    if not p.exists():
        return []
    return [ln.strip() for ln in p.read_text(encoding="utf-8").splitlines() if ln.strip()]


def append_lines(path: str | Path, lines: Iterable[str]) -> int:
    items = [str(ln).strip() for ln in lines]
    if not items:
        return 0
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    # Keep the file newline-terminated before appending
    prefix = ""
    if p.exists() and p.stat().st_size > 0:
        with p.open("rb") as f:
            f.seek(-1, 2)
            if f.read(1) != b"\n":
                prefix = "\n"
    with p.open("a", encoding="utf-8") as f:
        f.write(prefix + "".join(f"{ln}\n" for ln in items))
    return len(items)


def read_json(path: str | Path) -> Any:
    text = read_text(path)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise VWError(f"Invalid JSON in {path}: {e}")
