"""Existing phrasings used for style grounding.

- existing_variants(key, content_root) -> lines already in the target file
- collect_siblings(key, content_root, max_exemplars) -> lines from sibling files
- sample_phrasings(key, content_root, n) -> first lines along the fallback chain
"""
from __future__ import annotations

from pathlib import Path
from typing import List

from .content_key import ContentKey
from .logging import breadcrumb as _breadcrumb
from .utils import read_lines_if_exists


def existing_variants(key: ContentKey, content_root: str | Path) -> List[str]:
    return read_lines_if_exists(Path(content_root) / key.to_file_path())


def collect_siblings(key: ContentKey, content_root: str | Path, max_exemplars: int) -> List[str]:
    """Non-blank lines from the other `*.txt` files next to the target, by file name."""
    if max_exemplars <= 0:
        return []
    root = Path(content_root)
    d = root / key.siblings_dir()
    if not d.is_dir():
        return []
    own = (root / key.to_file_path()).name
    lines: List[str] = []
    for f in sorted(d.glob("*.txt")):
        if f.name == own or not f.is_file():
            continue
        for ln in read_lines_if_exists(f):
            lines.append(ln)
            if len(lines) >= max_exemplars:
                return lines
    return lines


def sample_phrasings(key: str, content_root: str | Path, n: int) -> List[str]:
    if n <= 0:
        return []
    ck = ContentKey.parse(key)
    if not ck.is_valid:
        return []
    root = Path(content_root)
    for rel in ck.fallback_paths():
        lines = read_lines_if_exists(root / rel)
        if lines:
            _breadcrumb(f"exemplars:sample {key} <- {rel}")
            return lines[:n]
    return []
