"""Archive records and content-file output.

Every attempt, successful or not, leaves an archive record at

    <archive_dir>/<yyyy>/<mm>/<dd>/<epoch_ms>_<hash>.json

where <hash> is djb2 over "<sequenceId>:<messageId>:<contentKey>".
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .logging import breadcrumb as _breadcrumb
from .utils import append_lines, save_text

_MASK64 = (1 << 64) - 1


def djb2_hash(s: str) -> str:
    """djb2 over UTF-16 code units, wrapped to a signed 64-bit int; absolute value in decimal."""
    data = s.encode("utf-16-le")
    h = 5381
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) + h + unit) & _MASK64
    if h >= 1 << 63:
        h -= 1 << 64
    return str(abs(h))


def target_hash(sequence_id: str, message_id: int, content_key: Optional[str]) -> str:
    return djb2_hash(f"{sequence_id}:{message_id}:{content_key or 'unknown.key'}")


def build_archive_record(
    *,
    target: Dict[str, Any],
    config: Dict[str, Any],
    state: Optional[Dict[str, Any]] = None,
    path: Optional[Dict[str, Any]] = None,
    resolution: Optional[Dict[str, Any]] = None,
    context: Optional[List[Dict[str, Any]]] = None,
    exemplars: Optional[Dict[str, Any]] = None,
    prompt: Optional[Dict[str, Any]] = None,
    request: Optional[Dict[str, Any]] = None,
    response: Optional[Dict[str, Any]] = None,
    accepted: Optional[List[str]] = None,
    write_mode: bool = False,
    environment: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "timestamp": (now or datetime.now()).isoformat(),
        "target": target,
        "config": config,
        "state": state,
        "path": path,
        "resolution": resolution,
        "context": context or [],
        "exemplars": exemplars or {},
        "prompt": prompt,
        "request": request,
        "response": response,
        "acceptedVariants": accepted or [],
        "writeMode": write_mode,
    }
    if environment is not None:
        record["environment"] = environment
    if error is not None:
        record["error"] = error
    return record


def archive_path(archive_dir: str | Path, record: Dict[str, Any], now: Optional[datetime] = None) -> Path:
    now = now or datetime.now()
    target = record.get("target") or {}
    h = target_hash(str(target.get("sequenceId")), target.get("messageId"), target.get("contentKey"))
    day_dir = Path(archive_dir) / f"{now.year:04d}" / f"{now.month:02d}" / f"{now.day:02d}"
    return day_dir / f"{int(now.timestamp() * 1000)}_{h}.json"


def write_archive(archive_dir: str | Path, record: Dict[str, Any], now: Optional[datetime] = None) -> Path:
    p = archive_path(archive_dir, record, now)
    save_text(p, json.dumps(record, ensure_ascii=False, indent=2, default=str))
    _breadcrumb(f"archive:written {p}")
    return p


def append_variants(content_file: str | Path, variants: Iterable[str]) -> int:
    return append_lines(content_file, variants)
