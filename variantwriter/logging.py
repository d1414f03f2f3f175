"""Logging helpers: crash tracing breadcrumbs, run log and warnings.

This module centralizes lightweight logging utilities used across the project.

Public API:
- crash_trace_file() -> Optional[str]
- breadcrumb(label: str) -> None
- log_warning(msg: str) -> None
- log_error_base(msg: str) -> None
- log_run(msg: str) -> None
- init_run_logs() -> None
"""
from __future__ import annotations
from typing import Optional
import os
import sys
import time
import threading


def crash_trace_file() -> Optional[str]:
    return os.getenv("VW_CRASH_TRACE_FILE")


def _verbose() -> bool:
    return os.getenv("VW_VERBOSE", "0") == "1"


def breadcrumb(label: str) -> None:
    path = crash_trace_file()
    try:
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
        tid = threading.get_ident()
        line = f"{ts} pid={os.getpid()} tid={tid} | {label}\n"
        if path:
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
                f.flush()
        # All breadcrumbs also land in the base run.log
        log_run(f"BREADCRUMB | {label}")
        if _verbose():
            sys.stderr.write(f"[crumb] {label}\n")
            sys.stderr.flush()
    except Exception:
        pass


def log_warning(msg: str) -> None:
    """Log a warning message to stdout and base run.log."""
    try:
        text = f"WARNING: {msg}"
        print(text)
        log_run(text)
    except Exception:
        pass


def log_error_base(msg: str) -> None:
    """Append an error message to the base directory (run_error.log)."""
    try:
        from .env import get_base_dir  # lazy import to avoid cycles
        base = get_base_dir()
        base.mkdir(parents=True, exist_ok=True)
        path = base / "run_error.log"
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
        with path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] {msg}\n")
        log_run(f"ERROR: {msg}")
    except Exception:
        pass
    try:
        sys.stderr.write(f"ERROR: {msg}\n")
    except Exception:
        pass


def log_run(msg: str) -> None:
    """Append a message to the unified base run.log file."""
    try:
        from .env import get_base_dir  # lazy import
        base = get_base_dir()
        base.mkdir(parents=True, exist_ok=True)
        path = base / "run.log"
        ts = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
        with path.open("a", encoding="utf-8") as f:
            f.write(f"[{ts}] {msg}\n")
    except Exception:
        pass


def init_run_logs() -> None:
    """Trim run.log to its most recent VW_RUN_LOG_MAX_LINES lines (default 5000)."""
    from .env import get_base_dir, env_int  # lazy import
    path = get_base_dir() / "run.log"
    if not path.exists():
        return
    keep = env_int("VW_RUN_LOG_MAX_LINES", 5000)
    try:
        lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
        if len(lines) > keep:
            path.write_text("".join(lines[-keep:]), encoding="utf-8")
    except Exception:
        pass
