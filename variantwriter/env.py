"""Environment helpers for VariantWriter.

Centralizes reading environment variables, resolving project locations,
masking secrets for logging, normalizing base URLs, and capturing a
program environment snapshot for archive records.
"""
from __future__ import annotations

import os
import re
from typing import Optional, Dict, Any, List, Tuple
from pathlib import Path

from dotenv import load_dotenv


def load_env() -> None:
    """Load environment variables from a local .env file if present.

    override=True lets the local .env win over lingering shell state during
    development.
    """
    load_dotenv(override=True)


def env_str(name: str) -> Optional[str]:
    val = os.getenv(name)
    if val is None or str(val).strip() == "":
        return None
    return val


def env_int(name: str, default: int) -> int:
    try:
        v = int(os.getenv(name, str(default)))
        if v <= 0:
            return default
        return v
    except Exception:
        return default


# ---------------------------
# Path resolution for configurable project directories
# ---------------------------

def _as_path(val: Optional[str]) -> Optional[Path]:
    if val is None or str(val).strip() == "":
        return None
    return Path(val)


def _under_base(env_name: str, default_rel: str) -> Path:
    base = get_base_dir()
    p = _as_path(env_str(env_name))
    if p is None:
        return base / default_rel
    return p if p.is_absolute() else (base / p)


def get_base_dir() -> Path:
    """Resolve the project base directory.

    Env: VW_BASE_DIR
    Default: current working directory
    """
    base = env_str("VW_BASE_DIR")
    if base:
        p = Path(base)
        return p if p.is_absolute() else (Path.cwd() / p)
    return Path(".")


def get_sequences_dir() -> Path:
    """Resolve the directory holding <sequenceId>.json documents.

    Env: VW_SEQUENCES_DIR (relative to base if not absolute)
    Default: <base>/assets/sequences
    """
    return _under_base("VW_SEQUENCES_DIR", "assets/sequences")


def get_content_root() -> Path:
    """Resolve the root under which content/<actor>/<action>/... files live.

    Env: VW_CONTENT_ROOT (relative to base if not absolute)
    Default: <base>/assets
    """
    return _under_base("VW_CONTENT_ROOT", "assets")


def get_config_path() -> Path:
    """Resolve the pipeline config file.

    Env: VW_CONFIG_PATH (relative to base if not absolute)
    Default: <base>/tool/variants_config.yaml
    """
    return _under_base("VW_CONFIG_PATH", "tool/variants_config.yaml")


def resolve_under_base(path: str | Path) -> Path:
    p = Path(path)
    return p if p.is_absolute() else (get_base_dir() / p)


def mask_env_value(k: str, v: Optional[str]) -> str:
    """Mask secrets in environment values while retaining a minimal suffix for debugging.
    Masks keys containing key/secret/token/password regardless of prefix.
    """
    try:
        if v is None:
            return ""
        kl = (k or "").lower()
        if any(s in kl for s in ("key", "secret", "token", "password")):
            s = str(v)
            if len(s) <= 8:
                return "***"
            return ("*" * (len(s) - 4)) + s[-4:]
        return str(v)
    except Exception:
        return ""


def normalize_base_url(base_url: Optional[str]) -> Optional[str]:
    """Append '/v1' to OpenAI-compatible base URLs that lack a version suffix."""
    if not base_url:
        return None
    bu = base_url.strip()
    lower = bu.lower()
    is_azure = ("azure.com" in lower) or ("openai.azure" in lower)
    if (not is_azure) and not re.search(r"/v\d+/?$", bu):
        bu = bu.rstrip("/") + "/v1"
    return bu


def collect_program_env_snapshot(api_key_env: Optional[str] = None) -> Dict[str, Any]:
    """Collect program-relevant environment settings for diagnostics.
    Includes VW_*, OPENAI_* and the configured API key variable, with secret masking.
    """
    prefixes = ("VW_", "OPENAI_")
    env_items: List[Tuple[str, str]] = []
    for k, v in os.environ.items():
        if any(k.startswith(p) for p in prefixes) or (api_key_env and k == api_key_env):
            env_items.append((k, mask_env_value(k, v)))
    env_items.sort(key=lambda kv: kv[0])
    derived: Dict[str, Any] = {
        "base_dir": str(get_base_dir()),
        "sequences_dir": str(get_sequences_dir()),
        "content_root": str(get_content_root()),
        "config_path": str(get_config_path()),
    }
    return {
        "env": {k: v for k, v in env_items},
        "derived": derived,
    }
