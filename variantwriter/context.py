"""RunContext, error types and config-tree loading.

Contract:
- RunContext.from_env(config_path: Optional[str]) -> RunContext
- load_config_tree(path: str) -> dict | list | scalar

This is the only module that reads config/state documents from disk during a
run. Other modules accept a RunContext or parsed trees and avoid that I/O.
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional
import json

from .logging import breadcrumb as _breadcrumb, log_run as _log_run

if TYPE_CHECKING:  # pragma: no cover
    from .config import PipelineConfig
    from .sequences import SequenceIndex


class VWError(Exception):
    pass


class MissingFileError(VWError):
    pass


class InvalidConfigError(VWError):
    pass


class ConfigStructureError(InvalidConfigError):
    """Indentation or container-kind mismatch in an indented config document."""

    def __init__(self, message: str, line_no: Optional[int] = None):
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)


class ContentKeyError(VWError):
    pass


class SequenceFormatError(VWError):
    pass


class TargetError(VWError):
    pass


class GenerationError(VWError):
    pass


class UnsupportedParameterError(GenerationError):
    """The backend rejected a request naming a parameter it does not support."""

    def __init__(self, message: str, parameter: str):
        self.parameter = parameter
        super().__init__(message)


def parse_config_text(content: str, *, source: str = "<string>"):
    """Parse config text as JSON first, then with the indented-config parser."""
    from .miniyaml import parse as _parse_indented  # lazy import

    stripped = content.strip()
    if stripped.startswith("{") or stripped.startswith("["):
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            pass
    try:
        return _parse_indented(content)
    except ConfigStructureError as e:
        raise ConfigStructureError(f"{source}: {e}") from e


def load_config_tree(path: str | Path):
    try:
        content = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        _breadcrumb(f"config:error:not_found:{path}")
        raise MissingFileError(f"Required file not found: {path}")
    except Exception as e:
        _breadcrumb(f"config:error:read_failure:{path}")
        raise VWError(f"Unable to read file {path}: {e}")
    try:
        data = parse_config_text(content, source=str(path))
    except InvalidConfigError:
        _log_run(f"ERROR InvalidConfig: {path}")
        raise
    _breadcrumb(f"config:parsed_ok:{path}")
    return data


@dataclass(frozen=True)
class RunContext:
    config: "PipelineConfig"
    index: "SequenceIndex"
    content_root: Path
    archive_dir: Path
    config_path: Path

    @classmethod
    def from_env(cls, config_path: Optional[str] = None) -> "RunContext":
        from .config import PipelineConfig  # lazy import
        from .sequences import SequenceIndex
        from .env import get_config_path, get_content_root, get_sequences_dir, resolve_under_base

        cfg_path = resolve_under_base(config_path) if config_path else get_config_path()
        config = PipelineConfig.load(cfg_path)
        return cls(
            config=config,
            index=SequenceIndex(get_sequences_dir()),
            content_root=get_content_root(),
            archive_dir=resolve_under_base(config.io.archive_dir),
            config_path=cfg_path,
        )
