"""Pipeline configuration: typed sections over the parsed config tree.

The config file is JSON or the indented subset parsed by miniyaml. Missing
sections or keys fall back to the defaults below; values of the wrong type
raise InvalidConfigError. A missing config file is created from
DEFAULT_CONFIG_TEXT so a first run has something to edit.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .context import InvalidConfigError, load_config_tree, parse_config_text
from .logging import log_run as _log_run
from .utils import save_text

BUBBLE_SEPARATOR = "|||"

DEFAULT_CONFIG_TEXT = """\
provider:
  name: generic-json
  base_url: https://api.example.com/generate
  model: my-model
  api_key_env: LLM_API_KEY
  mock: true
  timeout_ms: 30000

gen:
  num_variants: 8
  temperature: 0.7
  top_p: 0.9
  max_bubbles_per_line: 3
  max_chars_per_bubble: 90
  dedupe_threshold: 0.82

context:
  history_bubbles: 4
  include_sibling_exemplars: true
  max_exemplars: 10
  sample_phrasings: 2

style:
  tone:
    - friendly
    - concise
    - supportive
  forbid_emojis: true
  allow_pipes: true
  preserve_placeholders: true

io:
  archive_dir: tool/ai_archive
  dry_run: true
  verbose: false
  fail_fast: false

rate_limit:
  rpm: 30
  retry_count: 2
  retry_backoff_ms: 1000

safety:
  blocklist:
    - shit
    - fuck
  pii_regexes: []

traversal:
  max_depth: 200
  max_paths: 5000
"""


def _section(tree: Dict[str, Any], name: str) -> Dict[str, Any]:
    val = tree.get(name)
    if val is None:
        return {}
    if not isinstance(val, dict):
        raise InvalidConfigError(f"Config section '{name}' must be a mapping, got {type(val).__name__}")
    return val


def _get_str(sec: Dict[str, Any], key: str, default: str, where: str) -> str:
    v = sec.get(key, default)
    if v is None:
        return default
    if isinstance(v, (dict, list)):
        raise InvalidConfigError(f"{where}.{key} must be a string")
    return str(v)


def _get_bool(sec: Dict[str, Any], key: str, default: bool, where: str) -> bool:
    v = sec.get(key, default)
    if v is None:
        return default
    if not isinstance(v, bool):
        raise InvalidConfigError(f"{where}.{key} must be true or false, got {v!r}")
    return v


def _get_int(sec: Dict[str, Any], key: str, default: int, where: str) -> int:
    v = sec.get(key, default)
    if v is None:
        return default
    if isinstance(v, bool) or not isinstance(v, (int, float)) or int(v) != v:
        raise InvalidConfigError(f"{where}.{key} must be an integer, got {v!r}")
    return int(v)


def _get_float(sec: Dict[str, Any], key: str, default: float, where: str) -> float:
    v = sec.get(key, default)
    if v is None:
        return default
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise InvalidConfigError(f"{where}.{key} must be a number, got {v!r}")
    return float(v)


def _get_str_list(sec: Dict[str, Any], key: str, default: List[str], where: str) -> List[str]:
    v = sec.get(key)
    if v is None:
        return list(default)
    if not isinstance(v, list):
        raise InvalidConfigError(f"{where}.{key} must be a list")
    return [str(x) for x in v]


@dataclass(frozen=True)
class ProviderConfig:
    name: str = "generic-json"
    base_url: str = ""
    model: str = ""
    api_key_env: str = "LLM_API_KEY"
    mock: bool = False
    timeout_ms: int = 30000

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "ProviderConfig":
        w = "provider"
        return cls(
            name=_get_str(sec, "name", cls.name, w),
            base_url=_get_str(sec, "base_url", cls.base_url, w),
            model=_get_str(sec, "model", cls.model, w),
            api_key_env=_get_str(sec, "api_key_env", cls.api_key_env, w),
            mock=_get_bool(sec, "mock", cls.mock, w),
            timeout_ms=_get_int(sec, "timeout_ms", cls.timeout_ms, w),
        )


@dataclass(frozen=True)
class GenConfig:
    num_variants: int = 8
    temperature: float = 0.7
    top_p: float = 0.9
    max_bubbles_per_line: int = 3
    max_chars_per_bubble: int = 90
    dedupe_threshold: float = 0.82

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "GenConfig":
        w = "gen"
        return cls(
            num_variants=_get_int(sec, "num_variants", cls.num_variants, w),
            temperature=_get_float(sec, "temperature", cls.temperature, w),
            top_p=_get_float(sec, "top_p", cls.top_p, w),
            max_bubbles_per_line=_get_int(sec, "max_bubbles_per_line", cls.max_bubbles_per_line, w),
            max_chars_per_bubble=_get_int(sec, "max_chars_per_bubble", cls.max_chars_per_bubble, w),
            dedupe_threshold=_get_float(sec, "dedupe_threshold", cls.dedupe_threshold, w),
        )


@dataclass(frozen=True)
class ContextConfig:
    history_bubbles: int = 4
    include_sibling_exemplars: bool = True
    max_exemplars: int = 10
    sample_phrasings: int = 2

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "ContextConfig":
        w = "context"
        return cls(
            history_bubbles=_get_int(sec, "history_bubbles", cls.history_bubbles, w),
            include_sibling_exemplars=_get_bool(sec, "include_sibling_exemplars", cls.include_sibling_exemplars, w),
            max_exemplars=_get_int(sec, "max_exemplars", cls.max_exemplars, w),
            sample_phrasings=_get_int(sec, "sample_phrasings", cls.sample_phrasings, w),
        )


@dataclass(frozen=True)
class StyleConfig:
    tone: List[str] = field(default_factory=lambda: ["friendly", "concise"])
    forbid_emojis: bool = True
    allow_pipes: bool = True
    preserve_placeholders: bool = True

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "StyleConfig":
        w = "style"
        return cls(
            tone=_get_str_list(sec, "tone", ["friendly", "concise"], w),
            forbid_emojis=_get_bool(sec, "forbid_emojis", True, w),
            allow_pipes=_get_bool(sec, "allow_pipes", True, w),
            preserve_placeholders=_get_bool(sec, "preserve_placeholders", True, w),
        )


@dataclass(frozen=True)
class IoConfig:
    archive_dir: str = "tool/ai_archive"
    dry_run: bool = True
    verbose: bool = False
    fail_fast: bool = False

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "IoConfig":
        w = "io"
        return cls(
            archive_dir=_get_str(sec, "archive_dir", cls.archive_dir, w),
            dry_run=_get_bool(sec, "dry_run", cls.dry_run, w),
            verbose=_get_bool(sec, "verbose", cls.verbose, w),
            fail_fast=_get_bool(sec, "fail_fast", cls.fail_fast, w),
        )


@dataclass(frozen=True)
class RateLimitConfig:
    rpm: int = 30
    retry_count: int = 2
    retry_backoff_ms: int = 1000

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "RateLimitConfig":
        w = "rate_limit"
        return cls(
            rpm=_get_int(sec, "rpm", cls.rpm, w),
            retry_count=_get_int(sec, "retry_count", cls.retry_count, w),
            retry_backoff_ms=_get_int(sec, "retry_backoff_ms", cls.retry_backoff_ms, w),
        )


@dataclass(frozen=True)
class SafetyConfig:
    blocklist: List[str] = field(default_factory=list)
    pii_regexes: List[str] = field(default_factory=list)

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "SafetyConfig":
        w = "safety"
        pii = _get_str_list(sec, "pii_regexes", [], w)
        for p in pii:
            try:
                re.compile(p)
            except re.error as e:
                raise InvalidConfigError(f"{w}.pii_regexes: bad pattern {p!r}: {e}") from e
        return cls(
            blocklist=_get_str_list(sec, "blocklist", [], w),
            pii_regexes=pii,
        )


@dataclass(frozen=True)
class TraversalConfig:
    max_depth: int = 200
    max_paths: int = 5000

    @classmethod
    def from_tree(cls, sec: Dict[str, Any]) -> "TraversalConfig":
        w = "traversal"
        return cls(
            max_depth=_get_int(sec, "max_depth", cls.max_depth, w),
            max_paths=_get_int(sec, "max_paths", cls.max_paths, w),
        )


@dataclass(frozen=True)
class PipelineConfig:
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    gen: GenConfig = field(default_factory=GenConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    style: StyleConfig = field(default_factory=StyleConfig)
    io: IoConfig = field(default_factory=IoConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    traversal: TraversalConfig = field(default_factory=TraversalConfig)

    @classmethod
    def from_tree(cls, tree: Any) -> "PipelineConfig":
        if tree is None:
            tree = {}
        if not isinstance(tree, dict):
            raise InvalidConfigError(f"Config root must be a mapping, got {type(tree).__name__}")
        return cls(
            provider=ProviderConfig.from_tree(_section(tree, "provider")),
            gen=GenConfig.from_tree(_section(tree, "gen")),
            context=ContextConfig.from_tree(_section(tree, "context")),
            style=StyleConfig.from_tree(_section(tree, "style")),
            io=IoConfig.from_tree(_section(tree, "io")),
            rate_limit=RateLimitConfig.from_tree(_section(tree, "rate_limit")),
            safety=SafetyConfig.from_tree(_section(tree, "safety")),
            traversal=TraversalConfig.from_tree(_section(tree, "traversal")),
        )

    @classmethod
    def from_text(cls, text: str) -> "PipelineConfig":
        return cls.from_tree(parse_config_text(text))

    @classmethod
    def load(cls, path: str | Path, *, create_missing: bool = True) -> "PipelineConfig":
        p = Path(path)
        if not p.exists() and create_missing:
            print(f"Config not found at {p}. Using defaults and creating a sample.")
            _log_run(f"config:sample-created path={p}")
            save_text(p, DEFAULT_CONFIG_TEXT)
        return cls.from_tree(load_config_tree(p))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def mock_generation(self) -> bool:
        return self.provider.mock or self.io.dry_run


def default_config() -> PipelineConfig:
    return PipelineConfig.from_text(DEFAULT_CONFIG_TEXT)
