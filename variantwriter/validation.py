"""Validation and near-duplicate filtering for generated variants."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple

from .config import BUBBLE_SEPARATOR, PipelineConfig

_NON_TOKEN_RE = re.compile(r"[^a-z0-9\s|]")
_WS_RE = re.compile(r"\s+")


def normalize(candidate: str) -> str:
    return str(candidate).strip().replace("\t", " ")


def placeholders_balanced(s: str) -> bool:
    """Curly braces must nest and close, so a truncated `{user.na` never survives."""
    depth = 0
    for ch in s:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def token_set(s: str) -> Set[str]:
    lowered = _NON_TOKEN_RE.sub(" ", s.lower())
    return {t for t in _WS_RE.split(lowered) if t}


def jaccard(a: str, b: str) -> float:
    ta, tb = token_set(a), token_set(b)
    inter = len(ta & tb)
    union = len(ta) + len(tb) - inter
    if union <= 0:
        return 0.0
    return inter / union


def contains_blocked(s: str, blocklist: Iterable[str]) -> bool:
    lowered = s.lower()
    return any(w and w.lower() in lowered for w in blocklist)


def matches_pii(s: str, patterns: Iterable[str]) -> bool:
    return any(re.search(p, s) for p in patterns if p)


def is_near_duplicate(s: str, pool: Iterable[str], threshold: float) -> bool:
    return any(jaccard(s, p) >= threshold for p in pool)


@dataclass
class ValidationReport:
    accepted: List[str] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)

    def reject(self, candidate: str, reason: str) -> None:
        self.rejected.append((candidate, reason))


def check_candidate(s: str, config: PipelineConfig) -> Optional[str]:
    """Return the structural rejection reason for a normalized candidate, or None."""
    if not s:
        return "empty"
    if not placeholders_balanced(s):
        return "unbalanced-placeholders"
    if not config.style.allow_pipes and BUBBLE_SEPARATOR in s:
        return "pipes-not-allowed"
    parts = s.split(BUBBLE_SEPARATOR)
    if len(parts) > config.gen.max_bubbles_per_line:
        return "too-many-bubbles"
    if any(len(p.strip()) > config.gen.max_chars_per_bubble for p in parts):
        return "bubble-too-long"
    if contains_blocked(s, config.safety.blocklist):
        return "blocklisted"
    if matches_pii(s, config.safety.pii_regexes):
        return "pii"
    return None


def validate_report(candidates: Iterable[str], existing: Iterable[str], config: PipelineConfig) -> ValidationReport:
    threshold = config.gen.dedupe_threshold
    base = list(existing)
    report = ValidationReport()
    for raw in candidates:
        s = normalize(raw)
        reason = check_candidate(s, config)
        if reason is None and is_near_duplicate(s, base, threshold):
            reason = "duplicate-existing"
        if reason is None and is_near_duplicate(s, report.accepted, threshold):
            reason = "duplicate-batch"
        if reason is not None:
            report.reject(s, reason)
            continue
        report.accepted.append(s)
    return report


def validate_batch(candidates: Iterable[str], existing: Iterable[str], config: PipelineConfig) -> List[str]:
    return validate_report(candidates, existing, config).accepted
