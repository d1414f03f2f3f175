"""Pipeline modules (variants)."""

from .variants import (
    ProcessOutcome,
    Target,
    load_targets_from_list,
    parse_target_line,
    process_target,
    state_for,
)

__all__ = [
    "ProcessOutcome",
    "Target",
    "load_targets_from_list",
    "parse_target_line",
    "process_target",
    "state_for",
]
