"""Hypothetical user state used to resolve a path to the target message.

State files are JSON or the indented config subset:

    entry:
      sequence: onboarding_seq
      message: 1              # optional, defaults to the sequence's first message
    branch_mode: resolve      # resolve | default
    variables:
      user.name: Alice
      user.streak: 4
    choices:
      - node: onboarding_seq:12
        by: index             # index | text | contentKey
        value: 1
    limits:
      max_depth: 200
      max_paths: 5000
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .context import InvalidConfigError, load_config_tree

BRANCH_RESOLVE = "resolve"
BRANCH_DEFAULT = "default"

SELECT_BY_INDEX = "index"
SELECT_BY_TEXT = "text"
SELECT_BY_CONTENT_KEY = "contentKey"

_SELECT_ALIASES = {
    "index": SELECT_BY_INDEX,
    "by-index": SELECT_BY_INDEX,
    "text": SELECT_BY_TEXT,
    "by-text": SELECT_BY_TEXT,
    "contentkey": SELECT_BY_CONTENT_KEY,
    "content_key": SELECT_BY_CONTENT_KEY,
    "content-key": SELECT_BY_CONTENT_KEY,
    "by-content-key": SELECT_BY_CONTENT_KEY,
}


def parse_address(text: str) -> Tuple[str, int]:
    """Parse `sequenceId:messageId` into a (str, int) address."""
    seq, sep, msg = str(text).strip().rpartition(":")
    if not sep or not seq.strip():
        raise InvalidConfigError(f"Expected 'sequence:message', got {text!r}")
    try:
        return seq.strip(), int(msg.strip())
    except ValueError:
        raise InvalidConfigError(f"Invalid message id in {text!r}")


@dataclass(frozen=True)
class ChoiceDirective:
    sequence_id: str
    message_id: int
    method: str
    value: Any

    @property
    def address(self) -> Tuple[str, int]:
        return (self.sequence_id, self.message_id)

    @classmethod
    def from_tree(cls, item: Any) -> "ChoiceDirective":
        if not isinstance(item, dict):
            raise InvalidConfigError(f"Choice directive must be a mapping, got {item!r}")
        node = item.get("node")
        if node is not None:
            seq, msg = parse_address(str(node))
        else:
            seq = str(item.get("sequence") or "")
            msg_raw = item.get("message")
            if not seq or isinstance(msg_raw, bool) or not isinstance(msg_raw, int):
                raise InvalidConfigError(f"Choice directive needs 'node' or 'sequence'+'message': {item!r}")
            msg = msg_raw
        raw_method = str(item.get("by") or item.get("method") or SELECT_BY_INDEX)
        method = _SELECT_ALIASES.get(raw_method.strip().lower())
        if method is None:
            raise InvalidConfigError(f"Unknown choice selection method {raw_method!r}")
        if "value" not in item:
            raise InvalidConfigError(f"Choice directive for {seq}:{msg} has no 'value'")
        return cls(sequence_id=seq, message_id=msg, method=method, value=item.get("value"))


@dataclass(frozen=True)
class StateSpec:
    entry_sequence: str
    entry_message: Optional[int] = None
    branch_mode: str = BRANCH_RESOLVE
    variables: Dict[str, Any] = field(default_factory=dict)
    directives: Tuple[ChoiceDirective, ...] = field(default_factory=tuple)
    max_depth: int = 200
    max_paths: int = 5000

    @property
    def resolve_branches(self) -> bool:
        return self.branch_mode == BRANCH_RESOLVE

    def directive_for(self, sequence_id: str, message_id: int) -> Optional[ChoiceDirective]:
        for d in self.directives:
            if d.sequence_id == sequence_id and d.message_id == message_id:
                return d
        return None

    @classmethod
    def default_for(cls, sequence_id: str, *, max_depth: int = 200, max_paths: int = 5000) -> "StateSpec":
        return cls(entry_sequence=sequence_id, max_depth=max_depth, max_paths=max_paths)

    @classmethod
    def from_tree(
        cls,
        tree: Any,
        *,
        default_sequence: Optional[str] = None,
        max_depth: int = 200,
        max_paths: int = 5000,
    ) -> "StateSpec":
        if tree is None:
            tree = {}
        if not isinstance(tree, dict):
            raise InvalidConfigError("State file root must be a mapping")

        entry = tree.get("entry") or {}
        if isinstance(entry, str):
            if ":" in entry:
                seq, msg = parse_address(entry)
                entry = {"sequence": seq, "message": msg}
            else:
                entry = {"sequence": entry}
        if not isinstance(entry, dict):
            raise InvalidConfigError("State file 'entry' must be a mapping or 'sequence[:message]'")
        seq = str(entry.get("sequence") or default_sequence or "")
        if not seq:
            raise InvalidConfigError("State file has no entry sequence")
        msg = entry.get("message")
        if msg is not None and (isinstance(msg, bool) or not isinstance(msg, int)):
            raise InvalidConfigError(f"State file entry message must be an integer, got {msg!r}")

        mode = str(tree.get("branch_mode") or BRANCH_RESOLVE).strip().lower()
        if mode not in (BRANCH_RESOLVE, BRANCH_DEFAULT):
            raise InvalidConfigError(f"branch_mode must be 'resolve' or 'default', got {mode!r}")

        variables = tree.get("variables") or {}
        if not isinstance(variables, dict):
            raise InvalidConfigError("State file 'variables' must be a mapping")
        for k, v in variables.items():
            if isinstance(v, (dict, list)):
                raise InvalidConfigError(f"State variable {k!r} must be a literal value")

        raw_choices = tree.get("choices") or []
        if not isinstance(raw_choices, list):
            raise InvalidConfigError("State file 'choices' must be a list")
        directives = tuple(ChoiceDirective.from_tree(c) for c in raw_choices)

        limits = tree.get("limits") or {}
        if not isinstance(limits, dict):
            raise InvalidConfigError("State file 'limits' must be a mapping")
        depth = limits.get("max_depth", max_depth)
        paths = limits.get("max_paths", max_paths)
        for name, val in (("max_depth", depth), ("max_paths", paths)):
            if isinstance(val, bool) or not isinstance(val, int) or val <= 0:
                raise InvalidConfigError(f"limits.{name} must be a positive integer, got {val!r}")

        return cls(
            entry_sequence=seq,
            entry_message=msg,
            branch_mode=mode,
            variables={str(k): v for k, v in variables.items()},
            directives=directives,
            max_depth=depth,
            max_paths=paths,
        )

    @classmethod
    def load(cls, path: str | Path, **kwargs: Any) -> "StateSpec":
        return cls.from_tree(load_config_tree(path), **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["directives"] = [asdict(x) for x in self.directives]
        return d
