"""Sequence documents and the per-run sequence index.

A sequence document is JSON:

    {"sequenceId": "onboarding_seq", "name": "...", "messages": [
        {"id": 1, "type": "bot", "text": "Hi", "contentKey": "bot.greet.hello"},
        {"id": 2, "type": "choice", "choices": [{"text": "Yes", "nextMessageId": 5}]},
        {"id": 3, "type": "autoroute", "routes": [
            {"condition": "user.streak > 3", "nextMessageId": 10},
            {"default": true, "sequenceId": "fallback_seq"}]},
        {"id": 4, "type": "dataAction", "nextMessageId": 6},
        {"id": 5, "type": "bot", "text": "...", "sequenceId": "other_seq"}]}

Nodes are immutable once loaded. The index loads each document at most once
and hands out nodes by (sequence id, message id); nodes never hold
references to other nodes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .context import MissingFileError, SequenceFormatError, TargetError
from .logging import breadcrumb as _breadcrumb
from .utils import read_json

KIND_MESSAGE = "message"
KIND_CHOICE = "choice"
KIND_BRANCH = "conditional-branch"
KIND_ACTION = "action"
KIND_CROSS_JUMP = "cross-jump"

Address = Tuple[str, int]


@dataclass(frozen=True)
class ChoiceOption:
    index: int
    text: str = ""
    next_id: Optional[int] = None
    target_sequence: Optional[str] = None
    content_key: Optional[str] = None
    value: Any = None


@dataclass(frozen=True)
class Route:
    condition: Optional[str] = None
    is_default: bool = False
    next_id: Optional[int] = None
    target_sequence: Optional[str] = None


@dataclass(frozen=True)
class DialogueNode:
    sequence_id: str
    id: int
    kind: str
    type: str = "bot"
    sender: str = "bot"
    text: str = ""
    content_key: Optional[str] = None
    next_id: Optional[int] = None
    target_sequence: Optional[str] = None
    choices: Tuple[ChoiceOption, ...] = field(default_factory=tuple)
    routes: Tuple[Route, ...] = field(default_factory=tuple)

    @property
    def address(self) -> Address:
        return (self.sequence_id, self.id)

    @property
    def displayable(self) -> bool:
        if self.kind in (KIND_BRANCH, KIND_ACTION):
            return False
        if self.kind == KIND_CROSS_JUMP:
            return bool(self.text or self.content_key)
        return True


def _opt_int(m: Dict[str, Any], key: str, where: str) -> Optional[int]:
    v = m.get(key)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, int):
        raise SequenceFormatError(f"{where}: '{key}' must be an integer, got {v!r}")
    return v


def _opt_str(m: Dict[str, Any], key: str) -> Optional[str]:
    v = m.get(key)
    if v is None or str(v).strip() == "":
        return None
    return str(v)


def _classify(sequence_id: str, m: Dict[str, Any]) -> str:
    mtype = str(m.get("type") or "")
    target = _opt_str(m, "sequenceId")
    if target and target != sequence_id and mtype != "autoroute":
        return KIND_CROSS_JUMP
    if mtype == "choice" or m.get("isChoice") is True:
        return KIND_CHOICE
    if mtype == "autoroute" or m.get("routes"):
        return KIND_BRANCH
    if mtype == "dataAction":
        return KIND_ACTION
    return KIND_MESSAGE


def node_from_json(sequence_id: str, m: Dict[str, Any]) -> DialogueNode:
    if not isinstance(m, dict):
        raise SequenceFormatError(f"{sequence_id}: message entries must be objects")
    mid = m.get("id")
    if isinstance(mid, bool) or not isinstance(mid, int):
        raise SequenceFormatError(f"{sequence_id}: message id must be an integer, got {mid!r}")
    where = f"{sequence_id}:{mid}"
    mtype = str(m.get("type") or ("choice" if m.get("isChoice") else "bot"))
    kind = _classify(sequence_id, m)

    choices: List[ChoiceOption] = []
    for i, c in enumerate(m.get("choices") or []):
        if not isinstance(c, dict):
            raise SequenceFormatError(f"{where}: choice entries must be objects")
        choices.append(ChoiceOption(
            index=i,
            text=str(c.get("text") or ""),
            next_id=_opt_int(c, "nextMessageId", where),
            target_sequence=_opt_str(c, "sequenceId"),
            content_key=_opt_str(c, "contentKey"),
            value=c.get("value"),
        ))

    routes: List[Route] = []
    for r in m.get("routes") or []:
        if not isinstance(r, dict):
            raise SequenceFormatError(f"{where}: route entries must be objects")
        routes.append(Route(
            condition=_opt_str(r, "condition"),
            is_default=r.get("default") is True,
            next_id=_opt_int(r, "nextMessageId", where),
            target_sequence=_opt_str(r, "sequenceId"),
        ))

    sender = str(m.get("sender") or ("user" if mtype in ("user", "textInput") else "bot"))
    return DialogueNode(
        sequence_id=sequence_id,
        id=mid,
        kind=kind,
        type=mtype,
        sender=sender,
        text=str(m.get("text") or ""),
        content_key=_opt_str(m, "contentKey"),
        next_id=_opt_int(m, "nextMessageId", where),
        target_sequence=_opt_str(m, "sequenceId") if kind == KIND_CROSS_JUMP else None,
        choices=tuple(choices),
        routes=tuple(routes),
    )


@dataclass(frozen=True)
class SequenceTable:
    sequence_id: str
    nodes: Dict[int, DialogueNode]
    entry_id: Optional[int]
    name: str = ""

    @classmethod
    def from_document(cls, doc: Any, *, sequence_id: Optional[str] = None) -> "SequenceTable":
        if not isinstance(doc, dict):
            raise SequenceFormatError("Sequence document must be a JSON object")
        sid = str(doc.get("sequenceId") or sequence_id or "")
        if not sid:
            raise SequenceFormatError("Sequence document has no sequenceId")
        msgs = doc.get("messages") or []
        if not isinstance(msgs, list):
            raise SequenceFormatError(f"{sid}: 'messages' must be a list")
        nodes: Dict[int, DialogueNode] = {}
        for m in msgs:
            node = node_from_json(sid, m)
            if node.id in nodes:
                raise SequenceFormatError(f"{sid}: duplicate message id {node.id}")
            nodes[node.id] = node
        entry = next(iter(nodes)) if nodes else None
        return cls(sequence_id=sid, nodes=nodes, entry_id=entry, name=str(doc.get("name") or ""))

    def ordered(self) -> List[DialogueNode]:
        return list(self.nodes.values())


class SequenceIndex:
    """Lazily loaded, populate-once cache of sequence tables."""

    def __init__(self, sequences_dir: Optional[str | Path] = None):
        self.sequences_dir = Path(sequences_dir) if sequences_dir is not None else None
        self._tables: Dict[str, SequenceTable] = {}

    @classmethod
    def from_documents(cls, docs: Dict[str, Any]) -> "SequenceIndex":
        idx = cls(None)
        for sid, doc in docs.items():
            idx.register(SequenceTable.from_document(doc, sequence_id=sid))
        return idx

    def register(self, table: SequenceTable) -> None:
        self._tables.setdefault(table.sequence_id, table)

    def path_for(self, sequence_id: str) -> Optional[Path]:
        if self.sequences_dir is None:
            return None
        return self.sequences_dir / f"{sequence_id}.json"

    def table(self, sequence_id: str) -> SequenceTable:
        cached = self._tables.get(sequence_id)
        if cached is not None:
            return cached
        path = self.path_for(sequence_id)
        if path is None or not path.exists():
            raise MissingFileError(f"Sequence not found: {sequence_id} ({path})")
        table = SequenceTable.from_document(read_json(path), sequence_id=sequence_id)
        if table.sequence_id != sequence_id:
            raise SequenceFormatError(f"{path}: sequenceId {table.sequence_id!r} does not match file name")
        _breadcrumb(f"sequences:loaded {sequence_id} nodes={len(table.nodes)}")
        self._tables[sequence_id] = table
        return table

    def has_sequence(self, sequence_id: str) -> bool:
        try:
            self.table(sequence_id)
            return True
        except (MissingFileError, SequenceFormatError):
            return False

    def get(self, sequence_id: str, message_id: int) -> Optional[DialogueNode]:
        return self.table(sequence_id).nodes.get(message_id)

    def node(self, sequence_id: str, message_id: int) -> DialogueNode:
        found = self.get(sequence_id, message_id)
        if found is None:
            raise TargetError(f"Message {message_id} not found in sequence {sequence_id}")
        return found

    def entry_id(self, sequence_id: str) -> Optional[int]:
        return self.table(sequence_id).entry_id
