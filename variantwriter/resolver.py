"""Breadth-first path resolution over the dialogue graph.

Contract:
- resolve(index, state, target) -> ResolvedPath

The frontier holds whole paths, so the accepted path needs no backpointer
reconstruction. Nodes are marked visited only after they are expanded: two
frontier entries in the same layer may both reach a node before either is
expanded, which keeps the first-listed choice option winning ties on graphs
with several equal-length routes.

Depth counts nodes, start and target included: a path is extended only while
it holds fewer than max_depth nodes, so a resolved path never holds more than
max_depth nodes. With max_depth=3 the entry reaches at most two steps away.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from .conditions import evaluate
from .context import MissingFileError, SequenceFormatError
from .logging import breadcrumb as _breadcrumb, log_warning as _log_warning
from .sequences import (
    KIND_BRANCH,
    KIND_CHOICE,
    KIND_CROSS_JUMP,
    Address,
    ChoiceOption,
    DialogueNode,
    Route,
    SequenceIndex,
)
from .state import SELECT_BY_CONTENT_KEY, SELECT_BY_INDEX, SELECT_BY_TEXT, ChoiceDirective, StateSpec


@dataclass(frozen=True)
class Selection:
    """The choice option taken to reach a path node."""

    index: int
    text: str = ""
    content_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "text": self.text, "contentKey": self.content_key}


@dataclass(frozen=True)
class ResolvedPathNode:
    sequence_id: str
    message_id: int
    kind: str
    selection: Optional[Selection] = None

    @property
    def address(self) -> Address:
        return (self.sequence_id, self.message_id)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "sequenceId": self.sequence_id,
            "messageId": self.message_id,
            "kind": self.kind,
        }
        if self.selection is not None:
            d["selection"] = self.selection.to_dict()
        return d


@dataclass(frozen=True)
class ResolvedPath:
    nodes: Tuple[ResolvedPathNode, ...]
    fell_back: bool = False
    explored: int = 0

    def __post_init__(self):
        if not self.nodes:
            raise ValueError("ResolvedPath must contain at least one node")

    @property
    def target(self) -> ResolvedPathNode:
        return self.nodes[-1]

    def __len__(self) -> int:
        return len(self.nodes)

    def addresses(self) -> List[Address]:
        return [n.address for n in self.nodes]

    def describe(self) -> str:
        return " -> ".join(f"{n.sequence_id}:{n.message_id}" for n in self.nodes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "fellBack": self.fell_back,
            "explored": self.explored,
        }


# A successor is the next address plus the selection that led to it (choices only).
_Successor = Tuple[Address, Optional[Selection]]


@dataclass
class PathResolver:
    index: SequenceIndex
    state: StateSpec
    _visited: Set[Address] = field(default_factory=set)

    # ---- node lookup ----

    def _lookup(self, address: Address) -> Optional[DialogueNode]:
        seq, mid = address
        try:
            return self.index.get(seq, mid)
        except (MissingFileError, SequenceFormatError) as e:
            _breadcrumb(f"resolver:lookup_failed {seq}:{mid} {type(e).__name__}")
            return None

    def _entry_of(self, sequence_id: str) -> Optional[Address]:
        try:
            entry = self.index.entry_id(sequence_id)
        except (MissingFileError, SequenceFormatError) as e:
            _breadcrumb(f"resolver:entry_failed {sequence_id} {type(e).__name__}")
            return None
        if entry is None:
            return None
        return (sequence_id, entry)

    # ---- expansion ----

    def _route_destination(self, node: DialogueNode, route: Route) -> Optional[Address]:
        if route.target_sequence:
            return self._entry_of(route.target_sequence)
        if route.next_id is not None:
            return (node.sequence_id, route.next_id)
        return None

    def _pick_route(self, node: DialogueNode) -> Optional[Route]:
        if not node.routes:
            return None
        if self.state.resolve_branches:
            for r in node.routes:
                if r.is_default or not r.condition:
                    continue
                if evaluate(r.condition, self.state.variables):
                    return r
        for r in node.routes:
            if r.is_default:
                return r
        return node.routes[0]

    def _option_destination(self, node: DialogueNode, option: ChoiceOption) -> Optional[Address]:
        if option.target_sequence and option.target_sequence != node.sequence_id:
            return self._entry_of(option.target_sequence)
        if option.next_id is not None:
            return (node.sequence_id, option.next_id)
        return None

    @staticmethod
    def _matches(directive: ChoiceDirective, option: ChoiceOption) -> bool:
        if directive.method == SELECT_BY_INDEX:
            value = directive.value
            if isinstance(value, bool):
                return False
            if isinstance(value, str) and value.strip().lstrip("-").isdigit():
                value = int(value.strip())
            return isinstance(value, int) and value == option.index
        if directive.method == SELECT_BY_TEXT:
            return option.text == str(directive.value)
        if directive.method == SELECT_BY_CONTENT_KEY:
            return option.content_key is not None and option.content_key == str(directive.value)
        return False

    def _choice_successors(self, node: DialogueNode) -> List[_Successor]:
        options = list(node.choices)
        directive = self.state.directive_for(node.sequence_id, node.id)
        if directive is not None:
            pinned = [o for o in options if self._matches(directive, o)]
            if pinned:
                options = pinned[:1]
            else:
                _breadcrumb(f"resolver:directive_unmatched {node.sequence_id}:{node.id} {directive.method}={directive.value!r}")
        out: List[_Successor] = []
        for o in options:
            dest = self._option_destination(node, o)
            if dest is not None:
                out.append((dest, Selection(index=o.index, text=o.text, content_key=o.content_key)))
        return out

    def _linear_successor(self, node: DialogueNode) -> Optional[Address]:
        if node.next_id is not None:
            return (node.sequence_id, node.next_id)
        implicit = (node.sequence_id, node.id + 1)
        if self._lookup(implicit) is not None:
            return implicit
        return None

    def successors(self, node: DialogueNode) -> List[_Successor]:
        if node.kind == KIND_CROSS_JUMP:
            entry = self._entry_of(node.target_sequence or "")
            return [(entry, None)] if entry is not None else []
        if node.kind == KIND_BRANCH:
            route = self._pick_route(node)
            dest = self._route_destination(node, route) if route is not None else None
            return [(dest, None)] if dest is not None else []
        if node.kind == KIND_CHOICE:
            return self._choice_successors(node)
        nxt = self._linear_successor(node)
        return [(nxt, None)] if nxt is not None else []

    # ---- search ----

    def start_address(self) -> Optional[Address]:
        if self.state.entry_message is not None:
            return (self.state.entry_sequence, self.state.entry_message)
        return self._entry_of(self.state.entry_sequence)

    def resolve(self, target: Address) -> ResolvedPath:
        target_node = self._lookup(target)
        if target_node is None:
            _log_warning(f"Target {target[0]}:{target[1]} does not exist; using single-node path")
            return self._fallback(target, "unknown", explored=0)

        start = self.start_address()
        start_node = self._lookup(start) if start is not None else None
        if start_node is None:
            _log_warning(f"Entry {self.state.entry_sequence}:{self.state.entry_message} not found; using single-node path")
            return self._fallback(target, target_node.kind, explored=0)

        queue: Deque[List[ResolvedPathNode]] = deque()
        queue.append([ResolvedPathNode(start_node.sequence_id, start_node.id, start_node.kind)])
        self._visited.clear()
        dequeued = 0

        while queue:
            if dequeued >= self.state.max_paths:
                _breadcrumb(f"resolver:max_paths {self.state.max_paths}")
                break
            path = queue.popleft()
            dequeued += 1
            last = path[-1]
            if last.address == target:
                _breadcrumb(f"resolver:found len={len(path)} explored={dequeued}")
                return ResolvedPath(nodes=tuple(path), fell_back=False, explored=dequeued)
            if last.address in self._visited:
                continue
            if len(path) >= self.state.max_depth:
                continue
            node = self._lookup(last.address)
            if node is None:
                continue
            succ = self.successors(node)
            self._visited.add(last.address)
            succ.sort(key=lambda s: 0 if s[0] == target else 1)
            for address, selection in succ:
                nxt = self._lookup(address)
                if nxt is None:
                    continue
                queue.append(path + [ResolvedPathNode(nxt.sequence_id, nxt.id, nxt.kind, selection)])

        _log_warning(
            f"No path from {self.state.entry_sequence} to {target[0]}:{target[1]} "
            f"(explored {dequeued}); using single-node path"
        )
        return self._fallback(target, target_node.kind, explored=dequeued)

    @staticmethod
    def _fallback(target: Address, kind: str, *, explored: int) -> ResolvedPath:
        return ResolvedPath(
            nodes=(ResolvedPathNode(target[0], target[1], kind),),
            fell_back=True,
            explored=explored,
        )


def resolve(index: SequenceIndex, state: StateSpec, target: Address) -> ResolvedPath:
    return PathResolver(index=index, state=state).resolve(target)
