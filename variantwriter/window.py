"""Project a resolved path into the conversational context window."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .resolver import ResolvedPath, Selection
from .sequences import KIND_CHOICE, DialogueNode, SequenceIndex

CHOICE_PLACEHOLDER = "[user choice]"
CONTENT_KEY_PREFIX = "contentKey:"

SampleFn = Callable[[str], List[str]]


@dataclass(frozen=True)
class ContextTurn:
    sender: str
    kind: str
    reference: str
    examples: List[str] = field(default_factory=list)
    sequence_id: str = ""
    message_id: int = 0

    @property
    def content_key(self) -> Optional[str]:
        if self.reference.startswith(CONTENT_KEY_PREFIX):
            return self.reference[len(CONTENT_KEY_PREFIX):]
        return None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "sequenceId": self.sequence_id,
            "id": self.message_id,
            "sender": self.sender,
            "type": self.kind,
            "text": self.reference,
        }
        if self.examples:
            d["examples"] = list(self.examples)
        return d


def _reference(content_key: Optional[str], text: str) -> str:
    if content_key:
        return f"{CONTENT_KEY_PREFIX}{content_key}"
    return text


def _choice_turn(node: DialogueNode, selection: Optional[Selection]) -> ContextTurn:
    if selection is not None and selection.content_key:
        ref = _reference(selection.content_key, "")
    elif selection is not None and selection.text:
        ref = selection.text
    else:
        ref = CHOICE_PLACEHOLDER
    return ContextTurn(sender="user", kind=KIND_CHOICE, reference=ref,
                       sequence_id=node.sequence_id, message_id=node.id)


def build(
    path: ResolvedPath,
    index: SequenceIndex,
    history_bubbles: int,
    sample_fn: Optional[SampleFn] = None,
) -> List[ContextTurn]:
    """Return at most `history_bubbles` displayable turns preceding the target.

    A choice node's selection is recorded on the path node that follows it,
    so the lookahead reads nodes[i + 1]. Turns referencing a content key are
    decorated with sample phrasings from `sample_fn` when given.
    """
    if history_bubbles <= 0:
        return []
    nodes = path.nodes
    turns: List[ContextTurn] = []
    for i in range(len(nodes) - 2, -1, -1):
        if len(turns) >= history_bubbles:
            break
        pn = nodes[i]
        node = index.get(pn.sequence_id, pn.message_id)
        if node is None or not node.displayable:
            continue
        if node.kind == KIND_CHOICE:
            turn = _choice_turn(node, nodes[i + 1].selection)
        else:
            turn = ContextTurn(sender=node.sender, kind=node.type,
                               reference=_reference(node.content_key, node.text),
                               sequence_id=node.sequence_id, message_id=node.id)
        if sample_fn is not None and turn.content_key:
            examples = sample_fn(turn.content_key)
            if examples:
                turn = ContextTurn(turn.sender, turn.kind, turn.reference, list(examples),
                                   turn.sequence_id, turn.message_id)
        turns.append(turn)
    turns.reverse()
    return turns


def fallback_turns(target: DialogueNode) -> List[ContextTurn]:
    """Context for a path that fell back: the target's own default text, if any."""
    if not target.text:
        return []
    return [ContextTurn(sender=target.sender, kind=target.type, reference=target.text,
                        sequence_id=target.sequence_id, message_id=target.id)]
