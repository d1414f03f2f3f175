"""Content key <-> content file address mapping.

A content key is `actor.action.subject[.modifier]*`. Its phrasing corpus lives at

    content/<actor>/<action>/<subject>[_<modifier>...].txt

relative to the content root, one phrasing per line. The mapping is what
decides where accepted variants get appended, so paths are always built with
forward slashes and no normalization beyond joining.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .context import ContentKeyError

CONTENT_DIR = "content"

# Subjects ending in one of these fall back to the bare suffix when no
# specific file exists, e.g. task_completion -> completion.
GENERIC_SUBJECT_SUFFIXES = (
    "completion", "failure", "success", "error", "input", "name",
    "welcome", "save", "delete", "update", "create", "status",
    "selection", "permission", "creation", "modification",
)


@dataclass(frozen=True)
class ContentKey:
    actor: str
    action: str
    subject: str
    modifiers: List[str] = field(default_factory=list)
    is_valid: bool = True
    raw: str = ""

    @classmethod
    def parse(cls, key: str) -> "ContentKey":
        raw = (key or "").strip()
        parts = raw.split(".")
        if len(parts) < 3 or any(not p for p in parts):
            return cls("", "", "", [], is_valid=False, raw=raw)
        return cls(parts[0], parts[1], parts[2], parts[3:], is_valid=True, raw=raw)

    @classmethod
    def from_path(cls, path: str | Path) -> "ContentKey":
        """Recover the key from a `content/<actor>/<action>/<file>.txt` address.

        Underscores in the file stem are read as modifier separators, so keys
        whose subject contains '_' do not survive this direction.
        """
        parts = Path(str(path).replace("\\", "/")).parts
        if CONTENT_DIR not in parts:
            raise ContentKeyError(f"Not a content address: {path}")
        rel = parts[parts.index(CONTENT_DIR) + 1:]
        if len(rel) != 3 or not rel[2].endswith(".txt"):
            raise ContentKeyError(f"Not a content address: {path}")
        actor, action, filename = rel
        subject, *modifiers = filename[: -len(".txt")].split("_")
        return cls.parse(".".join([actor, action, subject, *modifiers]))

    def require_valid(self) -> "ContentKey":
        if not self.is_valid:
            raise ContentKeyError(f"Invalid contentKey format: {self.raw!r} (expected actor.action.subject[.modifier]*)")
        return self

    @property
    def key(self) -> str:
        return ".".join([self.actor, self.action, self.subject, *self.modifiers])

    def file_name(self, subject: Optional[str] = None, modifiers: Optional[List[str]] = None) -> str:
        subj = self.subject if subject is None else subject
        mods = self.modifiers if modifiers is None else modifiers
        return f"{subj}_{'_'.join(mods)}.txt" if mods else f"{subj}.txt"

    def to_file_path(self) -> str:
        self.require_valid()
        return f"{self.siblings_dir()}{self.file_name()}"

    def siblings_dir(self) -> str:
        self.require_valid()
        return f"{CONTENT_DIR}/{self.actor}/{self.action}/"

    def fallback_paths(self) -> List[str]:
        """Candidate addresses from most to least specific.

        Full modifier chain, then progressively shorter chains, the bare
        subject, the generic subject with the same reductions, and finally the
        action's default.txt.
        """
        base = self.siblings_dir()
        out: List[str] = []

        def _chain(subject: str) -> None:
            for n in range(len(self.modifiers), 0, -1):
                out.append(base + self.file_name(subject, self.modifiers[:n]))
            out.append(base + self.file_name(subject, []))

        _chain(self.subject)
        generic = generic_subject(self.subject)
        if generic != self.subject:
            _chain(generic)
        out.append(base + "default.txt")
        return out


def generic_subject(subject: str) -> str:
    for suffix in GENERIC_SUBJECT_SUFFIXES:
        if subject.endswith(suffix) and subject != suffix:
            return suffix
    return subject


def decode(key: str) -> ContentKey:
    return ContentKey.parse(key)


def encode_path(key: str | ContentKey) -> str:
    ck = key if isinstance(key, ContentKey) else ContentKey.parse(key)
    return ck.to_file_path()


def siblings_dir(key: str | ContentKey) -> str:
    ck = key if isinstance(key, ContentKey) else ContentKey.parse(key)
    return ck.siblings_dir()
