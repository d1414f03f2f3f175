"""Minimal parser for the indented config subset used by variant configs.

Supported:
- `key: value` maps nested by indentation (any consistent number of spaces per level)
- `- item` lists, `-` on its own line starting a nested map, and `- key: value`
  starting an inline map item
- flow lists `[a, 'b', 3]` with per-element scalar coercion, plus `{}` / `[]`
- scalars: null/~, true/false, ints, floats, quoted or bare strings
- `#` comments (whole line, or after whitespace outside quotes)

Anchors, aliases, multi-line strings and flow maps are not supported.
Structural problems raise ConfigStructureError with the 1-based line number.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from .context import ConfigStructureError

ConfigValue = Union[None, bool, int, float, str, List["ConfigValue"], Dict[str, "ConfigValue"]]

_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")
_KEY_START_RE = re.compile(r"""^[^\s'"\[\]{}#,\-]|^-[^\s]""")


@dataclass
class _Frame:
    indent: int
    container: Union[Dict[str, ConfigValue], List[ConfigValue]]
    child_indent: Optional[int] = None

    @property
    def is_list(self) -> bool:
        return isinstance(self.container, list)


# (line_no, indent, body)
_Line = Tuple[int, int, str]


def _strip_comment(line: str) -> str:
    quote: Optional[str] = None
    for i, ch in enumerate(line):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "#" and (i == 0 or line[i - 1] in (" ", "\t")):
            return line[:i]
    return line


def _leading_spaces(line: str) -> int:
    n = 0
    while n < len(line) and line[n] == " ":
        n += 1
    return n


def _significant_lines(text: str) -> List[_Line]:
    out: List[_Line] = []
    for no, raw in enumerate(text.replace("\r\n", "\n").split("\n"), start=1):
        line = _strip_comment(raw).rstrip()
        if not line.strip():
            continue
        indent = _leading_spaces(line)
        if line[indent:indent + 1] == "\t":
            raise ConfigStructureError("tab characters are not allowed in indentation", no)
        out.append((no, indent, line[indent:]))
    return out


def _is_list_item(body: str) -> bool:
    return body == "-" or body.startswith("- ")


def _split_key(body: str) -> Optional[Tuple[str, str]]:
    """Split `key: rest` on the first colon outside quotes that ends the key."""
    quote: Optional[str] = None
    for i, ch in enumerate(body):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == ":" and (i + 1 == len(body) or body[i + 1] == " "):
            key = body[:i].strip()
            if not key:
                return None
            return _unquote(key), body[i + 1:].strip()
    return None


def _looks_like_key(item: str) -> bool:
    return bool(_KEY_START_RE.match(item)) and _split_key(item) is not None


def _unquote(s: str) -> str:
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        inner = s[1:-1]
        if s[0] == '"':
            inner = inner.replace('\\"', '"').replace("\\\\", "\\")
        return inner
    return s


def _split_flow(inner: str) -> List[str]:
    parts: List[str] = []
    quote: Optional[str] = None
    start = 0
    for i, ch in enumerate(inner):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == ",":
            parts.append(inner[start:i])
            start = i + 1
    parts.append(inner[start:])
    return [p.strip() for p in parts if p.strip()]


def parse_scalar(s: str) -> ConfigValue:
    s = s.strip()
    if s.startswith("[") and s.endswith("]"):
        return [parse_scalar(e) for e in _split_flow(s[1:-1])]
    if s == "{}":
        return {}
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        return _unquote(s)
    if s in ("null", "~"):
        return None
    if s == "true":
        return True
    if s == "false":
        return False
    if _INT_RE.match(s):
        return int(s)
    if _FLOAT_RE.match(s):
        return float(s)
    return s


class _Parser:
    def __init__(self, lines: List[_Line]):
        self.lines = lines
        root: Union[Dict[str, ConfigValue], List[ConfigValue]]
        root = [] if (lines and _is_list_item(lines[0][2])) else {}
        self.root = root
        self.stack: List[_Frame] = [_Frame(indent=-1, container=root)]

    def run(self) -> ConfigValue:
        for pos, (no, indent, body) in enumerate(self.lines):
            while indent <= self.stack[-1].indent:
                self.stack.pop()
            top = self.stack[-1]
            if top.child_indent is None:
                top.child_indent = indent
            elif indent != top.child_indent:
                raise ConfigStructureError("indentation does not match any open block", no)

            if _is_list_item(body):
                self._list_item(pos, no, indent, body, top)
            else:
                if top.is_list:
                    raise ConfigStructureError(f"mapping entry where a list item is expected: {body!r}", no)
                self._key_line(pos, no, indent, body, top)
        return self.root

    def _list_item(self, pos: int, no: int, indent: int, body: str, top: _Frame) -> None:
        if not top.is_list:
            raise ConfigStructureError(f"list item where a mapping is expected: {body!r}", no)
        items = top.container
        assert isinstance(items, list)
        item = body[1:].strip()
        if not item:
            child: Dict[str, ConfigValue] = {}
            items.append(child)
            self.stack.append(_Frame(indent=indent, container=child))
        elif _looks_like_key(item):
            child = {}
            items.append(child)
            key_col = indent + len(body) - len(body[1:].lstrip())
            frame = _Frame(indent=indent, container=child, child_indent=key_col)
            self.stack.append(frame)
            self._key_line(pos, no, key_col, item, frame)
        else:
            items.append(parse_scalar(item))

    def _key_line(self, pos: int, no: int, indent: int, body: str, frame: _Frame) -> None:
        split = _split_key(body)
        if split is None:
            raise ConfigStructureError(f"expected 'key: value', got {body!r}", no)
        key, rest = split
        target = frame.container
        assert isinstance(target, dict)
        if rest:
            target[key] = parse_scalar(rest)
            return
        # Empty value: the next significant line decides list vs map
        peek = self.lines[pos + 1] if pos + 1 < len(self.lines) else None
        if peek is None or peek[1] <= indent:
            target[key] = None
            return
        child: Union[Dict[str, ConfigValue], List[ConfigValue]]
        child = [] if _is_list_item(peek[2]) else {}
        target[key] = child
        self.stack.append(_Frame(indent=indent, container=child))


def parse(text: str) -> ConfigValue:
    """Parse indented config text into nested dicts/lists/scalars."""
    return _Parser(_significant_lines(text)).run()
