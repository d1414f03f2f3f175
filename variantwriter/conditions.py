"""Routing condition evaluator.

Grammar, lowest to highest precedence:

    expr       := and_expr ( '||' and_expr )*
    and_expr   := comparison ( '&&' comparison )*
    comparison := operand OP operand | operand      OP in == != > < >= <=

Operators are found by a left-to-right scan that skips anything inside single
or double quotes. Operands are variables (looked up in the supplied mapping by
their dotted key, either flat `{"user.name": ..}` or nested
`{"user": {"name": ..}}`) or literals: null, true, false, quoted strings,
ints, floats, and bare strings. A dotted name that is not present in the
mapping resolves to None.

Evaluation never raises: ordering comparisons on non-numbers are False and
unparsable tokens are treated as opaque strings.
"""
from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Tuple

_COMPARISON_OPS = (">=", "<=", "!=", "==", ">", "<")
_INT_RE = re.compile(r"^[-+]?\d+$")
_FLOAT_RE = re.compile(r"^[-+]?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")
_DOTTED_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)+$")

_MISSING = object()


def _split_outside_quotes(text: str, op: str) -> List[str]:
    parts: List[str] = []
    quote: Optional[str] = None
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif text.startswith(op, i):
            parts.append(text[start:i])
            i += len(op)
            start = i
            continue
        i += 1
    parts.append(text[start:])
    return parts


def _find_comparison(text: str) -> Optional[Tuple[str, str, str]]:
    """Return (left, op, right) for the first comparison operator outside quotes."""
    quote: Optional[str] = None
    for i, ch in enumerate(text):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
            continue
        for op in _COMPARISON_OPS:
            if text.startswith(op, i):
                return text[:i].strip(), op, text[i + len(op):].strip()
    return None


def parse_literal(token: str) -> Any:
    t = token.strip()
    if t == "null":
        return None
    if t == "true":
        return True
    if t == "false":
        return False
    if len(t) >= 2 and t[0] == t[-1] and t[0] in ("'", '"'):
        return t[1:-1]
    if _INT_RE.match(t):
        return int(t)
    if _FLOAT_RE.match(t):
        return float(t)
    return t


def lookup(values: Mapping[str, Any], key: str) -> Any:
    """Find a dotted key in a flat or nested mapping; _MISSING when absent."""
    if key in values:
        return values[key]
    node: Any = values
    for part in key.split("."):
        if isinstance(node, Mapping) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


def _is_literal(token: str) -> bool:
    t = token.strip()
    if t in ("null", "true", "false"):
        return True
    if len(t) >= 2 and t[0] == t[-1] and t[0] in ("'", '"'):
        return True
    return bool(_INT_RE.match(t) or _FLOAT_RE.match(t))


def resolve_operand(token: str, values: Mapping[str, Any]) -> Any:
    t = token.strip()
    if t and not _is_literal(t):
        found = lookup(values, t)
        if found is not _MISSING:
            return found
        if _DOTTED_NAME_RE.match(t):
            return None
    return parse_literal(t)


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        s = value.strip()
        if _INT_RE.match(s):
            return int(s)
        if _FLOAT_RE.match(s):
            return float(s)
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def values_equal(left: Any, right: Any) -> bool:
    ln, rn = to_number(left), to_number(right)
    if ln is not None and rn is not None:
        return ln == rn
    if left is None or right is None:
        return left is None and right is None
    if type(left) is type(right) and left == right:
        return True
    return _as_text(left) == _as_text(right)


def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) > 0
    return True


def _compare(left: Any, op: str, right: Any) -> bool:
    if op == "==":
        return values_equal(left, right)
    if op == "!=":
        return not values_equal(left, right)
    ln, rn = to_number(left), to_number(right)
    if ln is None or rn is None:
        return False
    if op == ">":
        return ln > rn
    if op == "<":
        return ln < rn
    if op == ">=":
        return ln >= rn
    if op == "<=":
        return ln <= rn
    return False


def _evaluate_single(expression: str, values: Mapping[str, Any]) -> bool:
    text = expression.strip()
    if not text:
        return False
    found = _find_comparison(text)
    if found is None:
        if _is_literal(text):
            return is_truthy(parse_literal(text))
        value = lookup(values, text)
        return is_truthy(None if value is _MISSING else value)
    left, op, right = found
    return _compare(resolve_operand(left, values), op, resolve_operand(right, values))


def evaluate(expression: str, values: Optional[Mapping[str, Any]] = None) -> bool:
    """Evaluate a routing condition against a variable mapping."""
    vals: Mapping[str, Any] = values or {}
    for disjunct in _split_outside_quotes(expression or "", "||"):
        conjuncts = _split_outside_quotes(disjunct, "&&")
        if all(_evaluate_single(c, vals) for c in conjuncts):
            return True
    return False
