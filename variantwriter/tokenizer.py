"""Token counting helpers using tiktoken.

- count_text_tokens(text: str, model: str) -> int
- count_chat_tokens(messages: list[dict], model: str) -> int
- estimate_prompt_tokens(prompt: dict) -> int

Unknown model names use the o200k_base encoding. Prompts for generic-json
backends are estimated by characters instead (VW_CHARS_PER_TOKEN, default 4).
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, List

import tiktoken


def _encoding_for_model(model: str):
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        pass
    for name in ("o200k_base", "cl100k_base"):
        try:
            return tiktoken.get_encoding(name)
        except Exception:
            continue
    return None


def _chars_per_token() -> float:
    try:
        cpt = float(os.getenv("VW_CHARS_PER_TOKEN", "4") or "4")
    except ValueError:
        cpt = 4.0
    return cpt if cpt > 0 else 4.0


def count_text_tokens(text: str, model: str) -> int:
    enc = _encoding_for_model(model)
    if enc is None:
        return int((len(text or "") / _chars_per_token()) + 0.5)
    return len(enc.encode(text or ""))


def count_chat_tokens(messages: List[Dict[str, str]], model: str) -> int:
    """Approximate tokens for chat messages.

    Each message carries a fixed overhead of 3 tokens (plus 1 for a name),
    and every reply is primed with 3 more.
    """
    enc = _encoding_for_model(model)
    if enc is None:
        total = 0
        for m in messages:
            total += count_text_tokens(str(m.get("role", "")), model)
            total += count_text_tokens(str(m.get("content", "")), model)
        return total + 6
    total = 0
    for m in messages:
        total += 3
        total += len(enc.encode(str(m.get("role", ""))))
        total += len(enc.encode(str(m.get("content", ""))))
        if m.get("name"):
            total += 1
            total += len(enc.encode(str(m.get("name"))))
    return total + 3


def estimate_prompt_tokens(prompt: Dict[str, Any]) -> int:
    """Chars-per-token estimate for prompts sent to non-OpenAI backends."""
    return int((len(json.dumps(prompt, ensure_ascii=False)) / _chars_per_token()) + 0.5)
