"""Template application and the generation prompt builder.

This module centralizes:
- apply_template / apply_template_text (bracket-token replacement)
- system_prompt (built-in text, or <base>/prompts/variants_system_prompt.md when present)
- GenerationPrompt and build_prompt
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import BUBBLE_SEPARATOR, PipelineConfig
from .env import get_base_dir
from .resolver import ResolvedPath
from .utils import read_text
from .window import ContextTurn

SYSTEM_TEMPLATE_NAME = "prompts/variants_system_prompt.md"

DEFAULT_SYSTEM_TEMPLATE = (
    "You are a UX writer for a friendly accountability chat bot. "
    "Write multiple alternative lines for the specified contentKey. "
    "Keep placeholders like {user.name} exactly unchanged. "
    "Use [SEPARATOR] to split long messages into multiple bubbles (max [MAX_BUBBLES]). "
    "[EMOJI_RULE] "
    "Tone: [TONE]. Concise, natural, no marketing fluff."
)

OUTPUT_FORMAT = {"type": "json", "schema": {"variants": ["string"]}}


def apply_template_text(template: str, replacements: Dict[str, str]) -> str:
    for k, v in replacements.items():
        template = template.replace(k, v)
    return template


def apply_template(template_path: str | Path, replacements: Dict[str, str]) -> str:
    return apply_template_text(read_text(template_path), replacements)


def system_replacements(config: PipelineConfig) -> Dict[str, str]:
    return {
        "[SEPARATOR]": BUBBLE_SEPARATOR,
        "[MAX_BUBBLES]": str(config.gen.max_bubbles_per_line),
        "[EMOJI_RULE]": "Do not use emojis." if config.style.forbid_emojis else "",
        "[TONE]": ", ".join(config.style.tone),
    }


def system_prompt(config: PipelineConfig, template_path: Optional[str | Path] = None) -> str:
    path = Path(template_path) if template_path else get_base_dir() / SYSTEM_TEMPLATE_NAME
    reps = system_replacements(config)
    if path.exists():
        return apply_template(path, reps).strip()
    return apply_template_text(DEFAULT_SYSTEM_TEMPLATE, reps)


@dataclass(frozen=True)
class GenerationPrompt:
    system: str
    content_key: str
    target_path: str
    constraints: Dict[str, Any]
    context: List[Dict[str, Any]] = field(default_factory=list)
    existing_variants: List[str] = field(default_factory=list)
    sibling_exemplars: List[str] = field(default_factory=list)
    path: Optional[Dict[str, Any]] = None
    default_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "system": self.system,
            "task": {
                "contentKey": self.content_key,
                "targetPath": self.target_path,
                "constraints": dict(self.constraints),
            },
            "context": list(self.context),
            "exemplars": {
                "existingVariants": list(self.existing_variants),
                "siblingExemplars": list(self.sibling_exemplars),
            },
            "output_format": OUTPUT_FORMAT,
        }
        if self.default_text:
            d["task"]["defaultText"] = self.default_text
        if self.path is not None:
            d["path"] = self.path
        return d


def build_prompt(
    config: PipelineConfig,
    *,
    content_key: str,
    target_path: str,
    context: List[ContextTurn],
    existing_variants: List[str],
    sibling_exemplars: List[str],
    resolved: Optional[ResolvedPath] = None,
    system: Optional[str] = None,
    default_text: str = "",
) -> GenerationPrompt:
    constraints = {
        "numVariants": config.gen.num_variants,
        "maxBubblesPerLine": config.gen.max_bubbles_per_line,
        "maxCharsPerBubble": config.gen.max_chars_per_bubble,
        "preservePlaceholders": config.style.preserve_placeholders,
    }
    path_summary = None
    if resolved is not None:
        path_summary = {
            "steps": resolved.describe(),
            "length": len(resolved),
            "fellBack": resolved.fell_back,
        }
    return GenerationPrompt(
        system=system if system is not None else system_prompt(config),
        content_key=content_key,
        target_path=target_path,
        constraints=constraints,
        context=[t.to_dict() for t in context],
        existing_variants=list(existing_variants),
        sibling_exemplars=list(sibling_exemplars[: config.context.max_exemplars]),
        path=path_summary,
        default_text=default_text or "",
    )
