"""Variant generation pipeline for one target message.

Stages: load node -> content key -> resolve path -> context window ->
exemplars -> prompt -> generate -> validate -> archive -> append (write mode).

The archive record is written whether generation succeeds or not, once the
target and its content key are known. Accepted variants are appended only
after the whole batch has been validated.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..artifacts import append_variants, build_archive_record, write_archive
from ..content_key import ContentKey
from ..context import RunContext, TargetError
from ..env import collect_program_env_snapshot
from ..exemplars import collect_siblings, existing_variants, sample_phrasings
from ..llm import GenerationResult, Generator
from ..logging import breadcrumb as _breadcrumb, log_run as _log_run
from ..resolver import ResolvedPath, resolve
from ..state import StateSpec
from ..templates import build_prompt
from ..utils import read_lines_if_exists
from ..validation import validate_report
from ..window import ContextTurn, build as build_window, fallback_turns


@dataclass(frozen=True)
class Target:
    sequence_id: str
    message_id: int

    def __str__(self) -> str:
        return f"{self.sequence_id}:{self.message_id}"


@dataclass
class ProcessOutcome:
    target: Target
    content_key: str
    target_file: Path
    accepted: List[str] = field(default_factory=list)
    rejected: List[Any] = field(default_factory=list)
    path: Optional[ResolvedPath] = None
    archive_path: Optional[Path] = None
    written: int = 0


def parse_target_line(line: str) -> Target:
    parts = line.split(":")
    if len(parts) != 2 or not parts[0].strip():
        raise TargetError(f"Invalid target line (expected seq:msg): {line}")
    try:
        msg_id = int(parts[1].strip())
    except ValueError:
        raise TargetError(f"Invalid message id in line: {line}")
    return Target(parts[0].strip(), msg_id)


def load_targets_from_list(path: str | Path) -> List[Target]:
    p = Path(path)
    if not p.exists():
        raise TargetError(f"Targets file not found: {path}")
    return [parse_target_line(ln) for ln in read_lines_if_exists(p) if not ln.startswith("#")]


def state_for(ctx: RunContext, target: Target, tree: Any = None) -> StateSpec:
    """StateSpec for a target: from a parsed state tree, or the target sequence's entry."""
    trav = ctx.config.traversal
    if tree is None:
        return StateSpec.default_for(target.sequence_id, max_depth=trav.max_depth, max_paths=trav.max_paths)
    return StateSpec.from_tree(
        tree,
        default_sequence=target.sequence_id,
        max_depth=trav.max_depth,
        max_paths=trav.max_paths,
    )


def process_target(
    ctx: RunContext,
    target: Target,
    write_mode: bool,
    state: Optional[StateSpec] = None,
    *,
    generator: Optional[Generator] = None,
) -> ProcessOutcome:
    cfg = ctx.config
    _breadcrumb(f"variants:start {target}")

    # 1) Target node and its content key
    node = ctx.index.node(target.sequence_id, target.message_id)
    if not node.content_key:
        raise TargetError(f"Message {target.message_id} has no contentKey. Add one first.")
    key = ContentKey.parse(node.content_key).require_valid()
    rel_file = key.to_file_path()
    target_file = ctx.content_root / rel_file

    # 2) Path from the state's entry to the target
    state = state or state_for(ctx, target)
    path = resolve(ctx.index, state, (target.sequence_id, target.message_id))
    if path.fell_back:
        _log_run(f"variants:path-fallback {target}")

    # 3) Context window along the path
    def _samples(k: str) -> List[str]:
        return sample_phrasings(k, ctx.content_root, cfg.context.sample_phrasings)

    turns: List[ContextTurn] = build_window(path, ctx.index, cfg.context.history_bubbles, _samples)
    if path.fell_back:
        turns = fallback_turns(node)

    # 4) Exemplars
    existing = existing_variants(key, ctx.content_root)
    siblings = collect_siblings(key, ctx.content_root, cfg.context.max_exemplars) if cfg.context.include_sibling_exemplars else []

    # 5) Prompt
    prompt = build_prompt(
        cfg,
        content_key=key.key,
        target_path=rel_file,
        context=turns,
        existing_variants=existing,
        sibling_exemplars=siblings,
        resolved=path,
        default_text=node.text,
    ).to_dict()

    target_info: Dict[str, Any] = {
        "sequenceId": target.sequence_id,
        "messageId": target.message_id,
        "contentKey": key.key,
        "targetFile": rel_file,
    }
    outcome = ProcessOutcome(target=target, content_key=key.key, target_file=target_file, path=path)

    def _archive(result: Optional[GenerationResult], accepted: List[str], error: Optional[str]) -> Path:
        record = build_archive_record(
            target=target_info,
            config=cfg.to_dict(),
            state=state.to_dict(),
            path=path.to_dict(),
            resolution={"fellBack": path.fell_back, "explored": path.explored, "steps": path.describe()},
            context=[t.to_dict() for t in turns],
            exemplars={"siblingSample": siblings, "existingVariants": existing},
            prompt=prompt,
            request=result.request if result else None,
            response=result.raw if result else None,
            accepted=accepted,
            write_mode=write_mode,
            environment=collect_program_env_snapshot(cfg.provider.api_key_env),
            error=error,
        )
        return write_archive(ctx.archive_dir, record)

    # 6) Generate and validate
    gen = generator or Generator(cfg)
    try:
        result = gen.generate(prompt)
        report = validate_report(result.variants, existing, cfg)
    except Exception as e:
        outcome.archive_path = _archive(None, [], f"{type(e).__name__}: {e}")
        raise
    outcome.accepted = list(report.accepted)
    outcome.rejected = list(report.rejected)
    _log_run(f"variants:validated {target} accepted={len(report.accepted)} rejected={len(report.rejected)}")

    # 7) Archive, then append
    outcome.archive_path = _archive(result, outcome.accepted, None)
    if write_mode:
        outcome.written = append_variants(target_file, outcome.accepted)
        _log_run(f"variants:appended {target} n={outcome.written} file={target_file}")
    else:
        print(f"   (dry-run) Would append to: {rel_file}")
        for v in outcome.accepted:
            print(f"   + {v}")
    return outcome
