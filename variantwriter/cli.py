"""VariantWriter CLI entrypoint.

Usage:
  variantwriter --sequence <id> --message <id> [--write] [--state <file>] [--config <path>]
  variantwriter --list <targets.txt> [--write] [--state <file>] [--config <path>]

Each target is processed in turn; failures are logged and counted, and the
batch continues unless fail-fast is set. Exit code is 0 when every target
succeeded, 1 when any failed, 2 on usage or setup errors.
"""
from __future__ import annotations

import argparse
import os
import sys
import traceback
from typing import Any, List, Optional

from .context import RunContext, VWError, load_config_tree
from .env import load_env, resolve_under_base
from .logging import breadcrumb as _breadcrumb, init_run_logs as _init_run_logs, log_error_base as _log_error_base, log_run as _log_run
from .pipelines import Target, load_targets_from_list, process_target, state_for


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="variantwriter", description="Generate phrasing variants for dialogue content keys")
    parser.add_argument("--sequence", help="Sequence id of a single target")
    parser.add_argument("--message", type=int, help="Message id of a single target")
    parser.add_argument("--list", dest="list_path", help="File of seq:msg lines (blank lines and # comments skipped)")
    parser.add_argument("--config", dest="config_path", help="Pipeline config (default: VW_CONFIG_PATH or tool/variants_config.yaml)")
    parser.add_argument("--state", dest="state_path", help="State file used to resolve the path to each target")
    parser.add_argument("--write", action="store_true", help="Append accepted variants to the content files")
    parser.add_argument("--fail-fast", action="store_true", dest="fail_fast", help="Stop at the first failed target")
    parser.add_argument("--base", dest="base_dir", help="Override VW_BASE_DIR for this run")
    parser.add_argument("--verbose", "-v", action="store_true", help="Echo breadcrumbs and tracebacks to stderr")
    return parser.parse_args(argv)


def _targets(ns: argparse.Namespace) -> Optional[List[Target]]:
    if ns.list_path:
        return load_targets_from_list(resolve_under_base(ns.list_path))
    if ns.sequence and ns.message is not None:
        return [Target(ns.sequence, ns.message)]
    return None


def main(argv: list[str] | None = None) -> int:
    load_env()
    argv_list = list(sys.argv[1:] if argv is None else argv)
    try:
        ns = _parse_args(argv_list)
    except SystemExit as e:
        return 0 if e.code == 0 else 2

    if ns.base_dir:
        os.environ["VW_BASE_DIR"] = str(ns.base_dir)
    if ns.verbose:
        os.environ["VW_VERBOSE"] = "1"
    _init_run_logs()

    try:
        targets = _targets(ns)
    except VWError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    if not targets:
        print("ERROR: Provide --sequence and --message, or --list <file>.", file=sys.stderr)
        return 2

    try:
        ctx = RunContext.from_env(ns.config_path)
        state_tree: Any = load_config_tree(resolve_under_base(ns.state_path)) if ns.state_path else None
    except VWError as e:
        _log_error_base(f"setup failed: {e}")
        return 2

    verbose = ns.verbose or ctx.config.io.verbose
    fail_fast = ns.fail_fast or ctx.config.io.fail_fast
    _log_run(
        f"=== START RUN === targets={len(targets)} write={ns.write} "
        f"mock={ctx.config.mock_generation} config={ctx.config_path}"
    )

    ok = 0
    failed = 0
    for t in targets:
        print(f"-> Processing {t}")
        try:
            state = state_for(ctx, t, state_tree)
            outcome = process_target(ctx, t, ns.write, state)
            print(f"   Generated {len(outcome.accepted)} variants")
            ok += 1
        except Exception as e:
            _log_error_base(f"{t}: {type(e).__name__}: {e}")
            print(f"   FAILED: {e}", file=sys.stderr)
            if verbose:
                traceback.print_exc()
            failed += 1
            if fail_fast:
                _breadcrumb("cli:fail-fast")
                break

    print(f"\nDone. ok={ok} fail={failed}")
    _log_run(f"=== END RUN === ok={ok} fail={failed}")
    return 1 if failed else 0


if __name__ == "__main__":
    code = main()
    raise SystemExit(code)
