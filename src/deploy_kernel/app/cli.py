from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from deploy_kernel.config.loader import ConfigError, load_config
from deploy_kernel.config.models import AppConfig
from deploy_kernel.kernel.composition_root import DeployRuntime, build_runtime
from deploy_kernel.kernel.dag import DependencyResolver
from deploy_kernel.kernel.errors import DeployKernelError
from deploy_kernel.kernel.run_result import RunResult

EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_INVALID = 2

# The CLI is a thin shell over the composition root; orchestration logic lives in the kernel.


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deploy-kernel", description="Run deploy steps in dependency order")
    parser.add_argument("--config", required=True, help="Path to YAML config")
    parser.add_argument("--tags", nargs="+", default=None, help="Only run steps carrying any of these tags (plus dependencies)")
    parser.add_argument("--force", nargs="+", default=None, help="Step names to re-run even if already satisfied")
    parser.add_argument("--network-tag", nargs="+", default=None, help="Extra environment feature flags")
    parser.add_argument("--store", help="Override artifact store directory (selects the JSON store)")
    parser.add_argument("--max-workers", type=int, help="Run independent steps on this many threads")
    parser.add_argument("--log-path", help="Append structured JSONL logs to this file")
    parser.add_argument("--plan", action="store_true", help="Print the resolved order and exit")
    parser.add_argument("--json", action="store_true", help="Print the run result as JSON")
    parser.add_argument("--quiet", action="store_true", help="Disable console progress lines")
    return parser


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    # Caller passes argv for testability.
    return build_parser().parse_args(argv)


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> None:
    # CLI flags take precedence over file values.
    if args.tags is not None:
        config.selection.tags = list(args.tags)
    if args.force is not None:
        config.selection.force = list(args.force)
    if args.network_tag is not None:
        config.environment.tags = sorted(set(config.environment.tags) | set(args.network_tag))
    if args.store is not None:
        config.store.kind = "json"
        config.store.path = args.store
    if args.max_workers is not None:
        if args.max_workers < 1:
            raise ConfigError("--max-workers must be >= 1")
        config.execution.max_workers = args.max_workers
    if args.log_path is not None:
        config.logging.jsonl_path = args.log_path
    if args.quiet or args.json or args.plan:
        # Machine-readable output owns stdout.
        config.logging.console = False


def run(argv: Sequence[str] | None = None, *, stdout: TextIO | None = None, stderr: TextIO | None = None) -> int:
    out = stdout if stdout is not None else sys.stdout
    err = stderr if stderr is not None else sys.stderr
    args = parse_args(argv)
    try:
        config = load_config(Path(args.config))
        apply_cli_overrides(config, args)
        runtime = build_runtime(config=config)
    except (ConfigError, DeployKernelError) as exc:
        err.write(f"error: {exc}\n")
        return EXIT_INVALID

    try:
        if args.plan:
            return _print_plan(runtime, out, err)
        try:
            result = runtime.run()
        except DeployKernelError as exc:
            # Structural problems (unknown force target, cycles) stop the run before any step.
            err.write(f"error: {exc}\n")
            return EXIT_INVALID
    finally:
        runtime.close()

    if args.json:
        out.write(json.dumps(result.to_dict(), indent=2, sort_keys=True) + "\n")
    return report_exit(result, err)


def report_exit(result: RunResult, err: TextIO) -> int:
    # Zero only when every step was skipped or succeeded.
    if result.ok:
        return EXIT_OK
    for failure in result.failures:
        err.write(f"FAILED {failure.step_id}: {failure.reason}\n")
        if len(failure.chain) > 1:
            err.write(f"  chain: {' -> '.join(failure.chain)}\n")
    return EXIT_STEP_FAILED


def _print_plan(runtime: DeployRuntime, out: TextIO, err: TextIO) -> int:
    try:
        order = runtime.engine.plan(runtime.tags)
    except DeployKernelError as exc:
        err.write(f"error: {exc}\n")
        return EXIT_INVALID
    resolver = DependencyResolver(runtime.registry)
    for index, step in enumerate(order, start=1):
        dependencies = ", ".join(dependency.name for dependency in resolver.dependencies_of(step))
        line = f"{index:>3}. {step.id}"
        if dependencies:
            line += f"  <- {dependencies}"
        out.write(line + "\n")
    return EXIT_OK
