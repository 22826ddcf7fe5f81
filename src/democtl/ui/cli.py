"""Command-line interface router for democtl."""

from __future__ import annotations

import argparse
import json
import sys
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from democtl.checks import CheckRunner, ExecutionSettings, RunResult, VerificationFailedError
from democtl.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    redact_config,
)
from democtl.constants import (
    PATCH_STAGES,
    SCENARIO_TYPES,
    STAGE_BROKEN,
    STAGE_SOLVED,
    TRACK_ENGINEERING,
)
from democtl.domain.catalog import Scenario, discover, find_repo_root, resolve
from democtl.domain.manifest import CheckKind, ManifestError
from democtl.domain.validation import validate_all
from democtl.observability import WarningCollector, setup_logging, shutdown_logging
from democtl.ui.render import CLIRenderer, create_renderer
from democtl.utils.fs import atomic_write
from democtl.workspace import WorktreeManager, validate_all_patches


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class _Session:
    """Per-invocation state shared by command handlers."""

    repo_root: Path
    config: dict[str, Any]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="democtl",
        description=(
            "democtl: verify demo scenarios and manage their git worktrees.\n\n"
            "Common workflows:\n"
            "  democtl checks verify sre/cpu-spike      Run verification checks\n"
            "  democtl checks health sre/cpu-spike      Run health checks (never fails)\n"
            "  democtl worktree init eng/search-bug     Build a scenario worktree\n"
            "  democtl validate-patches --strict        Validate every patch series\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=None,
        help="Repository root (default: paths.repo_root, else the nearest parent with demo/).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to democtl TOML config (default: ./democtl.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and debug logs.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # checks --------------------------------------------------------------
    checks_parser = subparsers.add_parser(
        "checks",
        help="Run scenario checks",
        description="Run the verify or health checks declared by a scenario manifest.",
    )
    checks_sub = checks_parser.add_subparsers(dest="checks_command", required=True)
    for kind, summary in (
        (CheckKind.VERIFY, "Run verification checks (stops at the first failure)"),
        (CheckKind.HEALTH, "Run health checks (all checks run, never fails)"),
    ):
        kind_parser = checks_sub.add_parser(
            kind.value,
            parents=[common],
            help=summary,
            description=(
                f"{summary}.\n\n"
                "Examples:\n"
                f"  democtl checks {kind.value} sre/cpu-spike\n"
                f"  democtl checks {kind.value} sre/cpu-spike --stage solved --only k8s\n"
                f"  democtl checks {kind.value} sre/cpu-spike --json --report out.json\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        kind_parser.add_argument("scenario", help="Scenario identifier (track/slug)")
        _add_check_options(kind_parser)
        kind_parser.set_defaults(handler=_cmd_checks, check_kind=kind.value)

    # solve ---------------------------------------------------------------
    solve_parser = subparsers.add_parser(
        "solve",
        parents=[common],
        help="Reset an engineering worktree to the solved stage and verify it",
        description=(
            "Rebuild the scenario worktree at the solved stage, then run its solved-stage\n"
            "verify checks. A failing verification is reported as a warning only.\n\n"
            "Examples:\n"
            "  democtl solve eng/search-bug\n"
            "  democtl solve eng/search-bug --headed\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    solve_parser.add_argument("scenario", help="Scenario identifier (track/slug)")
    _add_type_option(solve_parser)
    solve_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    solve_parser.add_argument(
        "--headed", action="store_true", default=None, help="Run the UI suite in a visible browser"
    )
    solve_parser.set_defaults(handler=_cmd_solve)

    # worktree ------------------------------------------------------------
    worktree_parser = subparsers.add_parser(
        "worktree",
        help="Manage engineering scenario worktrees",
        description="Create, reset and remove per-scenario git worktrees.",
    )
    worktree_sub = worktree_parser.add_subparsers(dest="worktree_command", required=True)

    init_parser = worktree_sub.add_parser(
        "init",
        parents=[common],
        help="Create the worktree at the base revision plus the broken series",
    )
    init_parser.add_argument("scenario", help="Scenario identifier (track/slug)")
    _add_type_option(init_parser)
    init_parser.set_defaults(handler=_cmd_worktree_init)

    reset_parser = worktree_sub.add_parser(
        "reset",
        parents=[common],
        help="Discard local changes and rebuild the worktree at a stage",
        description=(
            "Reset the worktree to the base revision and apply one patch series.\n\n"
            "Examples:\n"
            "  democtl worktree reset eng/search-bug\n"
            "  democtl worktree reset eng/search-bug --stage solved\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    reset_parser.add_argument("scenario", help="Scenario identifier (track/slug)")
    reset_parser.add_argument(
        "--stage",
        choices=PATCH_STAGES,
        default=STAGE_BROKEN,
        help=f"Patch series to apply (default: {STAGE_BROKEN})",
    )
    _add_type_option(reset_parser)
    reset_parser.set_defaults(handler=_cmd_worktree_reset)

    remove_parser = worktree_sub.add_parser(
        "remove",
        parents=[common],
        help="Remove one scenario worktree",
    )
    remove_parser.add_argument("scenario", help="Scenario identifier (track/slug)")
    _add_type_option(remove_parser)
    remove_parser.set_defaults(handler=_cmd_worktree_remove)

    remove_all_parser = worktree_sub.add_parser(
        "remove-all",
        parents=[common],
        help="Remove every engineering scenario worktree",
    )
    remove_all_parser.set_defaults(handler=_cmd_worktree_remove_all)

    # validate-scenarios --------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate-scenarios",
        parents=[common],
        help="Validate scenario manifests",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Also fail when an identifier exists in more than one track type",
    )
    validate_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    validate_parser.set_defaults(handler=_cmd_validate_scenarios)

    # validate-patches ----------------------------------------------------
    patches_parser = subparsers.add_parser(
        "validate-patches",
        parents=[common],
        help="Validate engineering scenario patch series",
        description=(
            "Check base revisions, patch scope and clean application of every series.\n\n"
            "Examples:\n"
            "  democtl validate-patches\n"
            "  democtl validate-patches --scenario eng/search-bug --strict\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    patches_parser.add_argument(
        "--scenario", default=None, help="Validate one scenario only (track/slug)"
    )
    patches_parser.add_argument(
        "--strict",
        action="store_true",
        help="Also require each base revision to be an ancestor of HEAD",
    )
    patches_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    patches_parser.set_defaults(handler=_cmd_validate_patches)

    # list-scenarios ------------------------------------------------------
    list_parser = subparsers.add_parser(
        "list-scenarios",
        parents=[common],
        help="List discovered scenarios",
    )
    list_parser.add_argument(
        "--type",
        dest="scenario_type",
        choices=(*SCENARIO_TYPES, "all"),
        default="all",
        help="Filter by track type (default: all)",
    )
    list_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    list_parser.set_defaults(handler=_cmd_list_scenarios)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration (secrets redacted)",
    )
    config_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def _add_type_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--type",
        dest="scenario_type",
        choices=SCENARIO_TYPES,
        default=None,
        help="Scenario track type, to disambiguate identifiers present in both",
    )


def _add_check_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--stage", default=None, help="Stage to check (default: resolved from manifest)")
    parser.add_argument(
        "--only",
        dest="type_filter",
        default=None,
        help="Only run checks matching a type filter (http, k8s, playwright or a type prefix)",
    )
    _add_type_option(parser)
    parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    parser.add_argument(
        "--report",
        default=None,
        help="Also write the JSON result to this path (atomic replace)",
    )
    parser.add_argument("--kube-context", default=None, help="Override checks.kube_context")
    parser.add_argument(
        "--headed", action="store_true", default=None, help="Run UI suites in a visible browser"
    )


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_checks(args: argparse.Namespace) -> int:
    session = _open_session(args, cli_overrides=_check_overrides(args))
    scenario = _resolve_scenario(session, args)
    return _run_checks(
        args,
        session,
        scenario,
        CheckKind(args.check_kind),
        stage=_optional_str(getattr(args, "stage", None)),
        type_filter=_optional_str(getattr(args, "type_filter", None)),
    )


def _cmd_solve(args: argparse.Namespace) -> int:
    session = _open_session(args, cli_overrides=_check_overrides(args))
    scenario = _resolve_scenario(session, args)
    if scenario.scenario_type != TRACK_ENGINEERING:
        raise CLIError("solve not supported for SRE scenarios", exit_code=2)

    manager, warnings = _worktree_manager(session)
    reset = manager.reset_to_stage(scenario, STAGE_SOLVED)

    # Services may still be restarting, so a failed verify does not fail the command.
    settings = ExecutionSettings.from_config(session.config, repo_root=session.repo_root)
    try:
        result = CheckRunner(settings).run(scenario, CheckKind.VERIFY, stage=STAGE_SOLVED)
        verified = True
    except VerificationFailedError as exc:
        result = exc.result
        verified = False

    worktree = _display_path(reset.path, session.repo_root)
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "solve",
                "scenario_id": scenario.identifier,
                "worktree": worktree,
                "patches_applied": reset.patches_applied,
                "verified": verified,
                "verification": result.to_dict(),
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.ok(f"worktree reset to solved at {worktree} ({reset.patches_applied} patch(es) applied)")
    renderer.run_summary(result)
    if verified:
        renderer.ok("solved verification passed")
    else:
        renderer.warning("solved verification failed (scenario may still be starting)")
    _render_warnings(renderer, warnings)
    return 0


def _cmd_worktree_init(args: argparse.Namespace) -> int:
    session = _open_session(args)
    scenario = _resolve_engineering_scenario(session, args)
    manager, warnings = _worktree_manager(session)
    result = manager.init(scenario)

    renderer = _get_renderer(args)
    if result.changed:
        renderer.ok(
            f"worktree created at {_display_path(result.path, session.repo_root)} "
            f"({result.patches_applied} broken patch(es) applied)"
        )
    else:
        renderer.text(
            f"Worktree already exists at {_display_path(result.path, session.repo_root)}; "
            "use 'democtl worktree reset' to rebuild it."
        )
    _render_warnings(renderer, warnings)
    return 0


def _cmd_worktree_reset(args: argparse.Namespace) -> int:
    session = _open_session(args)
    scenario = _resolve_engineering_scenario(session, args)
    stage = _require_str(getattr(args, "stage", None), "stage")
    manager, warnings = _worktree_manager(session)
    result = manager.reset_to_stage(scenario, stage)

    renderer = _get_renderer(args)
    renderer.ok(
        f"worktree reset to {stage} at {_display_path(result.path, session.repo_root)} "
        f"({result.patches_applied} patch(es) applied)"
    )
    _render_warnings(renderer, warnings)
    return 0


def _cmd_worktree_remove(args: argparse.Namespace) -> int:
    session = _open_session(args)
    scenario = _resolve_engineering_scenario(session, args)
    manager, warnings = _worktree_manager(session)
    result = manager.remove(scenario)

    renderer = _get_renderer(args)
    rendered = _display_path(result.path, session.repo_root)
    if result.changed:
        renderer.ok(f"removed worktree {rendered}")
    else:
        renderer.text(f"No worktree at {rendered}")
    _render_warnings(renderer, warnings)
    return 0


def _cmd_worktree_remove_all(args: argparse.Namespace) -> int:
    session = _open_session(args)
    manager, warnings = _worktree_manager(session)
    removed = manager.remove_all()

    renderer = _get_renderer(args)
    renderer.kv("Removed worktrees", len(removed))
    renderer.items([_display_path(path, session.repo_root) for path in removed])
    _render_warnings(renderer, warnings)
    return 0


def _cmd_validate_scenarios(args: argparse.Namespace) -> int:
    session = _open_session(args)
    report = validate_all(session.repo_root, strict=_flag(args, "strict"))

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate-scenarios",
                "total": report.total,
                "issues": [str(issue) for issue in report.issues],
            }
        )
        return 1 if report.has_errors else 0

    renderer = _get_renderer(args)
    if report.has_errors:
        renderer.fail(f"{len(report.issues)} issue(s) in {report.total} scenario(s)")
        renderer.items([str(issue) for issue in report.issues])
        return 1
    renderer.ok(f"all {report.total} scenario(s) valid")
    return 0


def _cmd_validate_patches(args: argparse.Namespace) -> int:
    session = _open_session(args)
    warnings = WarningCollector()
    report = validate_all_patches(
        session.repo_root,
        scenario_id=_optional_str(getattr(args, "scenario", None)),
        strict=_flag(args, "strict"),
        scope_prefix=str(session.config["git"]["scope_prefix"]),
        warnings=warnings,
    )

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate-patches",
                "total": report.total,
                "issues": [str(issue) for issue in report.issues],
                "warnings": [str(item) for item in warnings.warnings],
            }
        )
        return 1 if report.has_errors else 0

    renderer = _get_renderer(args)
    if report.has_errors:
        renderer.fail(f"{len(report.issues)} patch issue(s) in {report.total} scenario(s)")
        renderer.items([str(issue) for issue in report.issues])
    else:
        renderer.ok(f"patches valid for {report.total} engineering scenario(s)")
    _render_warnings(renderer, warnings)
    return 1 if report.has_errors else 0


def _cmd_list_scenarios(args: argparse.Namespace) -> int:
    session = _open_session(args)
    type_filter = _require_str(getattr(args, "scenario_type", None), "type")
    scenarios = [
        item
        for item in discover(session.repo_root)
        if type_filter == "all" or item.scenario_type == type_filter
    ]
    scenarios.sort(key=lambda item: (item.scenario_type, item.identifier))

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "list-scenarios",
                "scenarios": [
                    {
                        "id": item.identifier,
                        "type": item.scenario_type,
                        "title": item.manifest.title,
                        "path": item.relative_dir,
                    }
                    for item in scenarios
                ],
            }
        )
        return 0

    renderer = _get_renderer(args)
    if not scenarios:
        renderer.text("No scenarios found.")
        return 0
    rows = [
        [item.identifier, item.scenario_type, item.manifest.title] for item in scenarios
    ]
    renderer.table(["ID", "TYPE", "TITLE"], rows, title="Scenarios:")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    session = _open_session(args)
    redacted = redact_config(session.config)

    if _flag(args, "json"):
        _emit_json({"command": "config", "repo_root": session.repo_root.as_posix(), "config": redacted})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Repository root", session.repo_root.as_posix())
    renderer.text(dump_effective_config(session.config, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Check execution
# ---------------------------------------------------------------------------


def _run_checks(
    args: argparse.Namespace,
    session: _Session,
    scenario: Scenario,
    kind: CheckKind,
    *,
    stage: str | None,
    type_filter: str | None,
) -> int:
    settings = ExecutionSettings.from_config(session.config, repo_root=session.repo_root)
    runner = CheckRunner(settings)

    exit_code = 0
    try:
        result = runner.run(scenario, kind, stage=stage, type_filter=type_filter)
    except VerificationFailedError as exc:
        result = exc.result
        exit_code = 1

    _report_run(args, result)
    return exit_code


def _report_run(args: argparse.Namespace, result: RunResult) -> None:
    payload = result.to_dict()
    report_path = _optional_str(getattr(args, "report", None))
    if report_path is not None:
        atomic_write(
            Path(report_path).expanduser(),
            json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n",
        )

    if _flag(args, "json"):
        _emit_json(payload)
        return
    _get_renderer(args).run_summary(result)


def _check_overrides(args: argparse.Namespace) -> dict[str, object]:
    return {
        "checks.kube_context": _optional_str(getattr(args, "kube_context", None)),
        "checks.playwright_headed": getattr(args, "headed", None),
    }


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    no_color = _flag(args, "no_color")
    verbose = _flag(args, "verbose")
    return create_renderer(no_color=no_color, verbose=verbose)


def _render_warnings(renderer: CLIRenderer, warnings: WarningCollector) -> None:
    for item in warnings.warnings:
        renderer.warning(str(item))


# ---------------------------------------------------------------------------
# Helpers: config, paths, resolution
# ---------------------------------------------------------------------------


def _open_session(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> _Session:
    """Load config, resolve the repository root and start logging for this command."""

    config = _load_effective_config(args, cli_overrides=cli_overrides)
    repo_root = _repo_root(args, config)
    _start_logging(args, config, repo_root)
    return _Session(repo_root=repo_root, config=config)


def _repo_root(args: argparse.Namespace, config: Mapping[str, Any]) -> Path:
    raw = _optional_str(getattr(args, "repo_root", None))
    if raw is None:
        configured = str(config.get("paths", {}).get("repo_root", "") or "")
        raw = configured or None
    if raw is None:
        try:
            return find_repo_root()
        except ManifestError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

    candidate = Path(raw).expanduser().resolve()
    if not candidate.exists() or not candidate.is_dir():
        raise CLIError(f"repo root is not a directory: {candidate}", exit_code=2)
    return candidate


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    repo_root_arg = _optional_str(getattr(args, "repo_root", None))
    search_dir = Path(repo_root_arg).expanduser() if repo_root_arg is not None else None

    try:
        return load_config(config_path, cli_overrides=cli_overrides, search_dir=search_dir)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _start_logging(args: argparse.Namespace, config: Mapping[str, Any], repo_root: Path) -> None:
    logging_cfg = dict(config.get("logging", {}))
    if _flag(args, "verbose"):
        logging_cfg["level"] = "DEBUG"
    log_dir = Path(str(config.get("paths", {}).get("log_dir", "")))
    if not log_dir.is_absolute():
        log_dir = repo_root / log_dir
    login_key = str(config.get("checks", {}).get("default_login_key", ""))
    setup_logging(logging_cfg, run_id=_new_run_id(), log_dir=log_dir, secrets=(login_key,))


def _new_run_id() -> str:
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def _resolve_scenario(session: _Session, args: argparse.Namespace) -> Scenario:
    identifier = _require_str(getattr(args, "scenario", None), "scenario")
    return resolve(
        session.repo_root,
        identifier,
        scenario_type=_optional_str(getattr(args, "scenario_type", None)),
    )


def _resolve_engineering_scenario(session: _Session, args: argparse.Namespace) -> Scenario:
    scenario_type = _optional_str(getattr(args, "scenario_type", None))
    if scenario_type is not None and scenario_type != TRACK_ENGINEERING:
        raise CLIError(f"worktrees only exist for {TRACK_ENGINEERING} scenarios", exit_code=2)
    identifier = _require_str(getattr(args, "scenario", None), "scenario")
    return resolve(session.repo_root, identifier, scenario_type=TRACK_ENGINEERING)


def _worktree_manager(session: _Session) -> tuple[WorktreeManager, WarningCollector]:
    git_cfg = session.config["git"]
    warnings = WarningCollector()
    manager = WorktreeManager(
        session.repo_root,
        fetch_remote=str(git_cfg["fetch_remote"]),
        three_way=bool(git_cfg["three_way"]),
        warnings=warnings,
    )
    return manager, warnings


def _display_path(path: Path, repo_root: Path) -> str:
    try:
        return path.resolve().relative_to(repo_root).as_posix()
    except ValueError:
        return path.as_posix()


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=2)
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(f"invalid {name}: value cannot be empty", exit_code=2)
    return cleaned


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
