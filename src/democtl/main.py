"""Executable CLI entrypoint for ``democtl``.

Exit codes are a contract with the Makefile and CI wrappers: ``0`` success (health runs
always), ``1`` a verification or workspace operation failed, ``2`` the input was wrong
(config, manifest, stage, usage), ``4`` anything unexpected.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    VERIFICATION_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


_EXIT_CODES = frozenset(ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and map whatever escapes it onto an ``ExitCode``."""

    try:
        from democtl.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse: 0 for --help, 2 for usage errors.
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - last stop before the process exits.
        code = _route_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            message = str(exc).strip() or type(exc).__name__
            print(f"error: {message}", file=sys.stderr)
        return int(code)


def console_main() -> None:
    raise SystemExit(cli_entrypoint())


def _normalize_exit_code(raw: object) -> int:
    if raw is None:
        return ExitCode.SUCCESS
    if isinstance(raw, int) and raw in _EXIT_CODES:
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR


def _route_exception(exc: BaseException) -> ExitCode:
    """First exception in the cause/context chain with a known meaning decides the code."""

    routes = _exit_routes()
    for item in _exception_chain(exc):
        for error_types, code in routes:
            if isinstance(item, error_types):
                return code
    return ExitCode.INTERNAL_ERROR


def _exit_routes() -> tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...]:
    # Imported lazily so `democtl --help` does not pay for the whole package.
    from democtl.checks.runner import VerificationFailedError
    from democtl.config.loader import ConfigLoadError
    from democtl.config.schema import ConfigValidationError
    from democtl.domain.manifest import ManifestError
    from democtl.workspace.git import GitError
    from democtl.workspace.worktree import WorkspaceError

    return (
        # StageResolutionError is a ManifestError.
        ((ConfigLoadError, ConfigValidationError, ManifestError), ExitCode.CONFIG_ERROR),
        ((VerificationFailedError, GitError, WorkspaceError), ExitCode.VERIFICATION_FAILED),
    )


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


__all__ = ["ExitCode", "cli_entrypoint", "console_main"]
