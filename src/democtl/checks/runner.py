"""
democtl — check runner.

File: src/democtl/checks/runner.py

Purpose
- Resolve the target stage of a scenario, select its verify or health list, filter by
  check family, and execute each check through the executor registry.

Functional requirements
- Stage resolution order: ``default_stage``, ``broken``, ``healthy``, lexicographic first.
- Verify runs stop at the first failure and raise ``VerificationFailedError`` carrying the
  partial result; health runs execute every check and never raise.
- Unknown discriminators are skipped with ``Unknown check type: <type>``.

Non-functional requirements
- Sequential, declared order; no parallelism.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Final

import structlog

from democtl.checks.base import (
    DEFAULT_EXECUTOR_REGISTRY,
    CheckResult,
    CheckStatus,
    CommandRunner,
    ExecutionContext,
    ExecutionSettings,
    ExecutorRegistry,
    RunResult,
    SubprocessRunner,
)
from democtl.constants import STAGE_BROKEN, STAGE_HEALTHY
from democtl.domain.manifest import CheckKind, ManifestError, UnknownCheck
from democtl.observability.logging import correlation_scope

if TYPE_CHECKING:
    import httpx

    from democtl.domain.catalog import Scenario
    from democtl.domain.manifest import Check, Checks

# Filters that match the dot-separated family segment of a discriminator.
_FAMILY_FILTERS: Final[frozenset[str]] = frozenset({"http", "k8s"})
_FILTER_ALIASES: Final[dict[str, str]] = {"playwright": "playwright.run"}
_FALLBACK_STAGE_ORDER: Final[tuple[str, ...]] = (STAGE_BROKEN, STAGE_HEALTHY)


class StageResolutionError(ManifestError):
    """Raised when no stage can be selected for a run."""


class VerificationFailedError(RuntimeError):
    """Raised when a verify run hits a failing check."""

    def __init__(self, result: RunResult, message: str = "verification failed") -> None:
        super().__init__(message)
        self.result = result


def resolve_stage(checks: Checks, requested: str | None = None) -> str:
    """Pick the stage a run targets."""

    if requested:
        if requested not in checks.stages:
            raise StageResolutionError(f"stage '{requested}' not found in scenario")
        return requested

    if not checks.stages:
        raise StageResolutionError("no stages defined in scenario")

    if checks.default_stage:
        if checks.default_stage not in checks.stages:
            raise StageResolutionError(f"stage '{checks.default_stage}' not found in scenario")
        return checks.default_stage
    for candidate in _FALLBACK_STAGE_ORDER:
        if candidate in checks.stages:
            return candidate
    return min(checks.stages)


def matches_filter(check_type: str, type_filter: str | None) -> bool:
    if not type_filter:
        return True
    alias = _FILTER_ALIASES.get(type_filter)
    if alias is not None:
        return check_type == alias
    if type_filter in _FAMILY_FILTERS:
        return check_type.split(".", 1)[0] == type_filter
    return check_type.startswith(type_filter)


class CheckRunner:
    """Executes one stage's check list for a scenario."""

    def __init__(
        self,
        settings: ExecutionSettings,
        *,
        registry: ExecutorRegistry | None = None,
        command_runner: CommandRunner | None = None,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings
        self._registry = registry if registry is not None else DEFAULT_EXECUTOR_REGISTRY
        self._command_runner = command_runner if command_runner is not None else SubprocessRunner()
        self._http_client = http_client
        self._clock = clock
        self._sleep = sleep
        self._environ = dict(environ) if environ is not None else dict(os.environ)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def run(
        self,
        scenario: Scenario,
        kind: CheckKind | str,
        *,
        stage: str | None = None,
        type_filter: str | None = None,
    ) -> RunResult:
        check_kind = CheckKind(kind)
        checks = scenario.manifest.checks
        stage_name = resolve_stage(checks, stage)
        stage_checks = checks.stages[stage_name].checks_for(check_kind)

        context = ExecutionContext(
            scenario=scenario,
            stage=stage_name,
            settings=self._settings,
            runner=self._command_runner,
            http_client=self._http_client,
            clock=self._clock,
            sleep=self._sleep,
            environ=self._environ,
        )

        results: list[CheckResult] = []
        with correlation_scope(
            scenario_id=scenario.identifier,
            stage=stage_name,
            check_kind=check_kind.value,
        ):
            self._logger.info(
                "check_run_start",
                total=len(stage_checks),
                type_filter=type_filter or "",
            )
            for check in stage_checks:
                if not matches_filter(check.type, type_filter):
                    continue
                outcome = self._execute(check, context)
                results.append(outcome)
                self._logger.info(
                    "check_result",
                    check_type=outcome.type,
                    status=outcome.status.value,
                    detail=outcome.message,
                )
                if check_kind is CheckKind.VERIFY and outcome.status is CheckStatus.FAIL:
                    break

            run_result = RunResult(
                scenario_id=scenario.identifier,
                stage=stage_name,
                check_type=check_kind.value,
                results=tuple(results),
            )
            self._logger.info(
                "check_run_complete",
                passed=run_result.passed,
                failed=run_result.failed,
                skipped=run_result.skipped,
            )

        if check_kind is CheckKind.VERIFY and run_result.failed:
            raise VerificationFailedError(run_result)
        return run_result

    def _execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        executor = None
        if not isinstance(check, UnknownCheck):
            executor = self._registry.create(check.type)
        if executor is None:
            return CheckResult.skipped(check, f"Unknown check type: {check.type}")
        return executor.execute(check, context)


__all__ = [
    "CheckRunner",
    "StageResolutionError",
    "VerificationFailedError",
    "matches_filter",
    "resolve_stage",
]
