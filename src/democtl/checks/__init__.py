"""
Check execution: executor contracts, built-in executors, and the stage runner.

Importing this package registers the built-in ``http.get``, ``k8s.*`` and
``playwright.run`` executors in ``DEFAULT_EXECUTOR_REGISTRY``.
"""

from democtl.checks.base import (
    DEFAULT_EXECUTOR_REGISTRY,
    CheckExecutor,
    CheckResult,
    CheckStatus,
    CommandResult,
    CommandRunner,
    ExecutionContext,
    ExecutionSettings,
    ExecutorRegistry,
    RunResult,
    SubprocessRunner,
    register_executor,
)
from democtl.checks.http_probe import HttpProbeExecutor
from democtl.checks.k8s import (
    DeploymentAvailableExecutor,
    JqEqualsExecutor,
    PodRestartCountExecutor,
    PodsContainLogExecutor,
    PodTerminationReasonExecutor,
    ResourceExistsExecutor,
    ServiceMissingPortExecutor,
)
from democtl.checks.playwright import PlaywrightExecutor
from democtl.checks.runner import (
    CheckRunner,
    StageResolutionError,
    VerificationFailedError,
    matches_filter,
    resolve_stage,
)

__all__ = [
    "CheckExecutor",
    "CheckResult",
    "CheckRunner",
    "CheckStatus",
    "CommandResult",
    "CommandRunner",
    "DEFAULT_EXECUTOR_REGISTRY",
    "DeploymentAvailableExecutor",
    "ExecutionContext",
    "ExecutionSettings",
    "ExecutorRegistry",
    "HttpProbeExecutor",
    "JqEqualsExecutor",
    "PlaywrightExecutor",
    "PodRestartCountExecutor",
    "PodTerminationReasonExecutor",
    "PodsContainLogExecutor",
    "ResourceExistsExecutor",
    "RunResult",
    "ServiceMissingPortExecutor",
    "StageResolutionError",
    "SubprocessRunner",
    "VerificationFailedError",
    "matches_filter",
    "register_executor",
    "resolve_stage",
]
