"""
democtl — check executor contracts.

File: src/democtl/checks/base.py

Purpose
- Defines the executor interface: a check descriptor plus an ``ExecutionContext`` in,
  a tri-state ``CheckResult`` out.
- Carries the ``CommandRunner`` every external tool (kubectl, jq, npx) is invoked
  through, so executors are testable with a fake runner.

Functional requirements
- Check failures are data (``fail`` with a message), never exceptions.
- Executors register per discriminator; lookup is deterministic.
- Run results serialize to ``{scenario_id, stage, check_type, passed, failed, skipped,
  results: [{type, description, status, message?}]}``.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn, Protocol, TypeVar, runtime_checkable

from democtl.constants import (
    DEFAULT_KUBE_CONTEXT,
    DEFAULT_LOGIN_KEY,
    DEFAULT_TRACK_PORTS,
)
from democtl.utils.process import CommandResult, CommandRunner, SubprocessRunner

if TYPE_CHECKING:
    import httpx

    from democtl.domain.catalog import Scenario
    from democtl.domain.manifest import Check

ExecutorFactory = Callable[[], "CheckExecutor"]


class CheckStatus(StrEnum):
    """Per-check outcome."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class CheckResult:
    type: str
    description: str
    status: CheckStatus
    message: str = ""

    @classmethod
    def passed(cls, check: Check, message: str = "") -> CheckResult:
        return cls(check.type, check.description, CheckStatus.PASS, message)

    @classmethod
    def failed(cls, check: Check, message: str) -> CheckResult:
        return cls(check.type, check.description, CheckStatus.FAIL, message)

    @classmethod
    def skipped(cls, check: Check, message: str) -> CheckResult:
        return cls(check.type, check.description, CheckStatus.SKIP, message)

    def to_dict(self) -> dict[str, str]:
        payload = {
            "type": self.type,
            "description": self.description,
            "status": self.status.value,
        }
        if self.message:
            payload["message"] = self.message
        return payload


@dataclass(frozen=True, slots=True)
class RunResult:
    """Aggregate outcome of one runner invocation over a stage's check list."""

    scenario_id: str
    stage: str
    check_type: str
    results: tuple[CheckResult, ...] = ()

    @property
    def passed(self) -> int:
        return self._count(CheckStatus.PASS)

    @property
    def failed(self) -> int:
        return self._count(CheckStatus.FAIL)

    @property
    def skipped(self) -> int:
        return self._count(CheckStatus.SKIP)

    def _count(self, status: CheckStatus) -> int:
        return sum(1 for item in self.results if item.status is status)

    def to_dict(self) -> dict[str, Any]:
        """Stable-key JSON-safe export used by ``--json`` and ``--report``."""

        return {
            "scenario_id": self.scenario_id,
            "stage": self.stage,
            "check_type": self.check_type,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [item.to_dict() for item in self.results],
        }


@dataclass(frozen=True, slots=True)
class ExecutionSettings:
    """Explicit executor configuration, resolved once from ``democtl.toml``."""

    repo_root: Path
    kube_context: str = DEFAULT_KUBE_CONTEXT
    http_request_timeout_seconds: float = 10.0
    playwright_headed: bool = False
    default_login_key: str = DEFAULT_LOGIN_KEY
    track_ports: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_TRACK_PORTS))

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, repo_root: Path) -> ExecutionSettings:
        checks_cfg = config.get("checks", {})
        ports_cfg = config.get("ports", {})
        return cls(
            repo_root=repo_root,
            kube_context=str(checks_cfg.get("kube_context", DEFAULT_KUBE_CONTEXT)),
            http_request_timeout_seconds=float(
                checks_cfg.get("http_request_timeout_seconds", 10.0)
            ),
            playwright_headed=bool(checks_cfg.get("playwright_headed", False)),
            default_login_key=str(checks_cfg.get("default_login_key", DEFAULT_LOGIN_KEY)),
            track_ports={
                track: int(ports_cfg.get(track, default))
                for track, default in DEFAULT_TRACK_PORTS.items()
            },
        )

    def port_for(self, scenario_type: str) -> int | None:
        return self.track_ports.get(scenario_type)


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Everything an executor may touch during one run.

    ``clock`` and ``sleep`` drive every polling loop, so tests substitute virtual time.
    """

    scenario: Scenario
    stage: str
    settings: ExecutionSettings
    runner: CommandRunner = field(default_factory=SubprocessRunner)
    http_client: httpx.Client | None = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))

    @property
    def namespace(self) -> str:
        return self.scenario.manifest.namespace


@runtime_checkable
class CheckExecutor(Protocol):
    """Executor protocol implemented per check discriminator."""

    check_type: str

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult: ...


@dataclass(frozen=True, slots=True)
class ExecutorRegistration:
    check_type: str
    factory: ExecutorFactory


class ExecutorRegistry:
    """Deterministic discriminator-to-executor registry."""

    def __init__(self) -> None:
        self._registrations: dict[str, ExecutorRegistration] = {}

    def register(self, check_type: str, factory: ExecutorFactory) -> None:
        normalized = check_type.strip()
        if not normalized:
            _fail("check_type", "must not be empty")
        if not callable(factory):
            _fail("factory", "must be callable")
        if normalized in self._registrations:
            _fail("check_type", f"executor already registered for {normalized!r}")
        self._registrations[normalized] = ExecutorRegistration(normalized, factory)

    def contains(self, check_type: str) -> bool:
        return check_type in self._registrations

    def create(self, check_type: str) -> CheckExecutor | None:
        """Return a fresh executor, or ``None`` for an unrecognized discriminator."""

        registration = self._registrations.get(check_type)
        if registration is None:
            return None
        executor = registration.factory()
        if not isinstance(executor, CheckExecutor):
            _fail("factory", f"{check_type!r} factory did not return a CheckExecutor")
        return executor

    def registered_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._registrations))


ExecutorType = TypeVar("ExecutorType", bound=CheckExecutor)

DEFAULT_EXECUTOR_REGISTRY = ExecutorRegistry()


def register_executor(
    *check_types: str,
    registry: ExecutorRegistry | None = None,
) -> Callable[[type[ExecutorType]], type[ExecutorType]]:
    """Decorator that registers a zero-argument executor class for each discriminator."""

    target = registry if registry is not None else DEFAULT_EXECUTOR_REGISTRY

    def decorator(executor_cls: type[ExecutorType]) -> type[ExecutorType]:
        for check_type in check_types:
            target.register(check_type, factory=executor_cls)
        return executor_cls

    return decorator


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "CheckExecutor",
    "CheckResult",
    "CheckStatus",
    "CommandResult",
    "CommandRunner",
    "DEFAULT_EXECUTOR_REGISTRY",
    "ExecutionContext",
    "ExecutionSettings",
    "ExecutorFactory",
    "ExecutorRegistration",
    "ExecutorRegistry",
    "RunResult",
    "SubprocessRunner",
    "register_executor",
]
