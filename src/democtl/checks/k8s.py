"""
democtl — ``k8s.*`` resource-assertion executors.

File: src/democtl/checks/k8s.py

Purpose
- Assert cluster state for a scenario namespace by shelling out to ``kubectl`` (and ``jq``
  for field extraction) through the injected ``CommandRunner``.

Functional requirements
- Every invocation is scoped as ``kubectl --context=<ctx> -n demo-<slug> ...``.
- CLI errors become ``fail`` results; nothing here raises for an unhealthy cluster.
- Failure messages state expected and actual values.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Final

import structlog

from democtl.checks.base import (
    CheckResult,
    CommandResult,
    ExecutionContext,
    register_executor,
)
from democtl.domain.manifest import (
    K8sDeploymentAvailableCheck,
    K8sJqEqualsCheck,
    K8sPodRestartCountCheck,
    K8sPodsContainLogCheck,
    K8sPodTerminationReasonCheck,
    K8sResourceExistsCheck,
    K8sServiceMissingPortCheck,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from democtl.domain.manifest import Check

DEFAULT_LOG_SINCE_SECONDS: Final[int] = 300
LOG_TAIL_LINES: Final[int] = 500
DEFAULT_MIN_RESTARTS: Final[int] = 1
DEFAULT_AVAILABLE_TIMEOUT_SECONDS: Final[int] = 60
AVAILABLE_POLL_INTERVAL_SECONDS: Final[int] = 2

_AVAILABLE_JSONPATH: Final[str] = (
    'jsonpath={.status.conditions[?(@.type=="Available")].status}'
)
_RESTART_COUNT_JSONPATH: Final[str] = (
    "jsonpath={.items[*].status.containerStatuses[*].restartCount}"
)
_SERVICE_PORTS_JSONPATH: Final[str] = "jsonpath={.spec.ports[*].name}"

logger = structlog.get_logger(__name__)


def kubectl(context: ExecutionContext, *args: str) -> CommandResult:
    """Run ``kubectl`` against the scenario namespace."""

    argv = (
        "kubectl",
        f"--context={context.settings.kube_context}",
        "-n",
        context.namespace,
        *args,
    )
    logger.debug("kubectl_invoke", argv=list(argv))
    return context.runner.run(argv)


def describe_failure(result: CommandResult) -> str:
    detail = result.stderr.strip()
    if detail:
        return f"exit status {result.returncode}: {detail}"
    return f"exit status {result.returncode}"


def max_restart_count(raw: str) -> int:
    """Maximum of the whitespace-separated restart counts; unparsable tokens are ignored."""

    highest = 0
    for token in raw.split():
        try:
            value = int(token)
        except ValueError:
            continue
        highest = max(highest, value)
    return highest


def first_termination_reason(pod_list: object) -> str:
    """First non-empty ``lastState.terminated.reason`` across pods and containers."""

    if not isinstance(pod_list, dict):
        return ""
    for pod in pod_list.get("items") or ():
        statuses = ((pod or {}).get("status") or {}).get("containerStatuses") or ()
        for container in statuses:
            terminated = ((container or {}).get("lastState") or {}).get("terminated") or {}
            reason = terminated.get("reason") if isinstance(terminated, dict) else None
            if isinstance(reason, str) and reason:
                return reason
    return ""


@register_executor("k8s.jqEquals")
class JqEqualsExecutor:
    check_type = "k8s.jqEquals"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sJqEqualsCheck):
            return _unsupported(check, self.check_type)
        if check.resource is None:
            return CheckResult.failed(check, "missing resource field")

        fetched = kubectl(
            context, "get", check.resource.kind, check.resource.name, "-o", "json"
        )
        if not fetched.ok:
            return CheckResult.failed(check, f"failed to get resource: {describe_failure(fetched)}")

        extracted = context.runner.run(("jq", "-r", check.jq), input_text=fetched.stdout)
        if not extracted.ok:
            return CheckResult.failed(check, f"jq failed: {describe_failure(extracted)}")

        actual = extracted.stdout.strip()
        if actual != check.equals:
            return CheckResult.failed(check, f"expected '{check.equals}', got '{actual}'")
        return CheckResult.passed(check)


@register_executor("k8s.podsContainLog")
class PodsContainLogExecutor:
    check_type = "k8s.podsContainLog"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sPodsContainLogCheck):
            return _unsupported(check, self.check_type)

        since = check.since_seconds or DEFAULT_LOG_SINCE_SECONDS
        fetched = kubectl(
            context,
            "logs",
            "-l",
            check.selector,
            f"--since={since}s",
            f"--tail={LOG_TAIL_LINES}",
        )
        if not fetched.ok or not fetched.stdout:
            return CheckResult.failed(check, "no logs found")
        if check.contains not in fetched.stdout:
            return CheckResult.failed(check, f"substring '{check.contains}' not found in logs")
        return CheckResult.passed(check)


@register_executor("k8s.podTerminationReason")
class PodTerminationReasonExecutor:
    check_type = "k8s.podTerminationReason"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sPodTerminationReasonCheck):
            return _unsupported(check, self.check_type)

        fetched = kubectl(context, "get", "pods", "-l", check.selector, "-o", "json")
        if not fetched.ok:
            return CheckResult.failed(check, f"failed to get pods: {describe_failure(fetched)}")
        try:
            pod_list = json.loads(fetched.stdout)
        except json.JSONDecodeError as exc:
            return CheckResult.failed(check, f"failed to parse pod JSON: {exc}")

        found = first_termination_reason(pod_list)
        if found != check.reason:
            return CheckResult.failed(
                check, f"expected '{check.reason}', got '{found or 'none'}'"
            )
        return CheckResult.passed(check)


@register_executor("k8s.podRestartCount")
class PodRestartCountExecutor:
    check_type = "k8s.podRestartCount"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sPodRestartCountCheck):
            return _unsupported(check, self.check_type)

        threshold = check.min_restarts or DEFAULT_MIN_RESTARTS
        fetched = kubectl(
            context, "get", "pods", "-l", check.selector, "-o", _RESTART_COUNT_JSONPATH
        )
        if not fetched.ok:
            return CheckResult.failed(check, f"failed to get pods: {describe_failure(fetched)}")

        observed = max_restart_count(fetched.stdout)
        if observed < threshold:
            return CheckResult.failed(check, f"restart count {observed} < {threshold}")
        return CheckResult.passed(check)


@register_executor("k8s.deploymentAvailable")
class DeploymentAvailableExecutor:
    check_type = "k8s.deploymentAvailable"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sDeploymentAvailableCheck):
            return _unsupported(check, self.check_type)

        timeout_seconds = check.timeout_seconds or DEFAULT_AVAILABLE_TIMEOUT_SECONDS
        if check.wait_seconds and check.wait_seconds > 0:
            logger.debug("deployment_prewait", name=check.name, wait_seconds=check.wait_seconds)
            context.sleep(check.wait_seconds)

        deadline = context.clock() + timeout_seconds
        while True:
            fetched = kubectl(
                context, "get", "deployment", check.name, "-o", _AVAILABLE_JSONPATH
            )
            if fetched.ok and fetched.stdout.strip() == "True":
                return CheckResult.passed(check)
            if context.clock() >= deadline:
                return CheckResult.failed(
                    check, f"deployment not available after {timeout_seconds}s"
                )
            logger.debug(
                "deployment_not_ready",
                name=check.name,
                remaining=round(deadline - context.clock()),
            )
            context.sleep(AVAILABLE_POLL_INTERVAL_SECONDS)


@register_executor("k8s.resourceExists")
class ResourceExistsExecutor:
    check_type = "k8s.resourceExists"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sResourceExistsCheck):
            return _unsupported(check, self.check_type)
        if check.resource is None:
            return CheckResult.failed(check, "missing resource field")

        kind, name = check.resource.kind, check.resource.name
        if not kubectl(context, "get", kind, name).ok:
            return CheckResult.failed(check, f"{kind}/{name} not found")
        return CheckResult.passed(check)


@register_executor("k8s.serviceMissingPort")
class ServiceMissingPortExecutor:
    check_type = "k8s.serviceMissingPort"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, K8sServiceMissingPortCheck):
            return _unsupported(check, self.check_type)

        fetched = kubectl(context, "get", "service", check.name, "-o", _SERVICE_PORTS_JSONPATH)
        if not fetched.ok:
            return CheckResult.failed(check, f"failed to get service: {describe_failure(fetched)}")

        port_names: Sequence[str] = fetched.stdout.split()
        if check.port_name in port_names:
            return CheckResult.failed(check, f"port {check.port_name} exists, expected missing")
        return CheckResult.passed(check)


def _unsupported(check: Check, check_type: str) -> CheckResult:
    return CheckResult.failed(check, f"unsupported check for {check_type}: {check.type}")


__all__ = [
    "AVAILABLE_POLL_INTERVAL_SECONDS",
    "DEFAULT_AVAILABLE_TIMEOUT_SECONDS",
    "DEFAULT_LOG_SINCE_SECONDS",
    "DEFAULT_MIN_RESTARTS",
    "DeploymentAvailableExecutor",
    "JqEqualsExecutor",
    "LOG_TAIL_LINES",
    "PodRestartCountExecutor",
    "PodTerminationReasonExecutor",
    "PodsContainLogExecutor",
    "ResourceExistsExecutor",
    "ServiceMissingPortExecutor",
    "describe_failure",
    "first_termination_reason",
    "kubectl",
    "max_restart_count",
]
