"""
democtl — ``http.get`` probe executor.

File: src/democtl/checks/http_probe.py

Purpose
- Poll a URL until its status code satisfies the allow/deny sets or the deadline passes.

Functional requirements
- Defaults: 30s overall timeout, 2s retry interval, 10s per-request client timeout.
- A transport failure is observed as status ``0`` and retried like any other mismatch.
- A satisfied probe returns immediately, without sleeping.
- Redirects are followed; the status of the final response is the one evaluated.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Final

import httpx
import structlog

from democtl.checks.base import CheckResult, ExecutionContext, register_executor
from democtl.domain.manifest import HttpGetCheck

if TYPE_CHECKING:
    from democtl.domain.manifest import Check

DEFAULT_TIMEOUT_SECONDS: Final[int] = 30
DEFAULT_RETRY_INTERVAL_SECONDS: Final[int] = 2
CONNECTION_FAILED_STATUS: Final[int] = 0

logger = structlog.get_logger(__name__)


def build_http_client(
    timeout_seconds: float, *, transport: httpx.BaseTransport | None = None
) -> httpx.Client:
    """Client for one probe run; redirects are followed so the final status is judged."""

    return httpx.Client(timeout=timeout_seconds, follow_redirects=True, transport=transport)


def format_status_set(statuses: Sequence[int]) -> str:
    """Render a status set as ``[200 503]``."""

    return "[" + " ".join(str(item) for item in statuses) + "]"


def evaluate_status(
    status: int,
    *,
    expect_status: Sequence[int],
    expect_status_not: Sequence[int],
) -> str | None:
    """Return the mismatch message for ``status``, or ``None`` when it is acceptable."""

    if expect_status_not and status in expect_status_not:
        return f"got {status}, expected not in {format_status_set(expect_status_not)}"
    if expect_status and status not in expect_status:
        return f"got {status}, expected one of {format_status_set(expect_status)}"
    return None


@register_executor("http.get")
class HttpProbeExecutor:
    check_type = "http.get"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, HttpGetCheck):
            return CheckResult.failed(check, f"unsupported check for http.get: {check.type}")
        if not check.url:
            return CheckResult.failed(check, "missing url field")

        timeout_seconds = check.timeout_seconds or DEFAULT_TIMEOUT_SECONDS
        retry_interval = check.retry_interval or DEFAULT_RETRY_INTERVAL_SECONDS
        logger.debug(
            "http_probe_start",
            url=check.url,
            timeout_seconds=timeout_seconds,
            retry_interval=retry_interval,
        )

        owns_client = context.http_client is None
        client = context.http_client or build_http_client(
            context.settings.http_request_timeout_seconds
        )
        try:
            return self._poll(check, context, client, timeout_seconds, retry_interval)
        finally:
            if owns_client:
                client.close()

    def _poll(
        self,
        check: HttpGetCheck,
        context: ExecutionContext,
        client: httpx.Client,
        timeout_seconds: int,
        retry_interval: int,
    ) -> CheckResult:
        deadline = context.clock() + timeout_seconds
        while True:
            status = _fetch_status(client, check.url)
            logger.debug("http_probe_response", url=check.url, status=status)

            mismatch = evaluate_status(
                status,
                expect_status=check.expect_status,
                expect_status_not=check.expect_status_not,
            )
            if mismatch is None:
                return CheckResult.passed(check)

            remaining = deadline - context.clock()
            if remaining <= 0:
                return CheckResult.failed(check, mismatch)
            logger.debug(
                "http_probe_retry",
                url=check.url,
                retry_in=retry_interval,
                remaining=round(remaining),
            )
            context.sleep(retry_interval)


def _fetch_status(client: httpx.Client, url: str) -> int:
    try:
        response = client.get(url)
    except httpx.RequestError as exc:
        logger.debug("http_probe_request_error", url=url, error=str(exc))
        return CONNECTION_FAILED_STATUS
    return response.status_code


__all__ = [
    "CONNECTION_FAILED_STATUS",
    "DEFAULT_RETRY_INTERVAL_SECONDS",
    "DEFAULT_TIMEOUT_SECONDS",
    "HttpProbeExecutor",
    "build_http_client",
    "evaluate_status",
    "format_status_set",
]
