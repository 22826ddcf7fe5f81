"""
democtl — unit tests for the ``http.get`` probe executor

File: tests/unit/checks/test_http_probe.py

Purpose
- Drive the polling probe over ``httpx.MockTransport`` with a virtual clock so retry and
  timeout behavior is exercised without real sleeps or sockets.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from democtl.checks import http_probe
from democtl.checks.base import CheckStatus, ExecutionContext, ExecutionSettings
from democtl.checks.http_probe import HttpProbeExecutor, evaluate_status, format_status_set
from democtl.domain.catalog import Scenario
from democtl.domain.manifest import HttpGetCheck, K8sResourceExistsCheck, parse_manifest


class _VirtualClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _context(tmp_path: Path, client: httpx.Client | None, clock: _VirtualClock) -> ExecutionContext:
    manifest = parse_manifest({"track": "sre", "slug": "cpu-spike", "type": "sre"})
    return ExecutionContext(
        scenario=Scenario(manifest=manifest, directory=tmp_path, repo_root=tmp_path),
        stage="broken",
        settings=ExecutionSettings(repo_root=tmp_path),
        http_client=client,
        clock=clock.clock,
        sleep=clock.sleep,
        environ={},
    )


def _client(statuses: list[int]) -> tuple[httpx.Client, list[str]]:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
        return httpx.Response(status)

    return httpx.Client(transport=httpx.MockTransport(handler)), seen


def test_probe_passes_immediately_without_sleeping(tmp_path: Path) -> None:
    clock = _VirtualClock()
    client, seen = _client([503])
    check = HttpGetCheck(
        type="http.get", url="http://fider.local:8080/", expect_status=(503,), timeout_seconds=5
    )

    result = HttpProbeExecutor().execute(check, _context(tmp_path, client, clock))

    assert result.status is CheckStatus.PASS
    assert clock.sleeps == []
    assert seen == ["http://fider.local:8080/"]


def test_probe_retries_until_status_matches(tmp_path: Path) -> None:
    clock = _VirtualClock()
    client, seen = _client([502, 502, 200])
    check = HttpGetCheck(
        type="http.get",
        url="http://fider.local:8080/",
        expect_status=(200,),
        timeout_seconds=30,
        retry_interval=3,
    )

    result = HttpProbeExecutor().execute(check, _context(tmp_path, client, clock))

    assert result.status is CheckStatus.PASS
    assert clock.sleeps == [3, 3]
    assert len(seen) == 3


def test_deny_set_timeout_message_cites_observed_status(tmp_path: Path) -> None:
    clock = _VirtualClock()
    client, seen = _client([200])
    check = HttpGetCheck(
        type="http.get",
        url="http://fider.local:8080/",
        expect_status_not=(200,),
        timeout_seconds=4,
        retry_interval=2,
    )

    result = HttpProbeExecutor().execute(check, _context(tmp_path, client, clock))

    assert result.status is CheckStatus.FAIL
    assert result.message == "got 200, expected not in [200]"
    assert clock.sleeps == [2, 2]
    assert len(seen) == 3


def test_connection_errors_count_as_status_zero(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    clock = _VirtualClock()
    client = httpx.Client(transport=httpx.MockTransport(handler))
    check = HttpGetCheck(
        type="http.get", url="http://fider.local:8080/", expect_status=(200,), timeout_seconds=1
    )

    result = HttpProbeExecutor().execute(check, _context(tmp_path, client, clock))

    assert result.status is CheckStatus.FAIL
    assert result.message == "got 0, expected one of [200]"


def test_status_zero_satisfies_a_deny_set(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    clock = _VirtualClock()
    client = httpx.Client(transport=httpx.MockTransport(handler))
    check = HttpGetCheck(type="http.get", url="http://fider.local:8080/", expect_status_not=(200,))

    result = HttpProbeExecutor().execute(check, _context(tmp_path, client, clock))

    assert result.status is CheckStatus.PASS


def test_missing_url_fails_without_requests(tmp_path: Path) -> None:
    clock = _VirtualClock()
    client, seen = _client([200])

    result = HttpProbeExecutor().execute(
        HttpGetCheck(type="http.get"), _context(tmp_path, client, clock)
    )

    assert result.status is CheckStatus.FAIL
    assert result.message == "missing url field"
    assert seen == []


def test_wrong_variant_is_reported_as_failure(tmp_path: Path) -> None:
    clock = _VirtualClock()
    client, _ = _client([200])

    result = HttpProbeExecutor().execute(
        K8sResourceExistsCheck(type="k8s.resourceExists"), _context(tmp_path, client, clock)
    )

    assert result.status is CheckStatus.FAIL
    assert result.message == "unsupported check for http.get: k8s.resourceExists"


@pytest.mark.parametrize(
    ("status", "expect", "expect_not", "message"),
    [
        (200, (), (), None),
        (200, (200, 204), (), None),
        (500, (200, 204), (), "got 500, expected one of [200 204]"),
        (503, (), (200,), None),
        (200, (200,), (200,), "got 200, expected not in [200]"),
    ],
)
def test_evaluate_status(
    status: int,
    expect: tuple[int, ...],
    expect_not: tuple[int, ...],
    message: str | None,
) -> None:
    assert evaluate_status(status, expect_status=expect, expect_status_not=expect_not) == message


def test_format_status_set() -> None:
    assert format_status_set([200, 503]) == "[200 503]"
    assert format_status_set([]) == "[]"


def test_owned_client_follows_redirects_to_final_status(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen: list[str] = []
    built: list[float] = []
    real_factory = http_probe.build_http_client

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/":
            return httpx.Response(302, headers={"Location": "/signin"})
        return httpx.Response(200)

    def factory(timeout_seconds: float, **_: object) -> httpx.Client:
        built.append(timeout_seconds)
        return real_factory(timeout_seconds, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(http_probe, "build_http_client", factory)
    clock = _VirtualClock()
    check = HttpGetCheck(
        type="http.get", url="http://fider.local:8080/", expect_status=(200,), timeout_seconds=4
    )

    result = HttpProbeExecutor().execute(check, _context(tmp_path, None, clock))

    assert result.status is CheckStatus.PASS
    assert seen == ["/", "/signin"]
    assert built == [10.0]
    assert clock.sleeps == []
