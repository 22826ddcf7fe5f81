"""``playwright.run`` executor: runs one grep-selected UI suite from ``demo/ui``."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final

import structlog

from democtl.checks.base import CheckResult, ExecutionContext, register_executor
from democtl.checks.k8s import kubectl
from democtl.constants import (
    GLOBAL_SECRETS_FILE,
    LOGIN_KEY_NAME,
    TRACK_ENGINEERING,
    TRACK_SRE,
    UI_SUITE_DIR,
)
from democtl.domain.manifest import PlaywrightCheck
from democtl.observability.logging import SecretRedactor

if TYPE_CHECKING:
    from democtl.domain.manifest import Check

LOGIN_KEY_CONFIGMAP: Final[str] = "fider-env"
HEADED_ENV_VAR: Final[str] = "PLAYWRIGHT_HEADED"
FAILURE_TAIL_LINES: Final[int] = 20

logger = structlog.get_logger(__name__)


def base_url(context: ExecutionContext) -> str:
    """``http://<url_host>:<track port>``, or empty when the manifest declares no host."""

    manifest = context.scenario.manifest
    if not manifest.url_host:
        return ""
    port = context.settings.port_for(manifest.scenario_type)
    if port is None:
        port = context.settings.port_for(TRACK_SRE)
    return f"http://{manifest.url_host}:{port}"


def read_env_file_value(path: Path, key: str) -> str:
    """Value of the first ``KEY=value`` line in ``path``; empty when absent or unreadable."""

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return ""
    prefix = f"{key}="
    for line in lines:
        if line.startswith(prefix):
            return line[len(prefix) :].strip()
    return ""


def resolve_login_key(context: ExecutionContext) -> str:
    scenario_type = context.scenario.scenario_type
    key = ""
    if scenario_type == TRACK_SRE:
        fetched = kubectl(
            context,
            "get",
            "configmap",
            LOGIN_KEY_CONFIGMAP,
            "-o",
            f"jsonpath={{.data.{LOGIN_KEY_NAME}}}",
        )
        if fetched.ok:
            key = fetched.stdout.strip()
    elif scenario_type == TRACK_ENGINEERING:
        key = read_env_file_value(context.settings.repo_root / GLOBAL_SECRETS_FILE, LOGIN_KEY_NAME)
    return key or context.settings.default_login_key


def headed_requested(check: PlaywrightCheck, context: ExecutionContext) -> bool:
    if check.headed or context.settings.playwright_headed:
        return True
    return context.environ.get(HEADED_ENV_VAR, "") == "true"


def failure_tail(output: str, *, secrets: tuple[str, ...] = ()) -> str:
    """Last lines of the suite output with the login key masked."""

    lines = output.strip().splitlines()[-FAILURE_TAIL_LINES:]
    return str(SecretRedactor(secrets)("\n".join(lines)))


@register_executor("playwright.run")
class PlaywrightExecutor:
    check_type = "playwright.run"

    def execute(self, check: Check, context: ExecutionContext) -> CheckResult:
        if not isinstance(check, PlaywrightCheck):
            return CheckResult.failed(check, f"unsupported check for playwright.run: {check.type}")

        ui_dir = context.settings.repo_root / UI_SUITE_DIR
        if not ui_dir.is_dir():
            return CheckResult.skipped(check, f"UI test suite not found at {ui_dir}")

        argv = ["npx", "playwright", "test", "--grep", check.suite]
        if headed_requested(check, context):
            argv.append("--headed")

        login_key = resolve_login_key(context)
        env = {
            "BASE_URL": base_url(context),
            "SCENARIO": context.scenario.identifier,
            "STAGE": context.stage,
            LOGIN_KEY_NAME: login_key,
        }
        logger.info("playwright_suite_start", suite=check.suite, base_url=env["BASE_URL"])
        result = context.runner.run(argv, cwd=ui_dir, env=env)
        if not result.ok:
            tail = failure_tail(result.output, secrets=(login_key,))
            logger.warning(
                "playwright_suite_failed",
                suite=check.suite,
                returncode=result.returncode,
                output=tail,
            )
            message = f"Playwright test failed (exit {result.returncode})"
            return CheckResult.failed(check, f"{message}\n{tail}" if tail else message)
        return CheckResult.passed(check)


__all__ = [
    "HEADED_ENV_VAR",
    "FAILURE_TAIL_LINES",
    "LOGIN_KEY_CONFIGMAP",
    "PlaywrightExecutor",
    "base_url",
    "failure_tail",
    "headed_requested",
    "read_env_file_value",
    "resolve_login_key",
]
