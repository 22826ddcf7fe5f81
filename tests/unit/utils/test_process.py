"""Unit tests for the subprocess seam."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from democtl.utils.process import (
    MISSING_EXECUTABLE_RETURNCODE,
    CommandResult,
    CommandRunner,
    SubprocessRunner,
)


def test_runner_captures_output_and_exit_code(tmp_path: Path) -> None:
    script = "import os, sys; print(os.getcwd()); print(os.environ['DEMO_FLAG'], file=sys.stderr); sys.exit(3)"

    result = SubprocessRunner().run(
        [sys.executable, "-c", script], cwd=tmp_path, env={"DEMO_FLAG": "on"}
    )

    assert result.returncode == 3
    assert not result.ok
    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()
    assert result.stderr.strip() == "on"


def test_runner_feeds_stdin() -> None:
    result = SubprocessRunner().run(
        [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
        input_text="replicas",
    )

    assert result.ok
    assert result.stdout.strip() == "REPLICAS"


def test_base_env_replaces_inherited_environment() -> None:
    runner = SubprocessRunner(base_env={"ONLY": "this"})

    result = runner.run(
        [sys.executable, "-c", "import os; print(os.environ.get('HOME', 'unset'), os.environ['ONLY'])"]
    )

    assert result.stdout.strip() == "unset this"


def test_missing_executable_is_reported_not_raised() -> None:
    result = SubprocessRunner().run(["democtl-definitely-not-installed", "--version"])

    assert result.returncode == MISSING_EXECUTABLE_RETURNCODE
    assert result.stderr.startswith("democtl-definitely-not-installed: executable not found")


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError, match="command must not be empty"):
        SubprocessRunner().run([])


def test_combined_output() -> None:
    assert CommandResult(("x",), 1, stdout=" out \n", stderr="err\n").output == "out\nerr"
    assert CommandResult(("x",), 1, stderr="err").output == "err"
    assert CommandResult(("x",), 0).output == ""


def test_subprocess_runner_satisfies_protocol(fake_runner) -> None:
    assert isinstance(SubprocessRunner(), CommandRunner)
    assert isinstance(fake_runner, CommandRunner)
