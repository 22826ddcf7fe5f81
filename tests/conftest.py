"""
democtl — shared pytest fixtures.

File: tests/conftest.py

Purpose
- Provide a scripted ``CommandRunner`` fake, a scenario tree builder, and an isolated git
  environment for tests that drive a real ``git`` binary.
"""

from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from democtl.utils.process import CommandResult


@dataclass(slots=True)
class RecordedCall:
    args: tuple[str, ...]
    cwd: Path | None
    env: dict[str, str] | None
    input_text: str | None


@dataclass(slots=True)
class FakeRunner:
    """Scripted ``CommandRunner``: responses are matched by the longest argv prefix.

    A response list is consumed one entry per call; its last entry repeats. Commands with
    no scripted response succeed with empty output.
    """

    responses: dict[tuple[str, ...], list[CommandResult]] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)

    def script(
        self,
        prefix: Sequence[str],
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> FakeRunner:
        key = tuple(prefix)
        self.responses.setdefault(key, []).append(
            CommandResult(command=key, returncode=returncode, stdout=stdout, stderr=stderr)
        )
        return self

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        command = tuple(args)
        self.calls.append(
            RecordedCall(
                args=command,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                input_text=input_text,
            )
        )
        key = self._match(command)
        if key is None:
            return CommandResult(command=command, returncode=0)
        queue = self.responses[key]
        scripted = queue.pop(0) if len(queue) > 1 else queue[0]
        return CommandResult(
            command=command,
            returncode=scripted.returncode,
            stdout=scripted.stdout,
            stderr=scripted.stderr,
        )

    def commands(self, program: str | None = None) -> list[tuple[str, ...]]:
        return [
            call.args for call in self.calls if program is None or call.args[:1] == (program,)
        ]

    def _match(self, command: tuple[str, ...]) -> tuple[str, ...] | None:
        best: tuple[str, ...] | None = None
        for key in self.responses:
            if command[: len(key)] == key and (best is None or len(key) > len(best)):
                best = key
        return best


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


ScenarioWriter = Callable[..., Path]


@pytest.fixture
def write_scenario() -> ScenarioWriter:
    """Return a helper that writes ``demo/<type>/scenarios/<track>/<slug>/scenario.json``."""

    def _write(
        repo_root: Path,
        *,
        scenario_type: str = "sre",
        track: str = "sre",
        slug: str = "cpu-spike",
        checks: Mapping[str, Any] | None = None,
        git: Mapping[str, Any] | None = None,
        **extra: Any,
    ) -> Path:
        directory = repo_root / "demo" / scenario_type / "scenarios" / track / slug
        directory.mkdir(parents=True, exist_ok=True)
        payload: dict[str, Any] = {
            "track": track,
            "slug": slug,
            "title": f"{track} {slug}",
            "type": scenario_type,
            "url_host": "localhost",
            "reset_strategy": "worktree-reset" if scenario_type == "engineering" else "namespace-delete",
            "checks": dict(checks) if checks is not None else {"version": 1, "stages": {}},
        }
        if git is not None:
            payload["git"] = dict(git)
        payload.update(extra)
        (directory / "scenario.json").write_text(
            json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8"
        )
        return directory

    return _write


def run_git_command(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        text=True,
        capture_output=True,
        check=False,
    )
    if check and completed.returncode != 0:
        msg = (
            f"git command failed: git {' '.join(args)}\n"
            f"stdout:\n{completed.stdout}\nstderr:\n{completed.stderr}"
        )
        raise AssertionError(msg)
    return completed


@pytest.fixture
def run_git() -> Callable[..., subprocess.CompletedProcess[str]]:
    return run_git_command


@pytest.fixture
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    xdg = tmp_path / "xdg"
    home.mkdir()
    xdg.mkdir()

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Demo Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Demo Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.invalid")
