"""Subprocess seam shared by every external tool invocation (kubectl, jq, npx, git)."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

MISSING_EXECUTABLE_RETURNCODE: Final[int] = 127


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for error messages."""

        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


@runtime_checkable
class CommandRunner(Protocol):
    """Runs one command to completion and captures its output."""

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult: ...


class SubprocessRunner:
    """Synchronous ``subprocess.run`` implementation; no timeout wrapper.

    ``env`` entries are layered over the inherited environment. A missing executable is
    reported as return code 127 rather than raised.
    """

    def __init__(self, *, base_env: Mapping[str, str] | None = None) -> None:
        self._base_env = dict(base_env) if base_env is not None else None

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        command = tuple(args)
        if not command:
            raise ValueError("args: command must not be empty")

        merged_env = dict(self._base_env if self._base_env is not None else os.environ)
        if env:
            merged_env.update(env)

        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                env=merged_env,
                text=True,
                capture_output=True,
                input=input_text,
                check=False,
            )
        except FileNotFoundError as exc:
            return CommandResult(
                command=command,
                returncode=MISSING_EXECUTABLE_RETURNCODE,
                stderr=f"{command[0]}: executable not found ({exc})",
            )

        return CommandResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


__all__ = [
    "CommandResult",
    "CommandRunner",
    "MISSING_EXECUTABLE_RETURNCODE",
    "SubprocessRunner",
]
