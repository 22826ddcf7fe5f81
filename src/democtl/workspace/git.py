"""Deterministic git CLI wrapper used by patch application and worktree management."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from democtl.utils.process import CommandResult, CommandRunner, SubprocessRunner

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class GitError(RuntimeError):
    """Base error for git-backed workspace failures."""


class GitCommandError(GitError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class GitClient:
    """Runs git against one repository; ``cwd`` overrides target a worktree of it."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        runner: CommandRunner | None = None,
        env_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self._runner = runner if runner is not None else SubprocessRunner()
        self._env_overrides = dict(env_overrides or {})

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
        input_text: str | None = None,
    ) -> CommandResult:
        command = ("git", *args)
        run_cwd = (cwd if cwd is not None else self.repo_path).resolve()
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if "GIT_CONFIG_NOSYSTEM" not in os.environ:
            env["GIT_CONFIG_NOSYSTEM"] = "1"
        env.update(self._env_overrides)

        result = self._runner.run(command, cwd=run_cwd, env=env, input_text=input_text)
        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def commit_exists(self, ref: str) -> bool:
        return self.run(["cat-file", "-e", f"{ref}^{{commit}}"], check=False).ok

    def is_ancestor(self, ancestor: str, descendant: str = "HEAD") -> bool:
        return self.run(
            ["merge-base", "--is-ancestor", ancestor, descendant], check=False
        ).ok

    def status_porcelain(self, cwd: Path) -> str:
        return self.run(["status", "--porcelain"], cwd=cwd).stdout

    def am_in_progress(self, cwd: Path) -> bool:
        """True while a ``git am`` session is stopped in ``cwd``."""

        located = self.run(["rev-parse", "--git-path", "rebase-apply"], cwd=cwd, check=False)
        if not located.ok or not located.stdout.strip():
            return False
        rebase_apply = Path(located.stdout.strip())
        if not rebase_apply.is_absolute():
            rebase_apply = cwd / rebase_apply
        return rebase_apply.is_dir()

    def worktree_add(self, path: Path, ref: str) -> None:
        self.run(["worktree", "add", str(path), ref])

    def worktree_remove(self, path: Path, *, check: bool = True) -> CommandResult:
        return self.run(["worktree", "remove", str(path), "--force"], check=check)

    def worktree_prune(self, *, check: bool = True) -> CommandResult:
        return self.run(["worktree", "prune"], check=check)


__all__ = ["GitClient", "GitCommandError", "GitError"]
