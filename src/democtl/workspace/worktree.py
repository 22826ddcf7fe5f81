"""
democtl — scenario worktree lifecycle.

File: src/democtl/workspace/worktree.py

Purpose
- Materialize an engineering scenario as a git worktree at its base revision on the
  scenario's work branch, with the ``broken`` patch series applied.
- Reset an existing worktree to the ``broken`` or ``solved`` stage, discarding local edits.
- Remove one or all scenario worktrees.

Functional requirements
- ``init`` is a no-op when the worktree directory exists.
- ``reset_to_stage`` is intentionally destructive and ends with a clean status.
- Fetch, prune, abort and removal fallbacks are best-effort: failures become
  ``NonFatalWarning`` records. Any other git failure during init/reset is fatal.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from democtl.constants import (
    DEMO_DIR,
    PATCH_STAGES,
    SCENARIOS_DIRNAME,
    STAGE_BROKEN,
    TRACK_ENGINEERING,
    WORKTREE_DIRNAME,
)
from democtl.observability.logging import correlation_scope
from democtl.observability.warnings import WarningCollector
from democtl.utils.fs import force_remove_tree, is_within
from democtl.workspace.git import GitClient, GitCommandError
from democtl.workspace.patches import abort_am, apply_series, list_patch_files

if TYPE_CHECKING:
    from democtl.domain.catalog import Scenario
    from democtl.domain.manifest import GitConfig
    from democtl.utils.process import CommandRunner


class WorkspaceError(RuntimeError):
    """Raised when a worktree operation cannot complete."""


class BaseRevisionError(WorkspaceError):
    """Raised when the scenario's base revision is not present locally."""


@dataclass(frozen=True, slots=True)
class WorktreeResult:
    path: Path
    changed: bool
    patches_applied: int = 0


class WorktreeManager:
    """Creates, resets and removes scenario worktrees of one repository."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        git: GitClient | None = None,
        runner: CommandRunner | None = None,
        fetch_remote: str = "origin",
        three_way: bool = False,
        warnings: WarningCollector | None = None,
        logger: Any | None = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self.git = git if git is not None else GitClient(self.repo_root, runner=runner)
        self.fetch_remote = fetch_remote
        self.three_way = three_way
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self.warnings = warnings if warnings is not None else WarningCollector(logger=self._logger)

    def init(self, scenario: Scenario) -> WorktreeResult:
        worktree_dir = self._worktree_dir(scenario)
        if worktree_dir.exists():
            self._logger.info("worktree_exists", path=str(worktree_dir))
            return WorktreeResult(path=worktree_dir, changed=False)

        git_config = _require_git_config(scenario)
        with correlation_scope(scenario_id=scenario.identifier):
            self._logger.info(
                "worktree_init_start",
                base_ref=git_config.base_ref,
                work_branch=git_config.work_branch,
                path=str(worktree_dir),
            )
            self._fetch()
            self._prune()

            if not self.git.commit_exists(git_config.base_ref):
                raise BaseRevisionError(
                    f"base commit {git_config.base_ref} not found in local repository"
                )

            try:
                self.git.worktree_add(worktree_dir, git_config.base_ref)
                self.git.run(
                    ["switch", "-C", git_config.work_branch, git_config.base_ref],
                    cwd=worktree_dir,
                )
            except GitCommandError as exc:
                raise WorkspaceError(f"failed to create worktree: {exc}") from exc

            applied = self._apply_stage(scenario, worktree_dir, git_config, STAGE_BROKEN)
            self._logger.info("worktree_init_complete", patches_applied=applied)
        return WorktreeResult(path=worktree_dir, changed=True, patches_applied=applied)

    def reset_to_stage(self, scenario: Scenario, stage: str) -> WorktreeResult:
        """Discard every local change and rebuild the worktree at ``stage``."""

        worktree_dir = self._worktree_dir(scenario)
        if not worktree_dir.exists():
            raise WorkspaceError("worktree does not exist, use init first")
        git_config = _require_git_config(scenario)
        if stage not in PATCH_STAGES:
            raise WorkspaceError(f"unknown stage: {stage} (expected broken or solved)")

        with correlation_scope(scenario_id=scenario.identifier, stage=stage):
            self._logger.info("worktree_reset_start", path=str(worktree_dir))
            if self.git.am_in_progress(worktree_dir):
                abort_am(worktree_dir, git=self.git, warnings=self.warnings)

            try:
                self.git.run(["reset", "--hard", git_config.base_ref], cwd=worktree_dir)
                self.git.run(["clean", "-fdx"], cwd=worktree_dir)
                self.git.run(
                    ["switch", "-C", git_config.work_branch, git_config.base_ref],
                    cwd=worktree_dir,
                )
            except GitCommandError as exc:
                raise WorkspaceError(f"failed to reset worktree to base: {exc}") from exc

            applied = self._apply_stage(scenario, worktree_dir, git_config, stage)

            if self.git.status_porcelain(worktree_dir).strip():
                raise WorkspaceError(f"worktree is not clean after applying {stage} patches")
            self._logger.info("worktree_reset_complete", patches_applied=applied)
        return WorktreeResult(path=worktree_dir, changed=True, patches_applied=applied)

    def remove(self, scenario: Scenario) -> WorktreeResult:
        worktree_dir = self._worktree_dir(scenario)
        if not worktree_dir.exists():
            self._logger.info("worktree_missing", path=str(worktree_dir))
            return WorktreeResult(path=worktree_dir, changed=False)

        with correlation_scope(scenario_id=scenario.identifier):
            self._remove_path(worktree_dir)
            self._prune()
        return WorktreeResult(path=worktree_dir, changed=True)

    def remove_all(self) -> tuple[Path, ...]:
        """Remove every engineering scenario worktree, registered or left on disk."""

        candidates = [*self._registered_scenario_worktrees(), *self._on_disk_worktrees()]
        targets = sorted({path.resolve() for path in candidates})
        removed: list[Path] = []
        for path in targets:
            if not path.exists():
                continue
            self._remove_path(path)
            removed.append(path)
        self._prune()
        return tuple(removed)

    def _worktree_dir(self, scenario: Scenario) -> Path:
        worktree_dir = scenario.worktree_dir
        if worktree_dir is None:
            raise WorkspaceError(
                f"scenario {scenario.identifier} is not an {TRACK_ENGINEERING} scenario"
            )
        return worktree_dir

    def _apply_stage(
        self,
        scenario: Scenario,
        worktree_dir: Path,
        git_config: GitConfig,
        stage: str,
    ) -> int:
        patches = list_patch_files(scenario.directory / git_config.patches_dir_for(stage))
        if not patches:
            return 0
        self._logger.info("patch_series_apply", count=len(patches))
        return apply_series(
            worktree_dir,
            patches,
            git=self.git,
            three_way=self.three_way,
            warnings=self.warnings,
        )

    def _fetch(self) -> None:
        if not self.fetch_remote:
            return
        result = self.git.run(["fetch", self.fetch_remote, "--tags"], check=False)
        if not result.ok:
            self.warnings.warn("git fetch", "fetch failed", detail=result.output)

    def _prune(self) -> None:
        result = self.git.worktree_prune(check=False)
        if not result.ok:
            self.warnings.warn("git worktree prune", "prune failed", detail=result.output)

    def _remove_path(self, path: Path) -> None:
        self._logger.info("worktree_remove", path=str(path))
        result = self.git.worktree_remove(path, check=False)
        if result.ok and not path.exists():
            return
        if not result.ok:
            self.warnings.warn("git worktree remove", "falling back to deletion", detail=result.output)
        try:
            force_remove_tree(path, root=self.repo_root)
        except (OSError, ValueError) as exc:
            self.warnings.warn("delete worktree", f"failed to remove {path}", detail=str(exc))

    def _registered_scenario_worktrees(self) -> list[Path]:
        result = self.git.run(["worktree", "list", "--porcelain"], check=False)
        if not result.ok:
            self.warnings.warn("git worktree list", "failed to list worktrees", detail=result.output)
            return []
        scenarios_root = self._scenarios_root()
        paths: list[Path] = []
        for line in result.stdout.splitlines():
            key, _, value = line.partition(" ")
            if key != "worktree" or not value.strip():
                continue
            path = Path(value.strip())
            if path.name == WORKTREE_DIRNAME and is_within(path, scenarios_root):
                paths.append(path)
        return paths

    def _on_disk_worktrees(self) -> list[Path]:
        scenarios_root = self._scenarios_root()
        if not scenarios_root.is_dir():
            return []
        found: list[Path] = []
        for dirpath, dirnames, _ in os.walk(scenarios_root):
            if WORKTREE_DIRNAME in dirnames:
                found.append(Path(dirpath) / WORKTREE_DIRNAME)
            # Never descend into checked-out application trees.
            dirnames[:] = sorted(name for name in dirnames if name != WORKTREE_DIRNAME)
        return found

    def _scenarios_root(self) -> Path:
        return self.repo_root / DEMO_DIR / TRACK_ENGINEERING / SCENARIOS_DIRNAME


def _require_git_config(scenario: Scenario) -> GitConfig:
    git_config = scenario.manifest.git
    if git_config is None or not git_config.base_ref or not git_config.work_branch:
        raise WorkspaceError("scenario manifest missing git.base_ref or git.work_branch")
    return git_config


__all__ = [
    "BaseRevisionError",
    "WorkspaceError",
    "WorktreeManager",
    "WorktreeResult",
]
