"""
democtl — patch series validation for engineering scenarios.

File: src/democtl/workspace/patch_validation.py

Purpose
- Verify that each engineering scenario's base revision exists and that its ``broken`` and
  ``solved`` series stay inside the allowed path prefix and apply cleanly onto that base.

Functional requirements
- Series are applied in a throwaway worktree under a temporary directory; the scenario's
  own worktree is never touched.
- Problems are collected as ``PatchValidationIssue`` records rather than raised, so one run
  reports every broken scenario.
- Strict mode additionally requires the base revision to be an ancestor of ``HEAD``.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from democtl.constants import DEFAULT_SCOPE_PREFIX, PATCH_STAGES, TRACK_ENGINEERING
from democtl.domain.catalog import discover
from democtl.domain.manifest import ManifestError
from democtl.utils.fs import temp_directory
from democtl.workspace.git import GitClient, GitCommandError
from democtl.workspace.patches import (
    PatchApplyError,
    PatchError,
    apply_series,
    list_patch_files,
    validate_scope,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from democtl.domain.catalog import Scenario
    from democtl.observability.warnings import WarningCollector

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PatchValidationIssue:
    scenario_id: str
    message: str
    stage: str = ""
    patch_file: str = ""

    def __str__(self) -> str:
        if self.stage and self.patch_file:
            return f"{self.scenario_id} ({self.stage} stage, patch {self.patch_file}): {self.message}"
        if self.stage:
            return f"{self.scenario_id} ({self.stage} stage): {self.message}"
        return f"{self.scenario_id}: {self.message}"


@dataclass(frozen=True, slots=True)
class PatchValidationReport:
    issues: tuple[PatchValidationIssue, ...]
    total: int

    @property
    def has_errors(self) -> bool:
        return bool(self.issues)


def validate_all_patches(
    repo_root: Path | str,
    *,
    scenario_id: str | None = None,
    strict: bool = False,
    git: GitClient | None = None,
    scope_prefix: str = DEFAULT_SCOPE_PREFIX,
    warnings: WarningCollector | None = None,
) -> PatchValidationReport:
    """Validate every engineering scenario, or only ``scenario_id`` when given."""

    root = Path(repo_root).resolve()
    client = git if git is not None else GitClient(root)
    scenarios = [
        item for item in discover(root) if item.scenario_type == TRACK_ENGINEERING
    ]
    if scenario_id:
        scenarios = [item for item in scenarios if item.identifier == scenario_id]
        if not scenarios:
            raise ManifestError(f"engineering scenario not found: {scenario_id}")

    issues: list[PatchValidationIssue] = []
    for scenario in scenarios:
        issues.extend(
            validate_scenario_patches(
                scenario,
                git=client,
                strict=strict,
                scope_prefix=scope_prefix,
                warnings=warnings,
            )
        )
    return PatchValidationReport(issues=tuple(issues), total=len(scenarios))


def validate_scenario_patches(
    scenario: Scenario,
    *,
    git: GitClient,
    strict: bool = False,
    scope_prefix: str = DEFAULT_SCOPE_PREFIX,
    warnings: WarningCollector | None = None,
) -> tuple[PatchValidationIssue, ...]:
    identifier = scenario.identifier
    git_config = scenario.manifest.git
    if git_config is None:
        return (PatchValidationIssue(identifier, "missing git config"),)
    base_ref = git_config.base_ref
    if not base_ref:
        return (PatchValidationIssue(identifier, "missing base_ref"),)

    if not git.commit_exists(base_ref):
        return (
            PatchValidationIssue(
                identifier, f"base commit validation failed: base commit {base_ref} not found"
            ),
        )

    issues: list[PatchValidationIssue] = []
    if strict and not git.is_ancestor(base_ref, "HEAD"):
        issues.append(
            PatchValidationIssue(
                identifier,
                "base commit is not an ancestor of HEAD: base commit is not reachable from HEAD",
            )
        )

    for stage in PATCH_STAGES:
        patch_dir = scenario.directory / git_config.patches_dir_for(stage)
        issues.extend(
            _validate_stage(
                identifier,
                stage,
                patch_dir,
                base_ref=base_ref,
                git=git,
                scope_prefix=scope_prefix,
                warnings=warnings,
            )
        )

    logger.info("patch_validation_scenario", scenario_id=identifier, issues=len(issues))
    return tuple(issues)


def _validate_stage(
    identifier: str,
    stage: str,
    patch_dir: Path,
    *,
    base_ref: str,
    git: GitClient,
    scope_prefix: str,
    warnings: WarningCollector | None,
) -> list[PatchValidationIssue]:
    if not patch_dir.exists():
        return []
    if not patch_dir.is_dir():
        return [
            PatchValidationIssue(identifier, "patches path exists but is not a directory", stage)
        ]

    patches = list_patch_files(patch_dir)
    if not patches:
        return []

    issues: list[PatchValidationIssue] = []
    for patch_file in patches:
        try:
            validate_scope(patch_file, scope_prefix, git=git)
        except PatchError as exc:
            issues.append(
                PatchValidationIssue(
                    identifier, f"invalid patch scope: {exc}", stage, patch_file.name
                )
            )

    apply_failure = _check_series_applies(base_ref, patches, git=git, warnings=warnings)
    if apply_failure is not None:
        issues.append(
            PatchValidationIssue(identifier, f"patches do not apply cleanly: {apply_failure}", stage)
        )
    return issues


def _check_series_applies(
    base_ref: str,
    patches: Sequence[Path],
    *,
    git: GitClient,
    warnings: WarningCollector | None,
) -> str | None:
    try:
        with _temporary_worktree(git, base_ref, warnings=warnings) as worktree_dir:
            apply_series(worktree_dir, patches, git=git, warnings=warnings)
    except PatchApplyError as exc:
        return str(exc)
    except GitCommandError as exc:
        return f"failed to create temporary worktree: {exc}"
    return None


@contextmanager
def _temporary_worktree(
    git: GitClient,
    ref: str,
    *,
    warnings: WarningCollector | None,
) -> Iterator[Path]:
    with temp_directory(prefix="democtl-patch-validate-") as scratch:
        worktree_dir = scratch / "worktree"
        git.worktree_add(worktree_dir, ref)
        try:
            yield worktree_dir
        finally:
            for result in (
                git.worktree_remove(worktree_dir, check=False),
                git.worktree_prune(check=False),
            ):
                if not result.ok and warnings is not None:
                    warnings.warn(
                        " ".join(result.command[:3]),
                        "temporary worktree cleanup failed",
                        detail=result.output,
                    )


__all__ = [
    "PatchValidationIssue",
    "PatchValidationReport",
    "validate_all_patches",
    "validate_scenario_patches",
]
