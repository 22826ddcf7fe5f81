"""Structural validation for discovered scenario manifests."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from democtl.constants import CHECKS_SCHEMA_VERSION, SCENARIO_TYPES, TRACK_ENGINEERING
from democtl.domain.catalog import detect_collisions, discover

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from democtl.domain.catalog import Scenario
    from democtl.domain.manifest import Check, GitConfig

_FULL_SHA_RE = re.compile(r"^[0-9a-fA-F]{40}$")
_SCENARIO_PATH_DEPTH = 4


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    scenario_path: str
    message: str
    field: str = ""

    def __str__(self) -> str:
        if self.field:
            return f"{self.scenario_path}: {self.field}: {self.message}"
        return f"{self.scenario_path}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationReport:
    issues: tuple[ValidationIssue, ...]
    total: int

    @property
    def has_errors(self) -> bool:
        return bool(self.issues)


def validate_all(repo_root: Path | str, *, strict: bool = False) -> ValidationReport:
    """Validate every discovered manifest; strict mode also rejects cross-track collisions."""

    scenarios = discover(repo_root)
    issues: list[ValidationIssue] = []
    for item in scenarios:
        issues.extend(validate_scenario(item))

    if strict:
        for identifier, types in detect_collisions(scenarios).items():
            issues.append(
                ValidationIssue(
                    scenario_path=identifier,
                    message=(
                        "collision detected: scenario exists in multiple types "
                        f"({', '.join(types)})"
                    ),
                )
            )

    return ValidationReport(issues=tuple(issues), total=len(scenarios))


def validate_scenario(scenario: Scenario) -> tuple[ValidationIssue, ...]:
    rel_path = scenario.relative_dir
    manifest = scenario.manifest
    issues: list[ValidationIssue] = []

    def add(message: str, field: str = "") -> None:
        issues.append(ValidationIssue(scenario_path=rel_path, message=message, field=field))

    required = (
        ("track", manifest.track),
        ("slug", manifest.slug),
        ("title", manifest.title),
        ("type", manifest.scenario_type),
        ("url_host", manifest.url_host),
        ("reset_strategy", manifest.reset_strategy),
    )
    for name, value in required:
        if not value:
            add("missing required field", name)

    top_dir = rel_path.split("/", 1)[0]
    if top_dir in SCENARIO_TYPES and manifest.scenario_type != top_dir:
        add(
            f"scenario in {top_dir}/ directory but type is '{manifest.scenario_type}' "
            f"(expected '{top_dir}')",
            "type",
        )

    depth = len(PurePosixPath(rel_path).parts)
    if depth != _SCENARIO_PATH_DEPTH:
        add(
            "scenario path must be exactly 4 levels deep: "
            f"<type>/scenarios/<track>/<slug>, got depth {depth}"
        )

    stages = manifest.checks.stages
    if stages:
        if manifest.checks.version != CHECKS_SCHEMA_VERSION:
            add(f"must be {CHECKS_SCHEMA_VERSION}, got {manifest.checks.version}", "checks.version")
        for stage_name, stage in stages.items():
            _check_types(add, stage.verify, f"checks.stages.{stage_name}.verify")
            _check_types(add, stage.health, f"checks.stages.{stage_name}.health")

    if manifest.scenario_type == TRACK_ENGINEERING:
        if manifest.git is None:
            add("git config required for engineering scenarios", "git")
        else:
            _validate_git(add, manifest.git)

    return tuple(issues)


def validate_patch_dir(path: str) -> str | None:
    """Return a problem description when ``path`` is not a clean relative path."""

    pure = PurePosixPath(path)
    if pure.is_absolute() or path.startswith("\\"):
        return "must be a relative path, not absolute"
    if ".." in path:
        return "must not contain '..' (parent directory references)"
    return None


def _check_types(add: Callable[..., None], checks: tuple[Check, ...], path: str) -> None:
    for index, check in enumerate(checks):
        if not check.type:
            add("missing required field", f"{path}[{index}].type")


def _validate_git(add: Callable[..., None], git: GitConfig) -> None:
    if not git.base_ref:
        add("missing required field", "git.base_ref")
    elif len(git.base_ref) != 40:
        add(
            f"must be a full 40-character commit SHA, got {len(git.base_ref)} characters",
            "git.base_ref",
        )
    elif not _FULL_SHA_RE.fullmatch(git.base_ref):
        add("must be a valid hexadecimal SHA", "git.base_ref")

    if not git.work_branch:
        add("missing required field", "git.work_branch")

    for field_name, value in (
        ("git.broken_patches_dir", git.broken_patches_dir),
        ("git.solved_patches_dir", git.solved_patches_dir),
    ):
        problem = validate_patch_dir(value)
        if problem is not None:
            add(problem, field_name)


__all__ = [
    "ValidationIssue",
    "ValidationReport",
    "validate_all",
    "validate_patch_dir",
    "validate_scenario",
]
