"""Scenario discovery and identifier resolution over the ``demo/`` tree."""

from __future__ import annotations

import os
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from democtl.constants import (
    DEMO_DIR,
    MANIFEST_FILENAME,
    SCENARIO_TYPES,
    SCENARIOS_DIRNAME,
    STATE_DIR,
    TRACK_ENGINEERING,
    WORKTREE_DIRNAME,
)
from democtl.domain.manifest import Manifest, ManifestError, load_manifest

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True, slots=True)
class Scenario:
    """A discovered manifest plus the filesystem locations derived from it."""

    manifest: Manifest
    directory: Path
    repo_root: Path

    @property
    def identifier(self) -> str:
        return self.manifest.identifier

    @property
    def scenario_type(self) -> str:
        return self.manifest.scenario_type

    @property
    def state_dir(self) -> Path:
        manifest = self.manifest
        return (
            self.repo_root
            / STATE_DIR
            / manifest.scenario_type
            / manifest.track
            / manifest.slug
        )

    @property
    def worktree_dir(self) -> Path | None:
        """Worktree location; only engineering scenarios own one."""

        if self.manifest.scenario_type != TRACK_ENGINEERING:
            return None
        return self.directory / WORKTREE_DIRNAME

    @property
    def relative_dir(self) -> str:
        """Scenario directory relative to ``demo/``, in POSIX form."""

        demo_dir = self.repo_root / DEMO_DIR
        try:
            return self.directory.relative_to(demo_dir).as_posix()
        except ValueError:
            return self.directory.as_posix()


def parse_identifier(identifier: str) -> tuple[str, str]:
    """Split ``<track>/<slug>`` into its parts."""

    track, sep, slug = identifier.partition("/")
    if not sep:
        raise ManifestError(
            f"invalid scenario identifier format (expected 'track/slug'): {identifier}"
        )
    return track, slug


def discover(repo_root: Path | str) -> tuple[Scenario, ...]:
    """Find every ``scenario.json`` below ``demo/{sre,engineering}/scenarios``.

    Worktree directories are skipped so checked-out application trees never register
    as scenarios. Manifests are re-read on every call.
    """

    root = Path(repo_root).resolve()
    scenarios: list[Scenario] = []
    for scenario_type in SCENARIO_TYPES:
        scenarios_dir = root / DEMO_DIR / scenario_type / SCENARIOS_DIRNAME
        if not scenarios_dir.is_dir():
            continue
        for dirpath, dirnames, filenames in os.walk(scenarios_dir):
            dirnames[:] = sorted(name for name in dirnames if name != WORKTREE_DIRNAME)
            if MANIFEST_FILENAME not in filenames:
                continue
            manifest_path = Path(dirpath) / MANIFEST_FILENAME
            scenarios.append(
                Scenario(
                    manifest=load_manifest(manifest_path),
                    directory=Path(dirpath),
                    repo_root=root,
                )
            )
    return tuple(scenarios)


def resolve(
    repo_root: Path | str,
    identifier: str,
    *,
    scenario_type: str | None = None,
) -> Scenario:
    """Resolve one scenario by identifier, optionally narrowed to a track type."""

    parse_identifier(identifier)
    matches = [
        item
        for item in discover(repo_root)
        if item.identifier == identifier
        and (scenario_type is None or item.scenario_type == scenario_type)
    ]
    if not matches:
        raise ManifestError(f"scenario not found: {identifier}")
    if len(matches) > 1:
        raise ManifestError(
            f"ambiguous scenario {identifier} (found in both tracks, use --type to disambiguate)"
        )
    return matches[0]


def detect_collisions(scenarios: Sequence[Scenario]) -> dict[str, tuple[str, ...]]:
    """Return identifiers declared under more than one scenario type."""

    types_by_identifier: dict[str, set[str]] = defaultdict(set)
    for item in scenarios:
        types_by_identifier[item.identifier].add(item.scenario_type)
    return {
        identifier: tuple(sorted(types))
        for identifier, types in sorted(types_by_identifier.items())
        if len(types) > 1
    }


def find_repo_root(start: Path | str | None = None) -> Path:
    """Walk upward from ``start`` until a directory containing ``demo/`` is found."""

    current = Path(start if start is not None else Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / DEMO_DIR).is_dir():
            return candidate
    raise ManifestError("could not find repository root (looking for 'demo' directory)")


__all__ = [
    "Scenario",
    "detect_collisions",
    "discover",
    "find_repo_root",
    "parse_identifier",
    "resolve",
]
