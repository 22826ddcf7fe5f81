"""Stable constants shared across democtl modules."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Manifest layout.
MANIFEST_FILENAME: Final[str] = "scenario.json"
CHECKS_SCHEMA_VERSION: Final[int] = 1
CONFIG_SCHEMA_VERSION: Final[int] = 1
DEMO_DIR: Final[PurePosixPath] = PurePosixPath("demo")
SCENARIOS_DIRNAME: Final[str] = "scenarios"
WORKTREE_DIRNAME: Final[str] = "worktree"
STATE_DIR: Final[PurePosixPath] = PurePosixPath("demo/.state")
GLOBAL_SECRETS_FILE: Final[PurePosixPath] = PurePosixPath("demo/.state/global/secrets.env")
UI_SUITE_DIR: Final[PurePosixPath] = PurePosixPath("demo/ui")

# Scenario tracks, in discovery order.
TRACK_SRE: Final[str] = "sre"
TRACK_ENGINEERING: Final[str] = "engineering"
SCENARIO_TYPES: Final[tuple[str, ...]] = (TRACK_SRE, TRACK_ENGINEERING)
RESET_STRATEGIES: Final[tuple[str, ...]] = ("namespace-delete", "worktree-reset")

# Stage names with special meaning.
STAGE_BROKEN: Final[str] = "broken"
STAGE_HEALTHY: Final[str] = "healthy"
STAGE_SOLVED: Final[str] = "solved"
PATCH_STAGES: Final[tuple[str, ...]] = (STAGE_BROKEN, STAGE_SOLVED)

# Patch series defaults.
DEFAULT_BROKEN_PATCHES_DIR: Final[str] = "patches/broken"
DEFAULT_SOLVED_PATCHES_DIR: Final[str] = "patches/solved"
DEFAULT_SCOPE_PREFIX: Final[str] = "fider/"
PATCH_SUFFIX: Final[str] = ".patch"

# Cluster defaults.
DEFAULT_KUBE_CONTEXT: Final[str] = "kind-fider-demo"
NAMESPACE_PREFIX: Final[str] = "demo-"

# Track-specific HTTP ports exposed by the local edge.
DEFAULT_TRACK_PORTS: Final[dict[str, int]] = {
    TRACK_SRE: 8080,
    TRACK_ENGINEERING: 8082,
}

DEFAULT_LOGIN_KEY: Final[str] = "northstar-demo-key"
LOGIN_KEY_NAME: Final[str] = "DEMO_LOGIN_KEY"

__all__ = [
    "CHECKS_SCHEMA_VERSION",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_BROKEN_PATCHES_DIR",
    "DEFAULT_KUBE_CONTEXT",
    "DEFAULT_LOGIN_KEY",
    "DEFAULT_SCOPE_PREFIX",
    "DEFAULT_SOLVED_PATCHES_DIR",
    "DEFAULT_TRACK_PORTS",
    "DEMO_DIR",
    "GLOBAL_SECRETS_FILE",
    "LOGIN_KEY_NAME",
    "MANIFEST_FILENAME",
    "NAMESPACE_PREFIX",
    "PATCH_STAGES",
    "PATCH_SUFFIX",
    "RESET_STRATEGIES",
    "SCENARIOS_DIRNAME",
    "SCENARIO_TYPES",
    "STAGE_BROKEN",
    "STAGE_HEALTHY",
    "STAGE_SOLVED",
    "STATE_DIR",
    "TRACK_ENGINEERING",
    "TRACK_SRE",
    "UI_SUITE_DIR",
    "WORKTREE_DIRNAME",
]
