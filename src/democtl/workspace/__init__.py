"""Git-backed scenario workspaces: patch series, validation and worktree lifecycle."""

from democtl.workspace.git import GitClient, GitCommandError, GitError
from democtl.workspace.patch_validation import (
    PatchValidationIssue,
    PatchValidationReport,
    validate_all_patches,
    validate_scenario_patches,
)
from democtl.workspace.patches import (
    PatchApplyError,
    PatchError,
    PatchScopeError,
    abort_am,
    apply_series,
    expand_rename,
    list_patch_files,
    parse_numstat,
    validate_scope,
)
from democtl.workspace.worktree import (
    BaseRevisionError,
    WorkspaceError,
    WorktreeManager,
    WorktreeResult,
)

__all__ = [
    "BaseRevisionError",
    "GitClient",
    "GitCommandError",
    "GitError",
    "PatchApplyError",
    "PatchError",
    "PatchScopeError",
    "PatchValidationIssue",
    "PatchValidationReport",
    "WorkspaceError",
    "WorktreeManager",
    "WorktreeResult",
    "abort_am",
    "apply_series",
    "expand_rename",
    "list_patch_files",
    "parse_numstat",
    "validate_all_patches",
    "validate_scenario_patches",
    "validate_scope",
]
