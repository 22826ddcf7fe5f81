"""
democtl — patch series application and scope validation.

File: src/democtl/workspace/patches.py

Purpose
- Apply an ordered series of mailbox-format patches onto a worktree with ``git am``.
- Check that a patch only touches paths under an allowed prefix, using
  ``git apply --numstat`` as the source of truth for affected paths.

Functional requirements
- Patch files are ``*.patch`` entries of a directory, applied in lexical order; a missing
  directory is an empty series.
- The first failing patch aborts the ``git am`` session and raises ``PatchApplyError``
  naming that patch. A failed abort is a non-fatal warning, not a second error.
- Renames contribute both sides (``old => new`` and ``dir/{old => new}/rest``);
  ``/dev/null`` is ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final

import structlog

from democtl.constants import DEFAULT_SCOPE_PREFIX, PATCH_SUFFIX
from democtl.workspace.git import GitCommandError, GitError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from democtl.observability.warnings import WarningCollector
    from democtl.workspace.git import GitClient

DEV_NULL: Final[str] = "/dev/null"
_RENAME_ARROW: Final[str] = " => "

logger = structlog.get_logger(__name__)


class PatchError(GitError):
    """Base error for patch series problems."""


class PatchApplyError(PatchError):
    """Raised when a patch in a series does not apply; the worktree needs a reset."""

    def __init__(self, patch_file: Path, detail: str) -> None:
        self.patch_file = patch_file
        self.detail = detail
        super().__init__(
            f"failed to apply patch {patch_file.name}: {detail} "
            "(worktree left at the previous patch; run a reset before retrying)"
        )


class PatchScopeError(PatchError):
    """Raised when a patch touches a path outside the allowed prefix."""

    def __init__(self, patch_file: Path, path: str, allowed_prefix: str) -> None:
        self.patch_file = patch_file
        self.path = path
        self.allowed_prefix = allowed_prefix
        super().__init__(f"patch affects path outside {allowed_prefix}: {path}")


def list_patch_files(directory: Path) -> tuple[Path, ...]:
    """Return the ``*.patch`` files of ``directory`` sorted lexically by name."""

    if not directory.exists():
        return ()
    if not directory.is_dir():
        raise PatchError(f"patch path exists but is not a directory: {directory}")
    return tuple(
        sorted(
            (
                entry
                for entry in directory.iterdir()
                if entry.is_file() and entry.name.endswith(PATCH_SUFFIX)
            ),
            key=lambda entry: entry.name,
        )
    )


def apply_series(
    workspace_dir: Path,
    patch_files: Sequence[Path],
    *,
    git: GitClient,
    three_way: bool = False,
    warnings: WarningCollector | None = None,
) -> int:
    """Apply ``patch_files`` in order with ``git am``; return how many were applied."""

    for index, patch_file in enumerate(patch_files):
        args = ["am", "--keep-cr", "--quiet"]
        if three_way:
            args.append("--3way")
        args.append(str(patch_file))

        result = git.run(args, cwd=workspace_dir, check=False)
        if not result.ok:
            abort_am(workspace_dir, git=git, warnings=warnings)
            detail = result.output or f"git am exited with {result.returncode}"
            logger.error(
                "patch_apply_failed",
                patch=patch_file.name,
                position=index + 1,
                total=len(patch_files),
            )
            raise PatchApplyError(patch_file, detail)
        logger.debug("patch_applied", patch=patch_file.name, position=index + 1)
    return len(patch_files)


def abort_am(
    workspace_dir: Path,
    *,
    git: GitClient,
    warnings: WarningCollector | None = None,
) -> None:
    """Best-effort ``git am --abort``; a failure is recorded, never raised."""

    result = git.run(["am", "--abort"], cwd=workspace_dir, check=False)
    if not result.ok and warnings is not None:
        warnings.warn("git am --abort", "failed to abort patch session", detail=result.output)


def expand_rename(path: str) -> tuple[str, ...]:
    """Expand a numstat rename path into its old and new paths."""

    if _RENAME_ARROW not in path:
        return (path,)

    open_brace = path.find("{")
    close_brace = path.find("}", open_brace + 1)
    if open_brace != -1 and close_brace != -1:
        inner = path[open_brace + 1 : close_brace]
        if _RENAME_ARROW in inner:
            prefix = path[:open_brace]
            suffix = path[close_brace + 1 :]
            old_inner, _, new_inner = inner.partition(_RENAME_ARROW)
            return (
                _collapse_slashes(f"{prefix}{old_inner.strip()}{suffix}"),
                _collapse_slashes(f"{prefix}{new_inner.strip()}{suffix}"),
            )

    old_path, _, new_path = path.partition(_RENAME_ARROW)
    return (old_path.strip(), new_path.strip())


def parse_numstat(output: str) -> tuple[str, ...]:
    """Affected paths from ``git apply --numstat`` output, renames expanded, ``/dev/null`` dropped."""

    paths: list[str] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        parts = line.split("\t", 2)
        if len(parts) < 3:
            continue
        for path in expand_rename(parts[2].strip()):
            if path and path != DEV_NULL:
                paths.append(path)
    return tuple(paths)


def validate_scope(
    patch_file: Path,
    allowed_prefix: str = DEFAULT_SCOPE_PREFIX,
    *,
    git: GitClient,
) -> tuple[str, ...]:
    """Raise ``PatchScopeError`` for the first path outside ``allowed_prefix``."""

    try:
        result = git.run(["apply", "--numstat", str(patch_file)])
    except GitCommandError as exc:
        raise PatchError(f"failed to analyze patch {patch_file.name}: {exc}") from exc

    paths = parse_numstat(result.stdout)
    for path in paths:
        if not path.startswith(allowed_prefix):
            raise PatchScopeError(patch_file, path, allowed_prefix)
    return paths


def _collapse_slashes(path: str) -> str:
    while "//" in path:
        path = path.replace("//", "/")
    return path


__all__ = [
    "DEV_NULL",
    "PatchApplyError",
    "PatchError",
    "PatchScopeError",
    "abort_am",
    "apply_series",
    "expand_rename",
    "list_patch_files",
    "parse_numstat",
    "validate_scope",
]
