"""
democtl — filesystem helpers.

File: src/democtl/utils/fs.py

Purpose
- Atomic report writes, contained forced deletion of worktree directories, and scratch
  directories for throwaway git worktrees.

Functional requirements
- Report files are written through a sibling temp file and ``os.replace``.
- Forced deletion refuses any path that does not resolve inside the given root.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "force_remove_tree",
    "is_within",
    "temp_directory",
]


def atomic_write(path: PathLike, data: str, *, encoding: str = "utf-8") -> Path:
    """Write ``data`` to ``path`` atomically, creating missing parent directories."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target.parent),
    )
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as file_handle:
            file_handle.write(data)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    return target


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if ``child`` resolves to ``parent`` or a path below it."""

    resolved_parent = Path(parent).resolve()
    resolved_child = Path(child).resolve()
    try:
        resolved_child.relative_to(resolved_parent)
    except ValueError:
        return False
    return True


def force_remove_tree(path: PathLike, *, root: PathLike) -> bool:
    """
    Delete ``path`` recursively, clearing read-only bits on the way.

    Returns ``False`` when nothing existed. Raises ``ValueError`` for paths outside
    ``root`` and ``OSError`` when deletion fails.
    """

    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return False
    if not is_within(target.parent, root) or Path(root).resolve() == target.resolve():
        raise ValueError(f"refusing to delete path outside root: {target!s}")

    if target.is_symlink() or target.is_file():
        target.unlink()
        return True

    shutil.rmtree(target, onexc=_make_writable_and_retry)
    return True


@contextmanager
def temp_directory(prefix: str = "democtl-") -> Iterator[Path]:
    """Yield a temporary directory path and clean it up on exit."""

    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        yield Path(tmp)


def _make_writable_and_retry(
    func: Callable[[str], object],
    path: str,
    _exc: BaseException,
) -> None:
    # Unlinking needs write permission on the containing directory, not the entry.
    for candidate in (os.path.dirname(path), path):
        with contextlib.suppress(OSError):
            os.chmod(candidate, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
    func(path)
