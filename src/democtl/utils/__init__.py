"""Shared helpers: filesystem operations and the subprocess seam."""

from democtl.utils.fs import atomic_write, force_remove_tree, is_within, temp_directory
from democtl.utils.process import (
    MISSING_EXECUTABLE_RETURNCODE,
    CommandResult,
    CommandRunner,
    SubprocessRunner,
)

__all__ = [
    "CommandResult",
    "CommandRunner",
    "MISSING_EXECUTABLE_RETURNCODE",
    "SubprocessRunner",
    "atomic_write",
    "force_remove_tree",
    "is_within",
    "temp_directory",
]
