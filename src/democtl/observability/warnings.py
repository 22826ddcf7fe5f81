"""Typed channel for best-effort failures that must not abort the calling operation.

Cleanup steps (``git am --abort``, ``worktree prune``, fetches) are allowed to fail. Each
failure is recorded as a ``NonFatalWarning`` and emitted as a WARNING-level event so it is
visible in logs and assertable in tests, instead of being discarded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True, slots=True)
class NonFatalWarning:
    operation: str
    message: str
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.operation}: {self.message} ({self.detail})"
        return f"{self.operation}: {self.message}"


class WarningCollector:
    """Accumulates non-fatal warnings for one operation and logs each as it arrives."""

    def __init__(self, *, logger: Any | None = None) -> None:
        self._items: list[NonFatalWarning] = []
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def warn(self, operation: str, message: str, *, detail: str = "") -> NonFatalWarning:
        warning = NonFatalWarning(operation=operation, message=message, detail=detail.strip())
        self._items.append(warning)
        self._logger.warning(
            "non_fatal_warning",
            operation=warning.operation,
            reason=warning.message,
            detail=warning.detail,
        )
        return warning

    @property
    def warnings(self) -> tuple[NonFatalWarning, ...]:
        return tuple(self._items)

    def for_operation(self, operation: str) -> tuple[NonFatalWarning, ...]:
        return tuple(item for item in self._items if item.operation == operation)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[NonFatalWarning]:
        return iter(tuple(self._items))


__all__ = ["NonFatalWarning", "WarningCollector"]
