"""Unit tests for the non-fatal warning channel."""

from __future__ import annotations

from typing import Any

from democtl.observability.warnings import NonFatalWarning, WarningCollector


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def warning(self, event: str, **fields: Any) -> None:
        self.events.append(("warning", event, fields))


def test_warn_records_and_logs_each_warning() -> None:
    logger = _RecordingLogger()
    collector = WarningCollector(logger=logger)

    first = collector.warn("git am --abort", "abort failed", detail="  no am session \n")
    collector.warn("git worktree prune", "prune failed")

    assert first == NonFatalWarning("git am --abort", "abort failed", "no am session")
    assert len(collector) == 2
    assert [item.operation for item in collector.warnings] == [
        "git am --abort",
        "git worktree prune",
    ]
    assert logger.events[0] == (
        "warning",
        "non_fatal_warning",
        {"operation": "git am --abort", "reason": "abort failed", "detail": "no am session"},
    )


def test_for_operation_filters_and_clear_resets() -> None:
    collector = WarningCollector(logger=_RecordingLogger())
    collector.warn("git fetch", "fetch failed")
    collector.warn("delete worktree", "failed to remove /tmp/x")

    assert collector.for_operation("git fetch") == (NonFatalWarning("git fetch", "fetch failed"),)
    assert collector.for_operation("missing") == ()

    collector.clear()
    assert collector.warnings == ()


def test_warning_string_includes_detail_only_when_present() -> None:
    assert str(NonFatalWarning("git fetch", "fetch failed")) == "git fetch: fetch failed"
    assert (
        str(NonFatalWarning("git fetch", "fetch failed", "no remote"))
        == "git fetch: fetch failed (no remote)"
    )
