"""Plain-text output for the democtl CLI.

Every command that is not run with ``--json`` prints through ``CLIRenderer``. Status labels
(PASS/FAIL/SKIP, OK) are colored only when writing to a terminal and neither ``NO_COLOR``
nor ``--no-color`` is set; layout never depends on color.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from democtl.checks.base import CheckResult, RunResult

_RESET: Final[str] = "\033[0m"
_LABEL_COLORS: Final[dict[str, str]] = {
    "PASS": "\033[32m",
    "OK": "\033[32m",
    "FAIL": "\033[31m",
    "SKIP": "\033[33m",
}
_DETAIL_INDENT: Final[str] = " " * 8


def _color_allowed(no_color_flag: bool, stream: TextIO | None = None) -> bool:
    if no_color_flag or os.environ.get("NO_COLOR"):
        return False
    target = stream if stream is not None else sys.stdout
    isatty = getattr(target, "isatty", None)
    return bool(isatty is not None and isatty())


class CLIRenderer:
    """Human-readable CLI output; ``verbose`` also shows pass messages and check types."""

    def __init__(
        self, *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
    ) -> None:
        self.verbose = verbose
        self._stream = stream
        self._color = _color_allowed(no_color, stream)

    def text(self, line: str = "") -> None:
        print(line, file=self._stream if self._stream is not None else sys.stdout)

    def kv(self, key: str, value: object) -> None:
        self.text(f"{key}: {value}")

    def ok(self, message: str) -> None:
        self.text(f"  {self._label('OK')}  {message}")

    def fail(self, message: str) -> None:
        self.text(f"  {self._label('FAIL')}  {message}")

    def warning(self, message: str) -> None:
        self.text(f"  Warning: {message}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.text(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Column-aligned table; an empty ``rows`` prints nothing at all."""

        if not rows:
            return
        cells = [[str(value) for value in row] + [""] * (len(headers) - len(row)) for row in rows]
        widths = [
            max(len(header), *(len(row[index]) for row in cells))
            for index, header in enumerate(headers)
        ]

        if title:
            self.text()
            self.text(title)
        for row in (list(headers), ["-" * width for width in widths], *cells):
            padded = "  ".join(cell.ljust(width) for cell, width in zip(row, widths))
            self.text(f"  {padded.rstrip()}")

    def check_result(self, result: CheckResult) -> None:
        label = str(result.status).upper()
        self.text(f"  {self._label(label)}  {result.description or result.type}")
        if result.message and (label != "PASS" or self.verbose):
            for line in result.message.splitlines():
                self.text(f"{_DETAIL_INDENT}{line}")
        if self.verbose and result.description:
            self.text(f"{_DETAIL_INDENT}type: {result.type}")

    def run_summary(self, run: RunResult) -> None:
        self.text(f"{run.check_type} checks for {run.scenario_id} (stage {run.stage})")
        for result in run.results:
            self.check_result(result)
        self.text()
        self.text(f"{run.passed} passed, {run.failed} failed, {run.skipped} skipped")

    def _label(self, text: str) -> str:
        color = _LABEL_COLORS.get(text)
        if not self._color or color is None:
            return text
        return f"{color}{text}{_RESET}"


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
