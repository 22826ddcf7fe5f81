"""Module entrypoint for ``python -m democtl``."""

from __future__ import annotations

from democtl.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
