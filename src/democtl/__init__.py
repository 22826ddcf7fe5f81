"""
democtl — scenario verification and worktree management

File: src/democtl/__init__.py

Purpose
- Package root. Runs declarative checks against a deployed demo scenario and manages
  a per-scenario git worktree built from a pinned base revision plus patch series.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
