"""
democtl — configuration schema and validation.

File: src/democtl/config/schema.py

Purpose
- Built-in defaults for ``democtl.toml`` and the rules every effective config must pass.

Functional requirements
- Each field is described once in ``_FIELDS``; validation walks that table so sections,
  defaults and rules cannot drift apart.
- Problems come back as ``ConfigValidationIssue(path, message)`` in table order; nothing
  short-circuits, so one run reports every mistake.
- Unknown keys are rejected. Unknown keys that look like secrets get a pointer to
  ``demo/.state`` because credentials do not belong in the config file.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from democtl.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_KUBE_CONTEXT,
    DEFAULT_LOGIN_KEY,
    DEFAULT_SCOPE_PREFIX,
    DEFAULT_TRACK_PORTS,
    TRACK_ENGINEERING,
    TRACK_SRE,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
REDACTED: Final[str] = "<redacted>"

# Resolved against the config file's directory by the loader. ``paths.log_dir`` is
# resolved against the repository root instead.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (("paths", "repo_root"),)

_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "key", "apikey", "credential", "credentials", "auth"}
)
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])|[^A-Za-z0-9]+")


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    repo_root: str
    log_dir: str


class ChecksConfig(TypedDict):
    kube_context: str
    http_request_timeout_seconds: float
    playwright_headed: bool
    default_login_key: str


class PortsConfig(TypedDict):
    sre: int
    engineering: int


class GitConfig(TypedDict):
    scope_prefix: str
    fetch_remote: str
    three_way: bool


class LoggingSection(TypedDict):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    to_file: bool
    redact_secrets: bool


class DemoctlConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    checks: ChecksConfig
    ports: PortsConfig
    git: GitConfig
    logging: LoggingSection


DEFAULT_CONFIG: Final[DemoctlConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "paths": {
        # Empty repo_root: walk upward from the working directory looking for demo/.
        "repo_root": "",
        "log_dir": "demo/.state/logs",
    },
    "checks": {
        "kube_context": DEFAULT_KUBE_CONTEXT,
        "http_request_timeout_seconds": 10.0,
        "playwright_headed": False,
        "default_login_key": DEFAULT_LOGIN_KEY,
    },
    "ports": {
        "sre": DEFAULT_TRACK_PORTS[TRACK_SRE],
        "engineering": DEFAULT_TRACK_PORTS[TRACK_ENGINEERING],
    },
    "git": {
        "scope_prefix": DEFAULT_SCOPE_PREFIX,
        # Empty disables the best-effort fetch during worktree init.
        "fetch_remote": "origin",
        "three_way": False,
    },
    "logging": {
        "level": "WARNING",
        "to_file": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config``; the message lists every issue on its own line."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("\n".join(["invalid config:", *(lines or ["- unknown validation failure"])]))


class _Invalid(Exception):
    """Internal signal carrying the message for one field."""


# Each check returns the normalized value or raises _Invalid.
_Check = Callable[[object], object]


def _type_name(value: object) -> str:
    return type(value).__name__


def _text(*, allow_empty: bool = False, suffix: str | None = None) -> _Check:
    def check(value: object) -> object:
        if not isinstance(value, str):
            raise _Invalid(f"expected string, got {_type_name(value)}")
        text = value.strip()
        if not text and not allow_empty:
            raise _Invalid("must not be empty")
        if "\x00" in text:
            raise _Invalid("must not contain NUL bytes")
        if text and suffix is not None and not text.endswith(suffix):
            raise _Invalid(f"must end with {suffix!r}")
        return text

    return check


def _integer(*, minimum: int, maximum: int | None = None) -> _Check:
    def check(value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _Invalid(f"expected integer, got {_type_name(value)}")
        if value < minimum:
            raise _Invalid(f"must be >= {minimum}")
        if maximum is not None and value > maximum:
            raise _Invalid(f"must be <= {maximum}")
        return value

    return check


def _number(*, minimum: float) -> _Check:
    def check(value: object) -> object:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _Invalid(f"expected number, got {_type_name(value)}")
        number = float(value)
        if not math.isfinite(number):
            raise _Invalid("must be finite")
        if number < minimum:
            raise _Invalid(f"must be >= {minimum}")
        return number

    return check


def _flag(value: object) -> object:
    if not isinstance(value, bool):
        raise _Invalid(f"expected boolean, got {_type_name(value)}")
    return value


def _level(value: object) -> object:
    level = _text()(value.upper() if isinstance(value, str) else value)
    if level not in LOG_LEVELS:
        raise _Invalid(f"invalid value {level!r}; expected one of: {', '.join(sorted(LOG_LEVELS))}")
    return level


def _schema_version(value: object) -> object:
    _integer(minimum=1)(value)
    if isinstance(value, int) and value != ConfigSchemaVersion:
        raise _Invalid(migration_guidance(value))
    return value


_PORT = _integer(minimum=1, maximum=65535)

_FIELDS: Final[dict[str, dict[str, _Check]]] = {
    "meta": {"schema_version": _schema_version},
    "paths": {"repo_root": _text(allow_empty=True), "log_dir": _text()},
    "checks": {
        "kube_context": _text(),
        "http_request_timeout_seconds": _number(minimum=0.1),
        "playwright_headed": _flag,
        "default_login_key": _text(),
    },
    "ports": {TRACK_SRE: _PORT, TRACK_ENGINEERING: _PORT},
    "git": {
        "scope_prefix": _text(suffix="/"),
        "fetch_remote": _text(allow_empty=True),
        "three_way": _flag,
    },
    "logging": {"level": _level, "to_file": _flag, "redact_secrets": _flag},
}


def default_config() -> DemoctlConfig:
    """Fresh deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade democtl.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade democtl"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base`` without mutating either."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the field table and normalize it (e.g. upper-case level)."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(ConfigValidationIssue("<root>", f"expected object, got {_type_name(config)}"))
        return ConfigValidationResult(config=None, issues=tuple(issues))

    issues.extend(_unknown_keys(config, _FIELDS, prefix=""))
    normalized: dict[str, Any] = {}
    for section, fields in _FIELDS.items():
        payload = config.get(section)
        if payload is None:
            issues.append(ConfigValidationIssue(section, "missing required section"))
            continue
        if not isinstance(payload, Mapping):
            issues.append(ConfigValidationIssue(section, f"expected object, got {_type_name(payload)}"))
            continue
        issues.extend(_unknown_keys(payload, fields, prefix=f"{section}."))
        values: dict[str, object] = {}
        for key, check in fields.items():
            path = f"{section}.{key}"
            if key not in payload:
                issues.append(ConfigValidationIssue(path, "missing required field"))
                continue
            try:
                values[key] = check(payload[key])
            except _Invalid as exc:
                issues.append(ConfigValidationIssue(path, str(exc)))
        normalized[section] = values

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with string values under secret-looking keys replaced."""

    if not isinstance(config, Mapping):
        return {}
    return {str(key): _redact(str(key), value) for key, value in config.items()}


def looks_secret(key: str) -> bool:
    """``defaultLoginKey``, ``api-token`` and ``db_password`` all count as secret keys."""

    words = _WORD_BOUNDARY.sub(lambda m: f"{m.group(1)}_{m.group(2)}" if m.group(1) else "_", key)
    return any(word in _SECRET_WORDS for word in words.lower().split("_"))


def _redact(key: str, value: object) -> object:
    if isinstance(value, str) and looks_secret(key):
        return REDACTED
    if isinstance(value, Mapping):
        return redact_config(value)
    if isinstance(value, (list, tuple)):
        return [_redact("", item) for item in value]
    return value


def _unknown_keys(
    payload: Mapping[Any, object], known: Mapping[str, object], *, prefix: str
) -> list[ConfigValidationIssue]:
    found: list[ConfigValidationIssue] = []
    for key in sorted(payload, key=str):
        if key in known:
            continue
        message = "unknown field"
        if looks_secret(str(key)):
            message += "; secrets belong in demo/.state, not democtl.toml"
        found.append(ConfigValidationIssue(f"{prefix}{key}", message))
    return found


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DemoctlConfig",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "REDACTED",
    "assert_valid_config",
    "default_config",
    "looks_secret",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
