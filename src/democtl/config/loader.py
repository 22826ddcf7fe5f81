"""
democtl — runtime config loader.

File: src/democtl/config/loader.py

Purpose
- Build the effective configuration for one invocation from four layers: built-in
  defaults, ``democtl.toml``, ``DEMOCTL_*`` environment variables, and CLI flags.

Functional requirements
- Later layers win: CLI > env > file > defaults. A CLI value of ``None`` means "flag not
  given" and leaves lower layers alone.
- The file layer is validated on its own before env/CLI are applied, so a typo in the
  file is reported against the file rather than the merged result.
- Every ``<section>.<key>`` has an env name ``DEMOCTL_<SECTION>_<KEY>``; the raw string is
  converted to the type of the built-in default. ``PLAYWRIGHT_HEADED`` is also read, but
  the ``DEMOCTL_`` name wins when both are set.
- ``paths.repo_root`` is resolved relative to the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from democtl.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "democtl.toml"
ENV_PREFIX: Final[str] = "DEMOCTL_"
CONFIG_PATH_ENV: Final[str] = f"{ENV_PREFIX}CONFIG"

# Variables the demo scripts already export, read as if they were DEMOCTL_ names.
ENV_ALIASES: Final[Mapping[str, tuple[str, str]]] = {
    "PLAYWRIGHT_HEADED": ("checks", "playwright_headed"),
}

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be converted."""


@dataclass(frozen=True, slots=True)
class ConfigSource:
    """The file layer: where it lives and whether the caller asked for it by name."""

    path: Path
    explicit: bool

    def read(self) -> dict[str, Any]:
        if not self.path.is_file():
            if self.explicit:
                raise ConfigLoadError(f"config file not found: {self.path}")
            return {}
        try:
            return tomllib.loads(self.path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigLoadError(f"invalid TOML in {self.path}: {exc}") from exc
        except OSError as exc:
            raise ConfigLoadError(f"unable to read config file {self.path}: {exc}") from exc


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    search_dir: Path | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    ``config_path`` (or ``$DEMOCTL_CONFIG``) names the file explicitly and must exist;
    otherwise ``democtl.toml`` is looked up in ``search_dir`` (default: the working
    directory) and silently skipped when absent.
    """

    env = os.environ if environ is None else environ
    source = locate_config_file(config_path, environ=env, search_dir=search_dir)

    config = assert_valid_config(merge_config(default_config(), source.read()))
    config = merge_config(config, env_overrides(env))
    config = merge_config(config, cli_layer(cli_overrides or {}))
    config = assert_valid_config(config)

    for section, key in PATH_FIELDS:
        raw = config[section][key]
        if raw:
            config[section][key] = _resolve_path(raw, source.path.parent)
    return config


def locate_config_file(
    config_path: str | Path | None,
    *,
    environ: Mapping[str, str],
    search_dir: Path | None = None,
) -> ConfigSource:
    if config_path is None:
        named = environ.get(CONFIG_PATH_ENV, "").strip()
        config_path = named or None
    if config_path is not None:
        return ConfigSource(Path(config_path).expanduser().resolve(), explicit=True)
    base = search_dir if search_dir is not None else Path.cwd()
    return ConfigSource((base / DEFAULT_CONFIG_FILE).resolve(), explicit=False)


def env_name(section: str, key: str) -> str:
    return f"{ENV_PREFIX}{section.upper()}_{key.upper()}"


def env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, object]]:
    """Collect env values for every known config field, converted to the default's type."""

    wanted: list[tuple[str, str, str]] = [
        (alias, section, key) for alias, (section, key) in sorted(ENV_ALIASES.items())
    ]
    for section, fields in DEFAULT_CONFIG.items():
        wanted.extend((env_name(section, key), section, key) for key in sorted(fields))

    layer: dict[str, dict[str, object]] = {}
    for name, section, key in wanted:
        raw = environ.get(name)
        if raw is None or (name in ENV_ALIASES and not raw.strip()):
            continue
        default = DEFAULT_CONFIG[section][key]  # type: ignore[literal-required]
        layer.setdefault(section, {})[key] = _convert(raw, default, name, f"{section}.{key}")
    return layer


def cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    """Turn ``{"checks.kube_context": "x"}`` into ``{"checks": {"kube_context": "x"}}``."""

    layer: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        section, _, key = dotted.partition(".")
        if not section or not key or "." in key:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        layer.setdefault(section, {})[key] = value
    return layer


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Canonical JSON of the config with secrets redacted; compact unless ``indent`` is set."""

    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        redact_config(config),
        indent=indent,
        sort_keys=True,
        separators=separators,
        ensure_ascii=False,
    )


def _to_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(text)


_CONVERTERS: Final[dict[type, tuple[Callable[[str], object], str]]] = {
    bool: (_to_bool, "a boolean (true/false/1/0/yes/no/on/off)"),
    int: (int, "an integer"),
    float: (float, "a number"),
    str: (str, "a string"),
}


def _convert(raw: str, default: object, name: str, dotted: str) -> object:
    converter, expected = _CONVERTERS[type(default)]
    try:
        return converter(raw.strip())
    except ValueError as exc:
        raise ConfigLoadError(f"{name} -> {dotted} must be {expected}") from exc


def _resolve_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigLoadError",
    "ConfigSource",
    "DEFAULT_CONFIG_FILE",
    "ENV_ALIASES",
    "ENV_PREFIX",
    "cli_layer",
    "dump_effective_config",
    "env_name",
    "env_overrides",
    "load_config",
    "locate_config_file",
]
