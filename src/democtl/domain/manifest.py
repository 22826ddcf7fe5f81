"""
democtl — scenario manifest model.

File: src/democtl/domain/manifest.py

Purpose
- Typed, immutable representation of a ``scenario.json`` document: identity, stage-keyed
  check lists, and the git patch configuration used by worktree-backed scenarios.

Functional requirements
- ``Check`` is a closed set of variants selected by the ``type`` discriminator. Variant
  fields are type-checked at load time; required fields are enforced when a check runs.
- Unrecognized discriminators load as ``UnknownCheck`` and are skipped by the runner.
- Structural problems (wrong JSON types, unreadable files) raise ``ManifestError``.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, NoReturn, TypeAlias

from democtl.constants import (
    DEFAULT_BROKEN_PATCHES_DIR,
    DEFAULT_SOLVED_PATCHES_DIR,
    NAMESPACE_PREFIX,
    STAGE_BROKEN,
    STAGE_SOLVED,
)


class ManifestError(ValueError):
    """Raised when a scenario manifest cannot be read or is structurally invalid."""


class CheckKind(StrEnum):
    """Which list of a stage a run draws from, and therefore its failure semantics."""

    VERIFY = "verify"
    HEALTH = "health"


@dataclass(frozen=True, slots=True)
class ResourceRef:
    kind: str
    name: str


@dataclass(frozen=True, slots=True)
class HttpGetCheck:
    type: str
    description: str = ""
    url: str = ""
    expect_status: tuple[int, ...] = ()
    expect_status_not: tuple[int, ...] = ()
    timeout_seconds: int | None = None
    retry_interval: int | None = None


@dataclass(frozen=True, slots=True)
class K8sJqEqualsCheck:
    type: str
    description: str = ""
    resource: ResourceRef | None = None
    jq: str = ""
    equals: str = ""


@dataclass(frozen=True, slots=True)
class K8sPodsContainLogCheck:
    type: str
    description: str = ""
    selector: str = ""
    contains: str = ""
    since_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class K8sPodTerminationReasonCheck:
    type: str
    description: str = ""
    selector: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class K8sPodRestartCountCheck:
    type: str
    description: str = ""
    selector: str = ""
    min_restarts: int | None = None


@dataclass(frozen=True, slots=True)
class K8sDeploymentAvailableCheck:
    type: str
    description: str = ""
    name: str = ""
    wait_seconds: int | None = None
    timeout_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class K8sResourceExistsCheck:
    type: str
    description: str = ""
    resource: ResourceRef | None = None


@dataclass(frozen=True, slots=True)
class K8sServiceMissingPortCheck:
    type: str
    description: str = ""
    name: str = ""
    port_name: str = ""


@dataclass(frozen=True, slots=True)
class PlaywrightCheck:
    type: str
    description: str = ""
    suite: str = ""
    headed: bool = False


@dataclass(frozen=True, slots=True)
class UnknownCheck:
    """Check whose discriminator no executor understands; always reported as skipped."""

    type: str
    description: str = ""


Check: TypeAlias = (
    HttpGetCheck
    | K8sJqEqualsCheck
    | K8sPodsContainLogCheck
    | K8sPodTerminationReasonCheck
    | K8sPodRestartCountCheck
    | K8sDeploymentAvailableCheck
    | K8sResourceExistsCheck
    | K8sServiceMissingPortCheck
    | PlaywrightCheck
    | UnknownCheck
)


@dataclass(frozen=True, slots=True)
class Stage:
    verify: tuple[Check, ...] = ()
    health: tuple[Check, ...] = ()

    def checks_for(self, kind: CheckKind) -> tuple[Check, ...]:
        if kind is CheckKind.VERIFY:
            return self.verify
        return self.health


@dataclass(frozen=True, slots=True)
class Checks:
    version: int = 0
    default_stage: str | None = None
    stages: Mapping[str, Stage] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GitConfig:
    base_ref: str = ""
    work_branch: str = ""
    broken_patches_dir: str = DEFAULT_BROKEN_PATCHES_DIR
    solved_patches_dir: str = DEFAULT_SOLVED_PATCHES_DIR

    def patches_dir_for(self, stage: str) -> str:
        """Return the scenario-relative patch directory for ``broken`` or ``solved``."""

        if stage == STAGE_BROKEN:
            return self.broken_patches_dir
        if stage == STAGE_SOLVED:
            return self.solved_patches_dir
        raise ManifestError(f"unknown patch stage {stage!r}; expected broken or solved")


@dataclass(frozen=True, slots=True)
class Manifest:
    track: str
    slug: str
    checks: Checks
    title: str = ""
    scenario_type: str = ""
    url_host: str = ""
    seed: bool = False
    reset_strategy: str = ""
    description: str = ""
    symptoms: tuple[str, ...] = ()
    fix_hints: tuple[str, ...] = ()
    git: GitConfig | None = None

    @property
    def identifier(self) -> str:
        return f"{self.track}/{self.slug}"

    @property
    def namespace(self) -> str:
        return f"{NAMESPACE_PREFIX}{self.slug}"


def load_manifest(path: Path | str) -> Manifest:
    """Read and parse one ``scenario.json`` file."""

    manifest_path = Path(path)
    try:
        raw_text = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"failed to read manifest {manifest_path}: {exc}") from exc

    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"failed to parse manifest {manifest_path}: {exc}") from exc

    return parse_manifest(payload)


def parse_manifest(payload: object) -> Manifest:
    """Build a ``Manifest`` from decoded JSON."""

    root = _as_object(payload, "<root>")
    git_raw = root.get("git")
    return Manifest(
        track=_opt_str(root, "track", ""),
        slug=_opt_str(root, "slug", ""),
        title=_opt_str(root, "title", ""),
        scenario_type=_opt_str(root, "type", ""),
        url_host=_opt_str(root, "url_host", ""),
        seed=_opt_bool(root, "seed", ""),
        reset_strategy=_opt_str(root, "reset_strategy", ""),
        description=_opt_str(root, "description", ""),
        symptoms=_opt_str_list(root, "symptoms", ""),
        fix_hints=_opt_str_list(root, "fix_hints", ""),
        git=None if git_raw is None else _parse_git(git_raw, "git"),
        checks=_parse_checks(root.get("checks", {}), "checks"),
    )


def parse_check(payload: object, path: str = "check") -> Check:
    """Dispatch one check object to its variant parser by ``type``."""

    obj = _as_object(payload, path)
    check_type = _opt_str(obj, "type", path)
    description = _opt_str(obj, "description", path)
    parser = _CHECK_PARSERS.get(check_type)
    if parser is None:
        return UnknownCheck(type=check_type, description=description)
    return parser(obj, path, check_type, description)


def _parse_checks(payload: object, path: str) -> Checks:
    obj = _as_object(payload, path)
    stages_raw = obj.get("stages")
    stages: dict[str, Stage] = {}
    if stages_raw is not None:
        stages_obj = _as_object(stages_raw, _join(path, "stages"))
        for name in sorted(stages_obj):
            stages[name] = _parse_stage(stages_obj[name], _join(path, f"stages.{name}"))

    default_stage = _opt_str(obj, "default_stage", path) or None
    return Checks(
        version=_opt_int(obj, "version", path) or 0,
        default_stage=default_stage,
        stages=stages,
    )


def _parse_stage(payload: object, path: str) -> Stage:
    obj = _as_object(payload, path)
    return Stage(
        verify=_parse_check_list(obj.get("verify"), _join(path, "verify")),
        health=_parse_check_list(obj.get("health"), _join(path, "health")),
    )


def _parse_check_list(payload: object, path: str) -> tuple[Check, ...]:
    if payload is None:
        return ()
    if not isinstance(payload, list):
        _fail(path, f"expected array, got {type(payload).__name__}")
    return tuple(parse_check(item, f"{path}[{index}]") for index, item in enumerate(payload))


def _parse_git(payload: object, path: str) -> GitConfig:
    obj = _as_object(payload, path)
    return GitConfig(
        base_ref=_opt_str(obj, "base_ref", path),
        work_branch=_opt_str(obj, "work_branch", path),
        broken_patches_dir=_opt_str(obj, "broken_patches_dir", path) or DEFAULT_BROKEN_PATCHES_DIR,
        solved_patches_dir=_opt_str(obj, "solved_patches_dir", path) or DEFAULT_SOLVED_PATCHES_DIR,
    )


def _parse_resource(obj: Mapping[str, Any], path: str) -> ResourceRef | None:
    raw = obj.get("resource")
    if raw is None:
        return None
    resource_path = _join(path, "resource")
    resource = _as_object(raw, resource_path)
    return ResourceRef(
        kind=_opt_str(resource, "kind", resource_path),
        name=_opt_str(resource, "name", resource_path),
    )


def _parse_http_get(obj: Mapping[str, Any], path: str, check_type: str, description: str) -> Check:
    expect_raw = obj.get("expect")
    status: tuple[int, ...] = ()
    status_not: tuple[int, ...] = ()
    if expect_raw is not None:
        expect_path = _join(path, "expect")
        expect = _as_object(expect_raw, expect_path)
        status = _opt_int_list(expect, "status", expect_path)
        status_not = _opt_int_list(expect, "status_not", expect_path)
    return HttpGetCheck(
        type=check_type,
        description=description,
        url=_opt_str(obj, "url", path),
        expect_status=status,
        expect_status_not=status_not,
        timeout_seconds=_opt_int(obj, "timeout_seconds", path),
        retry_interval=_opt_int(obj, "retry_interval", path),
    )


def _parse_jq_equals(obj: Mapping[str, Any], path: str, check_type: str, description: str) -> Check:
    return K8sJqEqualsCheck(
        type=check_type,
        description=description,
        resource=_parse_resource(obj, path),
        jq=_opt_str(obj, "jq", path),
        equals=_opt_str(obj, "equals", path),
    )


def _parse_pods_contain_log(
    obj: Mapping[str, Any], path: str, check_type: str, description: str
) -> Check:
    return K8sPodsContainLogCheck(
        type=check_type,
        description=description,
        selector=_opt_str(obj, "selector", path),
        contains=_opt_str(obj, "contains", path),
        since_seconds=_opt_int(obj, "since_seconds", path),
    )


def _parse_termination_reason(
    obj: Mapping[str, Any], path: str, check_type: str, description: str
) -> Check:
    return K8sPodTerminationReasonCheck(
        type=check_type,
        description=description,
        selector=_opt_str(obj, "selector", path),
        reason=_opt_str(obj, "reason", path),
    )


def _parse_restart_count(
    obj: Mapping[str, Any], path: str, check_type: str, description: str
) -> Check:
    return K8sPodRestartCountCheck(
        type=check_type,
        description=description,
        selector=_opt_str(obj, "selector", path),
        min_restarts=_opt_int(obj, "min_restarts", path),
    )


def _parse_deployment_available(
    obj: Mapping[str, Any], path: str, check_type: str, description: str
) -> Check:
    return K8sDeploymentAvailableCheck(
        type=check_type,
        description=description,
        name=_opt_str(obj, "name", path),
        wait_seconds=_opt_int(obj, "wait_seconds", path),
        timeout_seconds=_opt_int(obj, "timeout_seconds", path),
    )


def _parse_resource_exists(
    obj: Mapping[str, Any], path: str, check_type: str, description: str
) -> Check:
    return K8sResourceExistsCheck(
        type=check_type,
        description=description,
        resource=_parse_resource(obj, path),
    )


def _parse_service_missing_port(
    obj: Mapping[str, Any], path: str, check_type: str, description: str
) -> Check:
    return K8sServiceMissingPortCheck(
        type=check_type,
        description=description,
        name=_opt_str(obj, "name", path),
        port_name=_opt_str(obj, "port_name", path),
    )


def _parse_playwright(obj: Mapping[str, Any], path: str, check_type: str, description: str) -> Check:
    return PlaywrightCheck(
        type=check_type,
        description=description,
        suite=_opt_str(obj, "suite", path),
        headed=_opt_bool(obj, "headed", path),
    )


_CheckParser = Callable[[Mapping[str, Any], str, str, str], Check]

_CHECK_PARSERS: dict[str, _CheckParser] = {
    "http.get": _parse_http_get,
    "k8s.jqEquals": _parse_jq_equals,
    "k8s.podsContainLog": _parse_pods_contain_log,
    "k8s.podTerminationReason": _parse_termination_reason,
    "k8s.podRestartCount": _parse_restart_count,
    "k8s.deploymentAvailable": _parse_deployment_available,
    "k8s.resourceExists": _parse_resource_exists,
    "k8s.serviceMissingPort": _parse_service_missing_port,
    "playwright.run": _parse_playwright,
}

KNOWN_CHECK_TYPES: tuple[str, ...] = tuple(sorted(_CHECK_PARSERS))


def _as_object(value: object, path: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    out: dict[str, Any] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object key must be string, got {type(key).__name__}")
        out[key] = item
    return out


def _opt_str(obj: Mapping[str, Any], key: str, path: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        _fail(_join(path, key), f"expected string, got {type(value).__name__}")
    return value


def _opt_bool(obj: Mapping[str, Any], key: str, path: str) -> bool:
    value = obj.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        _fail(_join(path, key), f"expected boolean, got {type(value).__name__}")
    return value


def _opt_int(obj: Mapping[str, Any], key: str, path: str) -> int | None:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(_join(path, key), f"expected integer, got {type(value).__name__}")
    return value


def _opt_int_list(obj: Mapping[str, Any], key: str, path: str) -> tuple[int, ...]:
    value = obj.get(key)
    if value is None:
        return ()
    item_path = _join(path, key)
    if not isinstance(value, list):
        _fail(item_path, f"expected array, got {type(value).__name__}")
    out: list[int] = []
    for index, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, int):
            _fail(f"{item_path}[{index}]", f"expected integer, got {type(item).__name__}")
        out.append(item)
    return tuple(out)


def _opt_str_list(obj: Mapping[str, Any], key: str, path: str) -> tuple[str, ...]:
    value = obj.get(key)
    if value is None:
        return ()
    item_path = _join(path, key)
    if not isinstance(value, list):
        _fail(item_path, f"expected array, got {type(value).__name__}")
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            _fail(f"{item_path}[{index}]", f"expected string, got {type(item).__name__}")
        out.append(item)
    return tuple(out)


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _fail(path: str, message: str) -> NoReturn:
    raise ManifestError(f"{path}: {message}")


__all__ = [
    "Check",
    "CheckKind",
    "Checks",
    "GitConfig",
    "HttpGetCheck",
    "K8sDeploymentAvailableCheck",
    "K8sJqEqualsCheck",
    "K8sPodRestartCountCheck",
    "K8sPodTerminationReasonCheck",
    "K8sPodsContainLogCheck",
    "K8sResourceExistsCheck",
    "K8sServiceMissingPortCheck",
    "KNOWN_CHECK_TYPES",
    "Manifest",
    "ManifestError",
    "PlaywrightCheck",
    "ResourceRef",
    "Stage",
    "UnknownCheck",
    "load_manifest",
    "parse_check",
    "parse_manifest",
]
