"""
democtl — unit tests for scenario manifest parsing

File: tests/unit/domain/test_manifest.py

Purpose
- Validate that ``scenario.json`` documents decode into typed check variants, stage maps
  and git patch configuration, and that structural errors name the offending field.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import pytest

from democtl.domain.manifest import (
    KNOWN_CHECK_TYPES,
    CheckKind,
    GitConfig,
    HttpGetCheck,
    K8sDeploymentAvailableCheck,
    K8sJqEqualsCheck,
    ManifestError,
    PlaywrightCheck,
    ResourceRef,
    UnknownCheck,
    load_manifest,
    parse_check,
    parse_manifest,
)

if TYPE_CHECKING:
    from pathlib import Path


def _manifest_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "track": "sre",
        "slug": "cpu-spike",
        "title": "CPU spike",
        "type": "sre",
        "url_host": "fider.local",
        "reset_strategy": "namespace-delete",
        "checks": {
            "version": 1,
            "default_stage": "broken",
            "stages": {
                "broken": {
                    "verify": [
                        {
                            "type": "http.get",
                            "description": "site is down",
                            "url": "http://fider.local:8080/",
                            "expect": {"status_not": [200]},
                            "timeout_seconds": 5,
                        }
                    ],
                    "health": [{"type": "k8s.resourceExists", "resource": {"kind": "pod", "name": "db"}}],
                },
                "solved": {"verify": [{"type": "playwright.run", "suite": "login", "headed": True}]},
            },
        },
    }
    payload.update(overrides)
    return payload


def test_parse_manifest_builds_identity_and_stages() -> None:
    manifest = parse_manifest(_manifest_payload())

    assert manifest.identifier == "sre/cpu-spike"
    assert manifest.namespace == "demo-cpu-spike"
    assert manifest.checks.version == 1
    assert manifest.checks.default_stage == "broken"
    assert sorted(manifest.checks.stages) == ["broken", "solved"]

    broken = manifest.checks.stages["broken"]
    (probe,) = broken.checks_for(CheckKind.VERIFY)
    assert probe == HttpGetCheck(
        type="http.get",
        description="site is down",
        url="http://fider.local:8080/",
        expect_status_not=(200,),
        timeout_seconds=5,
    )
    (exists,) = broken.checks_for(CheckKind.HEALTH)
    assert exists.resource == ResourceRef(kind="pod", name="db")

    (suite,) = manifest.checks.stages["solved"].verify
    assert suite == PlaywrightCheck(type="playwright.run", suite="login", headed=True)
    assert manifest.checks.stages["solved"].health == ()


def test_unrecognized_check_type_loads_as_unknown() -> None:
    check = parse_check({"type": "dns.resolve", "description": "resolves", "host": "x"})

    assert check == UnknownCheck(type="dns.resolve", description="resolves")


def test_known_check_types_cover_every_executor_discriminator() -> None:
    assert KNOWN_CHECK_TYPES == (
        "http.get",
        "k8s.deploymentAvailable",
        "k8s.jqEquals",
        "k8s.podRestartCount",
        "k8s.podTerminationReason",
        "k8s.podsContainLog",
        "k8s.resourceExists",
        "k8s.serviceMissingPort",
        "playwright.run",
    )


def test_optional_numeric_fields_default_to_none() -> None:
    check = parse_check({"type": "k8s.deploymentAvailable", "name": "fider"})

    assert check == K8sDeploymentAvailableCheck(type="k8s.deploymentAvailable", name="fider")
    assert check.timeout_seconds is None


def test_jq_equals_without_resource_parses_with_none() -> None:
    check = parse_check({"type": "k8s.jqEquals", "jq": ".spec.replicas", "equals": "1"})

    assert isinstance(check, K8sJqEqualsCheck)
    assert check.resource is None


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ([], "<root>: expected object, got list"),
        ({"track": 3}, "track: expected string, got int"),
        ({"checks": {"stages": []}}, "checks.stages: expected object, got list"),
        (
            {"checks": {"stages": {"broken": {"verify": {}}}}},
            "checks.stages.broken.verify: expected array, got dict",
        ),
        (
            {"checks": {"stages": {"broken": {"verify": [{"type": "http.get", "timeout_seconds": "5"}]}}}},
            "checks.stages.broken.verify[0].timeout_seconds: expected integer, got str",
        ),
        (
            {"checks": {"stages": {"broken": {"verify": [{"type": "http.get", "expect": {"status": [True]}}]}}}},
            "checks.stages.broken.verify[0].expect.status[0]: expected integer, got bool",
        ),
    ],
)
def test_structural_errors_name_the_field(payload: object, message: str) -> None:
    with pytest.raises(ManifestError) as excinfo:
        parse_manifest(payload)

    assert str(excinfo.value) == message


def test_git_config_defaults_patch_directories() -> None:
    manifest = parse_manifest(
        _manifest_payload(git={"base_ref": "a" * 40, "work_branch": "demo/search-bug"})
    )

    assert manifest.git == GitConfig(base_ref="a" * 40, work_branch="demo/search-bug")
    assert manifest.git.patches_dir_for("broken") == "patches/broken"
    assert manifest.git.patches_dir_for("solved") == "patches/solved"
    with pytest.raises(ManifestError, match="unknown patch stage"):
        manifest.git.patches_dir_for("healthy")


def test_load_manifest_reports_unreadable_and_malformed_files(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="failed to read manifest"):
        load_manifest(tmp_path / "missing.json")

    broken = tmp_path / "scenario.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ManifestError, match="failed to parse manifest"):
        load_manifest(broken)

    broken.write_text(json.dumps(_manifest_payload()), encoding="utf-8")
    assert load_manifest(broken).slug == "cpu-spike"
