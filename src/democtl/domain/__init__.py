"""Scenario domain types: manifests, discovery, and structural validation."""

from democtl.domain.catalog import (
    Scenario,
    detect_collisions,
    discover,
    find_repo_root,
    parse_identifier,
    resolve,
)
from democtl.domain.manifest import (
    KNOWN_CHECK_TYPES,
    Check,
    CheckKind,
    Checks,
    GitConfig,
    HttpGetCheck,
    K8sDeploymentAvailableCheck,
    K8sJqEqualsCheck,
    K8sPodRestartCountCheck,
    K8sPodsContainLogCheck,
    K8sPodTerminationReasonCheck,
    K8sResourceExistsCheck,
    K8sServiceMissingPortCheck,
    Manifest,
    ManifestError,
    PlaywrightCheck,
    ResourceRef,
    Stage,
    UnknownCheck,
    load_manifest,
    parse_check,
    parse_manifest,
)
from democtl.domain.validation import (
    ValidationIssue,
    ValidationReport,
    validate_all,
    validate_patch_dir,
    validate_scenario,
)

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
    "Scenario",
    "Stage",
    "UnknownCheck",
    "ValidationIssue",
    "ValidationReport",
    "detect_collisions",
    "discover",
    "find_repo_root",
    "load_manifest",
    "parse_check",
    "parse_identifier",
    "parse_manifest",
    "resolve",
    "validate_all",
    "validate_patch_dir",
    "validate_scenario",
]
