"""Runtime configuration: ``democtl.toml`` schema, defaults, and layered loading."""

from democtl.config.loader import (
    CONFIG_PATH_ENV,
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    ConfigSource,
    dump_effective_config,
    env_overrides,
    load_config,
    locate_config_file,
)
from democtl.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    DemoctlConfig,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
    validate_config,
)

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigLoadError",
    "ConfigSource",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "DemoctlConfig",
    "ENV_PREFIX",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_overrides",
    "load_config",
    "locate_config_file",
    "merge_config",
    "redact_config",
    "validate_config",
]
