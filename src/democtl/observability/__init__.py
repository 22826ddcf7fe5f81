"""Public observability primitives: run logging and the non-fatal warning channel."""

from democtl.observability.logging import (
    LoggingOptions,
    LogSession,
    SecretRedactor,
    active_session,
    correlation_scope,
    current_scope,
    setup_logging,
    shutdown_logging,
    start_logging,
)
from democtl.observability.warnings import NonFatalWarning, WarningCollector

__all__ = [
    "LogSession",
    "LoggingOptions",
    "NonFatalWarning",
    "SecretRedactor",
    "WarningCollector",
    "active_session",
    "correlation_scope",
    "current_scope",
    "setup_logging",
    "shutdown_logging",
    "start_logging",
]
