"""Public observability primitives: structlog setup and scan correlation scopes."""

from branch_topology.observability.logging import (
    LOG_FORMATS,
    configure_logging,
    get_correlation_context,
    redact_event,
    reset_logging,
    scan_scope,
)

__all__ = [
    "LOG_FORMATS",
    "configure_logging",
    "get_correlation_context",
    "redact_event",
    "reset_logging",
    "scan_scope",
]
