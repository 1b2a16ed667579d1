"""
branch-topology config package public API.

File: src/branch_topology/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``branch-topology.toml`` + ``BRANCH_TOPOLOGY_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from branch_topology.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_cached_reviews,
    load_config,
    load_designed_tree,
    load_document,
    load_planning_sessions,
)
from branch_topology.config.schema import (
    DEFAULT_CONFIG,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    TopologyConfig,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "TopologyConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_cached_reviews",
    "load_config",
    "load_designed_tree",
    "load_document",
    "load_planning_sessions",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
