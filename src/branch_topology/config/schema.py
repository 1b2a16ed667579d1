"""
branch-topology — configuration schema and validation.

File: src/branch_topology/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from branch_topology.constants import (
    BEHIND_ERROR_THRESHOLD,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_REMOTE,
    DEFAULT_REVIEW_LIMIT,
    HEARTBEAT_RELATIVE_PATH,
    HEARTBEAT_WINDOW_SECONDS,
    REFRESH_CI_PENDING_WEIGHT,
    REFRESH_JITTER_MAX,
    REFRESH_LOCAL_BRANCH_WEIGHT,
    REFRESH_MAX_TOTAL,
    REFRESH_OTHER_MAX,
    REFRESH_STALENESS_MAX,
    REFRESH_STALENESS_PER_MINUTE,
    REFRESH_WORKING_COPY_WEIGHT,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("console", "json")

_REMOTE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
_NON_NEGATIVE_WEIGHTS: Final[frozenset[str]] = frozenset(
    {"staleness_per_minute", "staleness_max", "jitter_max"}
)


class MetaConfig(TypedDict):
    schema_version: int


class ScanConfig(TypedDict):
    remote: str
    max_concurrency: int
    heartbeat_path: str
    heartbeat_window_seconds: float
    review_limit: int


class WarningsConfig(TypedDict):
    naming_patterns: list[str]
    behind_error_threshold: int


class RefreshWeightsConfig(TypedDict):
    local_branch: float
    working_copy: float
    ci_pending: float
    staleness_per_minute: float
    staleness_max: float
    jitter_max: float


class RefreshConfig(TypedDict):
    max_total: int
    other_max: int
    weights: RefreshWeightsConfig


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str


class TopologyConfig(TypedDict):
    meta: MetaConfig
    scan: ScanConfig
    warnings: WarningsConfig
    refresh: RefreshConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[TopologyConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "scan": {
        "remote": DEFAULT_REMOTE,
        "max_concurrency": DEFAULT_MAX_CONCURRENCY,
        "heartbeat_path": HEARTBEAT_RELATIVE_PATH.as_posix(),
        "heartbeat_window_seconds": HEARTBEAT_WINDOW_SECONDS,
        "review_limit": DEFAULT_REVIEW_LIMIT,
    },
    "warnings": {
        "naming_patterns": [],
        "behind_error_threshold": BEHIND_ERROR_THRESHOLD,
    },
    "refresh": {
        "max_total": REFRESH_MAX_TOTAL,
        "other_max": REFRESH_OTHER_MAX,
        "weights": {
            "local_branch": REFRESH_LOCAL_BRANCH_WEIGHT,
            "working_copy": REFRESH_WORKING_COPY_WEIGHT,
            "ci_pending": REFRESH_CI_PENDING_WEIGHT,
            "staleness_per_minute": REFRESH_STALENESS_PER_MINUTE,
            "staleness_max": REFRESH_STALENESS_MAX,
            "jitter_max": REFRESH_JITTER_MAX,
        },
    },
    "observability": {
        "log_level": "WARNING",
        "log_format": "console",
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> TopologyConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade branch-topology.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the branch-topology package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(root, set(DEFAULT_CONFIG), "", issues)
    out: dict[str, Any] = {}
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]]] = {
        "meta": _validate_meta,
        "scan": _validate_scan,
        "warnings": _validate_warnings,
        "refresh": _validate_refresh,
        "observability": _validate_observability,
    }
    for key, validator in validators.items():
        _section(root, key=key, issues=issues, validator=validator, out=out)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        issues.add(key, "missing required section")
        return
    section_obj = _as_object(raw, key, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, key, issues)


def _validate_meta(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_scan(payload: dict[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["scan"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    if "remote" in payload:
        remote = _as_str(payload["remote"], _join(path, "remote"), issues)
        if remote is not None:
            if _REMOTE_NAME_PATTERN.fullmatch(remote):
                out["remote"] = remote
            else:
                issues.add(_join(path, "remote"), "must be a plain remote name (example: origin)")

    for key in ("max_concurrency", "review_limit"):
        if key in payload:
            parsed_int = _as_int(payload[key], _join(path, key), issues, minimum=1)
            if parsed_int is not None:
                out[key] = parsed_int

    if "heartbeat_path" in payload:
        heartbeat = _as_str(payload["heartbeat_path"], _join(path, "heartbeat_path"), issues)
        if heartbeat is not None:
            if heartbeat.startswith("/") or "\x00" in heartbeat:
                issues.add(_join(path, "heartbeat_path"), "must be a path relative to the worktree")
            else:
                out["heartbeat_path"] = heartbeat

    if "heartbeat_window_seconds" in payload:
        window = _as_float(
            payload["heartbeat_window_seconds"],
            _join(path, "heartbeat_window_seconds"),
            issues,
            minimum=0.0,
        )
        if window is not None:
            if window == 0:
                issues.add(_join(path, "heartbeat_window_seconds"), "must be > 0")
            else:
                out["heartbeat_window_seconds"] = window
    return out


def _validate_warnings(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["warnings"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    if "naming_patterns" in payload:
        raw_patterns = payload["naming_patterns"]
        patterns_path = _join(path, "naming_patterns")
        if not isinstance(raw_patterns, (list, tuple)):
            issues.add(patterns_path, f"expected array, got {type(raw_patterns).__name__}")
        else:
            patterns: list[str] = []
            for index, item in enumerate(raw_patterns):
                # invalid regexes are tolerated here and skipped at check time
                parsed = _as_str(item, f"{patterns_path}[{index}]", issues)
                if parsed is not None:
                    patterns.append(parsed)
            out["naming_patterns"] = patterns

    if "behind_error_threshold" in payload:
        threshold = _as_int(
            payload["behind_error_threshold"],
            _join(path, "behind_error_threshold"),
            issues,
            minimum=1,
        )
        if threshold is not None:
            out["behind_error_threshold"] = threshold
    return out


def _validate_refresh(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["refresh"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    for key in ("max_total", "other_max"):
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=0)
            if parsed is not None:
                out[key] = parsed

    if "weights" in payload:
        weights_path = _join(path, "weights")
        weights = _as_object(payload["weights"], weights_path, issues)
        if weights is not None:
            allowed_weights = set(DEFAULT_CONFIG["refresh"]["weights"])
            _reject_unknown_keys(weights, allowed_weights, weights_path, issues)
            _require_keys(weights, allowed_weights, weights_path, issues)
            parsed_weights: dict[str, float] = {}
            for key in sorted(allowed_weights & set(weights)):
                # additive weights may be negative; rates and caps may not
                minimum = 0.0 if key in _NON_NEGATIVE_WEIGHTS else None
                value = _as_float(weights[key], _join(weights_path, key), issues, minimum=minimum)
                if value is not None:
                    parsed_weights[key] = value
            out["weights"] = parsed_weights
    return out


def _validate_observability(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = set(DEFAULT_CONFIG["observability"])
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    if "log_level" in payload:
        raw_level = payload["log_level"]
        normalized = raw_level.strip().upper() if isinstance(raw_level, str) else raw_level
        level = _as_enum(normalized, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
        if level is not None:
            out["log_level"] = level

    if "log_format" in payload:
        log_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if log_format is not None:
            out["log_format"] = log_format
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return _deep_copy_mapping(value)
    if isinstance(value, (list, tuple)):
        return [_deep_copy_value(item) for item in value]
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "TopologyConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
