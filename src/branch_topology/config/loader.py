"""
branch-topology — runtime config and input document loader.

File: src/branch_topology/config/loader.py

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and CLI overrides.
- Load caller-authored documents (designed tree, planning sessions, review cache).

What should be included in this file
- Precedence logic: CLI > env (BRANCH_TOPOLOGY_) > file > defaults.
- TOML loading via ``tomllib``; YAML/JSON documents via ``yaml.safe_load``.
- Deterministic environment variable mapping and coercion.

Functional requirements
- Reject invalid config via schema validation with structured issues.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal, TypeVar

import yaml

from branch_topology.config.schema import assert_valid_config, default_config, merge_config
from branch_topology.domain.models import CachedReview, DesignedTree, PlanningSession

DEFAULT_CONFIG_FILE: Final[str] = "branch-topology.toml"
ENV_PREFIX: Final[str] = "BRANCH_TOPOLOGY_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_ValueKind = Literal["str", "int", "float", "bool", "list"]
T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: _ValueKind


class ConfigLoadError(ValueError):
    """Raised when config or an input document cannot be loaded or coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    search_dir: str | Path | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults.

    Without ``config_path`` the default file is looked up in ``search_dir`` (or
    the current directory) and silently skipped when absent.
    """

    resolved_path = _resolve_config_path(config_path, search_dir)
    explicit_path = config_path is not None
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=explicit_path)

    merged = merge_config(default_config(), file_payload)
    merged = assert_valid_config(merged)

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(dict(cli_overrides or {})))
    return assert_valid_config(merged)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of the effective config."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def load_document(path: str | Path) -> object:
    """Parse a YAML or JSON document (JSON is read through the YAML loader)."""

    document_path = Path(path).expanduser()
    try:
        with document_path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigLoadError(f"unable to read {document_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"invalid YAML/JSON in {document_path}: {exc}") from exc


def load_designed_tree(path: str | Path) -> DesignedTree:
    payload = load_document(path)
    if not isinstance(payload, Mapping):
        raise ConfigLoadError(f"{path}: designed tree must be an object")
    return _parse(DesignedTree.from_dict, payload, path)


def load_planning_sessions(path: str | Path) -> tuple[PlanningSession, ...]:
    """Accept a single session object, a list, or ``{"sessions": [...]}``."""

    payload = load_document(path)
    records = _records(payload, "sessions", path)
    return tuple(_parse(PlanningSession.from_dict, record, path) for record in records)


def load_cached_reviews(path: str | Path) -> tuple[CachedReview, ...]:
    payload = load_document(path)
    records = _records(payload, "reviews", path)
    return tuple(_parse(CachedReview.from_dict, record, path) for record in records)


def _records(payload: object, key: str, path: str | Path) -> Sequence[Mapping[str, object]]:
    if payload is None:
        return ()
    if isinstance(payload, Mapping):
        nested = payload.get(key)
        if nested is None:
            return (payload,)
        payload = nested
    if not isinstance(payload, list):
        raise ConfigLoadError(f"{path}: expected a list or an object with a {key!r} list")
    for index, record in enumerate(payload):
        if not isinstance(record, Mapping):
            raise ConfigLoadError(f"{path}: {key}[{index}] must be an object")
    return payload


def _parse(
    parser: Callable[[Mapping[str, object]], T],
    payload: Mapping[str, object],
    path: str | Path,
) -> T:
    try:
        return parser(payload)
    except ValueError as exc:
        raise ConfigLoadError(f"{path}: {exc}") from exc


def _resolve_config_path(config_path: str | Path | None, search_dir: str | Path | None) -> Path:
    if config_path is None:
        base = Path(search_dir) if search_dir is not None else Path.cwd()
        return (base / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        value = _coerce_env(raw, binding.value_type, env_name, binding.path)
        _set_nested(overrides, binding.path, value)
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        if path and path[0] == "meta":
            continue
        kind = _kind_for_value(value)
        if kind is None:
            continue
        bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> _ValueKind | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    if isinstance(value, list):
        return "list"
    return None


def _coerce_env(
    raw: str,
    value_type: _ValueKind,
    env_name: str,
    path: tuple[str, ...],
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "list":
        # comma-separated; regex patterns containing commas belong in the TOML file
        return [item.strip() for item in value.split(",") if item.strip()]
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_cached_reviews",
    "load_config",
    "load_designed_tree",
    "load_document",
    "load_planning_sessions",
]
