"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar, cast

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_SCHEMA_VERSION = 1
_MAX_TEXT = 8192
_MAX_COLLECTION = 4096


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Badge(StrEnum):
    DIRTY = "dirty"
    ACTIVE = "active"
    OPEN_REVIEW = "pr"
    MERGED_REVIEW = "pr-merged"
    CLOSED_REVIEW = "pr-closed"
    DRAFT = "draft"
    CI_FAIL = "ci-fail"
    CI_PASS = "ci-pass"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes-requested"


class Severity(StrEnum):
    WARN = "warn"
    ERROR = "error"


class WarningCode(StrEnum):
    BEHIND_PARENT = "BEHIND_PARENT"
    DIRTY = "DIRTY"
    CI_FAIL = "CI_FAIL"
    BRANCH_NAMING_VIOLATION = "BRANCH_NAMING_VIOLATION"
    TREE_DIVERGENCE = "TREE_DIVERGENCE"


class CheckStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class ReviewState(StrEnum):
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


class ReviewDecision(StrEnum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    REVIEW_REQUIRED = "review_required"
    NONE = "none"


class ReviewStatus(StrEnum):
    NONE = "none"
    REQUESTED = "requested"
    REVIEWED = "reviewed"
    APPROVED = "approved"


class PlanningStatus(StrEnum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    DISCARDED = "discarded"


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
    strip: bool = True,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware")
    return parsed.astimezone(UTC)


def _as_optional_datetime(value: object, path: str) -> datetime | None:
    if value is None:
        return None
    return _as_datetime(value, path)


def parse_timestamp(value: object, path: str = "timestamp") -> datetime:
    """Parse an aware datetime or ISO-8601 string (``Z`` accepted) into UTC."""
    return _as_datetime(value, path)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="seconds").replace("+00:00", "Z")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_COLLECTION:
            _fail(path, f"too many items (>{_MAX_COLLECTION})")
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(value: object, path: str, *, unique: bool = False) -> tuple[str, ...]:
    parsed = tuple(
        _as_str(item, f"{path}[{index}]") for index, item in enumerate(_as_sequence(value, path))
    )
    if unique and len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return parsed


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, bool):
        return cast("JSONValue", value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        raw = value.value
        if not isinstance(raw, str):
            _fail(path, "enum value must be string")
        return raw
    if isinstance(value, datetime):
        return _datetime_to_iso8601z(value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value):
        out_obj: dict[str, JSONValue] = {}
        for dataclass_field in fields(value):
            out_obj[dataclass_field.name] = _serialize_value(
                getattr(value, dataclass_field.name),
                f"{path}.{dataclass_field.name}",
            )
        return out_obj

    _fail(path, f"cannot serialize value of type {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class Branch(CanonicalModel):
    """Local branch head as reported by the repository query service."""

    name: str
    commit_id: str = ""
    commit_time: datetime | None = None

    def __post_init__(self) -> None:
        _as_str(self.name, "Branch.name")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Branch:
        parsed = _expect_object(
            data, "Branch", required={"name"}, optional={"commit_id", "commit_time"}
        )
        return cls(
            name=_as_str(parsed["name"], "Branch.name"),
            commit_id=_as_str(parsed.get("commit_id", ""), "Branch.commit_id", min_len=0),
            commit_time=_as_optional_datetime(parsed.get("commit_time"), "Branch.commit_time"),
        )


@dataclass(frozen=True, slots=True)
class WorkingCopy(CanonicalModel):
    """A checked-out worktree. ``branch`` is ``None`` for a detached HEAD."""

    path: str
    branch: str | None = None
    head: str | None = None
    dirty: bool = False
    active: bool = False
    agent: str | None = None

    def __post_init__(self) -> None:
        _as_str(self.path, "WorkingCopy.path")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WorkingCopy:
        parsed = _expect_object(
            data,
            "WorkingCopy",
            required={"path"},
            optional={"branch", "head", "dirty", "active", "agent"},
        )
        return cls(
            path=_as_str(parsed["path"], "WorkingCopy.path"),
            branch=_as_optional_str(parsed.get("branch"), "WorkingCopy.branch"),
            head=_as_optional_str(parsed.get("head"), "WorkingCopy.head"),
            dirty=_as_bool(parsed.get("dirty", False), "WorkingCopy.dirty"),
            active=_as_bool(parsed.get("active", False), "WorkingCopy.active"),
            agent=_as_optional_str(parsed.get("agent"), "WorkingCopy.agent"),
        )


@dataclass(frozen=True, slots=True)
class ReviewItem(CanonicalModel):
    """Pull/merge request metadata with reviewers and checks already resolved."""

    number: int
    title: str
    state: ReviewState
    branch: str
    url: str | None = None
    draft: bool = False
    labels: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()
    reviewers: tuple[str, ...] = ()
    review_decision: ReviewDecision = ReviewDecision.NONE
    review_status: ReviewStatus = ReviewStatus.NONE
    check_status: CheckStatus | None = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0

    def __post_init__(self) -> None:
        _as_int(self.number, "ReviewItem.number", minimum=0)
        _as_str(self.branch, "ReviewItem.branch")
        for name in ("additions", "deletions", "changed_files"):
            _as_int(getattr(self, name), f"ReviewItem.{name}", minimum=0)

    @property
    def is_open(self) -> bool:
        return self.state is ReviewState.OPEN

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ReviewItem:
        parsed = _expect_object(
            data,
            "ReviewItem",
            required={"number", "title", "state", "branch"},
            optional={
                "url",
                "draft",
                "labels",
                "assignees",
                "reviewers",
                "review_decision",
                "review_status",
                "check_status",
                "additions",
                "deletions",
                "changed_files",
            },
        )
        raw_checks = parsed.get("check_status")
        return cls(
            number=_as_int(parsed["number"], "ReviewItem.number", minimum=0),
            title=_as_str(parsed["title"], "ReviewItem.title", min_len=0),
            state=_as_enum(ReviewState, parsed["state"], "ReviewItem.state"),
            branch=_as_str(parsed["branch"], "ReviewItem.branch"),
            url=_as_optional_str(parsed.get("url"), "ReviewItem.url"),
            draft=_as_bool(parsed.get("draft", False), "ReviewItem.draft"),
            labels=_as_str_tuple(parsed.get("labels", ()), "ReviewItem.labels"),
            assignees=_as_str_tuple(parsed.get("assignees", ()), "ReviewItem.assignees"),
            reviewers=_as_str_tuple(parsed.get("reviewers", ()), "ReviewItem.reviewers"),
            review_decision=_as_enum(
                ReviewDecision,
                parsed.get("review_decision", ReviewDecision.NONE),
                "ReviewItem.review_decision",
            ),
            review_status=_as_enum(
                ReviewStatus,
                parsed.get("review_status", ReviewStatus.NONE),
                "ReviewItem.review_status",
            ),
            check_status=(
                None
                if raw_checks is None
                else _as_enum(CheckStatus, raw_checks, "ReviewItem.check_status")
            ),
            additions=_as_int(parsed.get("additions", 0), "ReviewItem.additions", minimum=0),
            deletions=_as_int(parsed.get("deletions", 0), "ReviewItem.deletions", minimum=0),
            changed_files=_as_int(
                parsed.get("changed_files", 0), "ReviewItem.changed_files", minimum=0
            ),
        )


@dataclass(frozen=True, slots=True)
class AheadBehind(CanonicalModel):
    """Symmetric commit distance: ``ahead`` commits only in the tip, ``behind`` only in the base."""

    ahead: int
    behind: int

    def __post_init__(self) -> None:
        _as_int(self.ahead, "AheadBehind.ahead", minimum=0)
        _as_int(self.behind, "AheadBehind.behind", minimum=0)

    @property
    def in_sync(self) -> bool:
        return self.ahead == 0 and self.behind == 0


@dataclass(frozen=True, slots=True)
class Node(CanonicalModel):
    branch: str
    badges: tuple[Badge, ...] = ()
    last_commit_at: datetime | None = None
    description: str | None = None
    working_copy: WorkingCopy | None = None
    review: ReviewItem | None = None
    ahead_behind: AheadBehind | None = None
    remote_ahead_behind: AheadBehind | None = None


@dataclass(frozen=True, slots=True)
class Edge(CanonicalModel):
    parent: str
    child: str
    confidence: Confidence
    designed: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.parent, self.child)


@dataclass(frozen=True, slots=True)
class NamingRule(CanonicalModel):
    """Regular expressions a non-default branch name should match (any one suffices)."""

    patterns: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> NamingRule:
        parsed = _expect_object(data, "NamingRule", required={"patterns"})
        return cls(patterns=_as_str_tuple(parsed["patterns"], "NamingRule.patterns"))


@dataclass(frozen=True, slots=True)
class TopologyWarning(CanonicalModel):
    severity: Severity
    code: WarningCode
    message: str
    meta: Mapping[str, JSONValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DesignedEdge(CanonicalModel):
    parent: str
    child: str

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DesignedEdge:
        parsed = _expect_object(data, "DesignedEdge", required={"parent", "child"})
        return cls(
            parent=_as_str(parsed["parent"], "DesignedEdge.parent"),
            child=_as_str(parsed["child"], "DesignedEdge.child"),
        )


@dataclass(frozen=True, slots=True)
class DesignedTree(CanonicalModel):
    """User-declared intended topology, independent of git ancestry."""

    base_branch: str | None = None
    edges: tuple[DesignedEdge, ...] = ()
    nodes: tuple[str, ...] = ()
    schema_version: int = _SCHEMA_VERSION

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DesignedTree:
        parsed = _expect_object(
            data,
            "DesignedTree",
            required={"edges"},
            optional={"base_branch", "nodes", "schema_version"},
        )
        edges = tuple(
            DesignedEdge.from_dict(_expect_mapping(item, f"DesignedTree.edges[{index}]"))
            for index, item in enumerate(_as_sequence(parsed["edges"], "DesignedTree.edges"))
        )
        return cls(
            base_branch=_as_optional_str(parsed.get("base_branch"), "DesignedTree.base_branch"),
            edges=edges,
            nodes=_as_str_tuple(parsed.get("nodes", ()), "DesignedTree.nodes", unique=True),
            schema_version=_as_int(
                parsed.get("schema_version", _SCHEMA_VERSION),
                "DesignedTree.schema_version",
                minimum=1,
            ),
        )


@dataclass(frozen=True, slots=True)
class PlanningTask(CanonicalModel):
    id: str
    title: str = ""
    branch_name: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PlanningTask:
        parsed = _expect_object(
            data,
            "PlanningTask",
            required={"id"},
            optional={"title", "branch_name", "description"},
        )
        return cls(
            id=_as_str(parsed["id"], "PlanningTask.id"),
            title=_as_str(parsed.get("title", ""), "PlanningTask.title", min_len=0),
            branch_name=_as_optional_str(parsed.get("branch_name"), "PlanningTask.branch_name"),
        )


@dataclass(frozen=True, slots=True)
class TaskEdge(CanonicalModel):
    """Parent/child relation between planning task ids (not branch names)."""

    parent: str
    child: str

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TaskEdge:
        parsed = _expect_object(data, "TaskEdge", required={"parent", "child"})
        return cls(
            parent=_as_str(parsed["parent"], "TaskEdge.parent"),
            child=_as_str(parsed["child"], "TaskEdge.child"),
        )


@dataclass(frozen=True, slots=True)
class PlanningSession(CanonicalModel):
    id: str
    base_branch: str
    status: PlanningStatus = PlanningStatus.DRAFT
    tasks: tuple[PlanningTask, ...] = ()
    edges: tuple[TaskEdge, ...] = ()

    @property
    def is_confirmed(self) -> bool:
        return self.status is PlanningStatus.CONFIRMED

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PlanningSession:
        parsed = _expect_object(
            data,
            "PlanningSession",
            required={"id", "base_branch"},
            optional={"status", "tasks", "edges", "title"},
        )
        tasks = tuple(
            PlanningTask.from_dict(_expect_mapping(item, f"PlanningSession.tasks[{index}]"))
            for index, item in enumerate(
                _as_sequence(parsed.get("tasks", ()), "PlanningSession.tasks")
            )
        )
        edges = tuple(
            TaskEdge.from_dict(_expect_mapping(item, f"PlanningSession.edges[{index}]"))
            for index, item in enumerate(
                _as_sequence(parsed.get("edges", ()), "PlanningSession.edges")
            )
        )
        return cls(
            id=_as_str(parsed["id"], "PlanningSession.id"),
            base_branch=_as_str(parsed["base_branch"], "PlanningSession.base_branch"),
            status=_as_enum(
                PlanningStatus,
                parsed.get("status", PlanningStatus.DRAFT),
                "PlanningSession.status",
            ),
            tasks=tasks,
            edges=edges,
        )


@dataclass(frozen=True, slots=True)
class CachedReview(CanonicalModel):
    """Last known review state for one branch, as held by the caller's cache."""

    branch: str
    check_status: CheckStatus | None = None
    refreshed_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> CachedReview:
        parsed = _expect_object(
            data,
            "CachedReview",
            required={"branch"},
            optional={"check_status", "refreshed_at"},
        )
        raw_status = parsed.get("check_status")
        return cls(
            branch=_as_str(parsed["branch"], "CachedReview.branch"),
            check_status=(
                None
                if raw_status is None
                else _as_enum(CheckStatus, raw_status, "CachedReview.check_status")
            ),
            refreshed_at=_as_optional_datetime(
                parsed.get("refreshed_at"), "CachedReview.refreshed_at"
            ),
        )


@dataclass(frozen=True, slots=True)
class QueryError(CanonicalModel):
    """A single query-service failure, recovered locally by the engine."""

    operation: str
    subject: str
    message: str


def _expect_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return cast("Mapping[str, object]", value)


__all__ = [
    "AheadBehind",
    "Badge",
    "Branch",
    "CachedReview",
    "CanonicalModel",
    "CheckStatus",
    "Confidence",
    "DesignedEdge",
    "DesignedTree",
    "Edge",
    "JSONScalar",
    "JSONValue",
    "NamingRule",
    "Node",
    "PlanningSession",
    "PlanningStatus",
    "PlanningTask",
    "QueryError",
    "ReviewDecision",
    "ReviewItem",
    "ReviewState",
    "ReviewStatus",
    "Severity",
    "TaskEdge",
    "TopologyWarning",
    "UTC",
    "WarningCode",
    "WorkingCopy",
    "parse_timestamp",
]
