"""Typed in-memory representation of the matrix document.

Parsing is tolerant on purpose: a malformed field becomes ``None`` (or an
empty list) instead of raising, so the compliance evaluator can report the
absence as a finding.  Unmodelled keys are kept in ``extra`` on every record
and written back unchanged by :func:`tracematrix.matrix.loader.save_matrix`.
"""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field, fields
from typing import Any

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class UseCaseStatus(enum.Enum):
    """Lifecycle status of a use case."""

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    DEPRECATED = "deprecated"


class DecisionStatus(enum.Enum):
    """Lifecycle status of an architecture decision record."""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    SUPERSEDED = "superseded"
    DEPRECATED = "deprecated"


VALID_USE_CASE_STATUSES: frozenset[str] = frozenset(s.value for s in UseCaseStatus)
VALID_DECISION_STATUSES: frozenset[str] = frozenset(s.value for s in DecisionStatus)

# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _text(value: Any) -> str | None:
    """Return *value* as a string, normalising YAML dates to ``YYYY-MM-DD``."""
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date().isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return str(value)


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _extra(data: dict[str, Any], known: frozenset[str]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in known}


def _drop_none(data: dict[str, Any], keep: frozenset[str] = frozenset()) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None or k in keep}


# ---------------------------------------------------------------------------
# Use cases and function records
# ---------------------------------------------------------------------------


@dataclass
class FunctionRecord:
    """A function registered against a use case."""

    name: str | None = None
    file: str | None = None
    line: int | None = None
    endpoint: str | None = None  # "METHOD /path"
    db_tables: list[str] = field(default_factory=list)
    auth_required: bool | None = None
    roles_required: list[str] = field(default_factory=list)
    last_modified: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset(
        {
            "name", "file", "line", "endpoint", "db_tables",
            "auth_required", "roles_required", "last_modified",
        }
    )

    @classmethod
    def from_dict(cls, data: Any) -> FunctionRecord:
        data = _mapping(data)
        return cls(
            name=_text(data.get("name")),
            file=_text(data.get("file")),
            line=_int(data.get("line")),
            endpoint=_text(data.get("endpoint")),
            db_tables=_str_list(data.get("db_tables")),
            auth_required=_bool(data.get("auth_required")),
            roles_required=_str_list(data.get("roles_required")),
            last_modified=_text(data.get("last_modified")),
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "file": self.file,
            "line": self.line,
            "endpoint": self.endpoint,
            "db_tables": list(self.db_tables),
            "auth_required": self.auth_required,
            "roles_required": list(self.roles_required),
            "last_modified": self.last_modified,
            **self.extra,
        }


@dataclass
class UseCase:
    """A named unit of user-facing value with a lifecycle status."""

    id: str | None = None
    title: str | None = None
    value: str | None = None
    status: str | None = None
    actor: str | None = None
    visual_element_id: str | None = None
    preconditions: list[str] = field(default_factory=list)
    postconditions: list[str] = field(default_factory=list)
    functions: list[FunctionRecord] = field(default_factory=list)
    rules_applied: list[str] = field(default_factory=list)
    deprecated_date: str | None = None
    deprecated_reason: str | None = None
    replaced_by: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset(
        {
            "id", "title", "value", "status", "actor", "visual_element_id",
            "preconditions", "postconditions", "functions", "rules_applied",
            "deprecated_date", "deprecated_reason", "replaced_by",
        }
    )

    @classmethod
    def from_dict(cls, data: Any) -> UseCase:
        data = _mapping(data)
        raw_functions = data.get("functions")
        functions = (
            [FunctionRecord.from_dict(f) for f in raw_functions]
            if isinstance(raw_functions, list)
            else []
        )
        return cls(
            id=_text(data.get("id")),
            title=_text(data.get("title")),
            value=_text(data.get("value")),
            status=_text(data.get("status")),
            actor=_text(data.get("actor")),
            visual_element_id=_text(data.get("visual_element_id")),
            preconditions=_str_list(data.get("preconditions")),
            postconditions=_str_list(data.get("postconditions")),
            functions=functions,
            rules_applied=_str_list(data.get("rules_applied")),
            deprecated_date=_text(data.get("deprecated_date")),
            deprecated_reason=_text(data.get("deprecated_reason")),
            replaced_by=_text(data.get("replaced_by")),
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "value": self.value,
            "status": self.status,
            "actor": self.actor,
            "visual_element_id": self.visual_element_id,
            "preconditions": list(self.preconditions),
            "postconditions": list(self.postconditions),
            "functions": [f.to_dict() for f in self.functions],
            "rules_applied": list(self.rules_applied),
            "deprecated_date": self.deprecated_date,
            "deprecated_reason": self.deprecated_reason,
            "replaced_by": self.replaced_by,
            **self.extra,
        }

    @property
    def is_implemented(self) -> bool:
        return self.status == UseCaseStatus.IMPLEMENTED.value


# ---------------------------------------------------------------------------
# Architecture decisions
# ---------------------------------------------------------------------------


@dataclass
class ArchitectureDecision:
    """An architecture decision record (ADR)."""

    id: str | None = None
    status: str | None = None
    title: str | None = None
    date: str | None = None
    context: str | None = None
    decision: str | None = None
    alternatives_considered: list[Any] = field(default_factory=list)
    consequences: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset(
        {
            "id", "status", "title", "date", "context", "decision",
            "alternatives_considered", "consequences",
        }
    )

    @classmethod
    def from_dict(cls, data: Any) -> ArchitectureDecision:
        data = _mapping(data)
        alternatives = data.get("alternatives_considered")
        return cls(
            id=_text(data.get("id")),
            status=_text(data.get("status")),
            title=_text(data.get("title")),
            date=_text(data.get("date")),
            context=_text(data.get("context")),
            decision=_text(data.get("decision")),
            alternatives_considered=list(alternatives) if isinstance(alternatives, list) else [],
            consequences=_str_list(data.get("consequences")),
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "status": self.status,
            "title": self.title,
            "context": self.context,
            "decision": self.decision,
            "alternatives_considered": list(self.alternatives_considered),
            "consequences": list(self.consequences),
            **self.extra,
        }


# ---------------------------------------------------------------------------
# Stack declaration
# ---------------------------------------------------------------------------


@dataclass
class Stack:
    """Declared technology stack.  Every field is nullable until initialised."""

    runtime: str | None = None
    framework: str | None = None
    language: str | None = None
    orm: str | None = None
    database: str | None = None
    auth: str | None = None
    api_style: str | None = None
    styling: str | None = None
    ui_components: str | None = None
    state_management: str | None = None
    email: str | None = None
    file_storage: str | None = None
    deployment: str | None = None
    ci_cd: str | None = None
    testing: str | None = None
    package_manager: str | None = None
    monorepo: bool | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Stack:
        data = _mapping(data)
        names = [f.name for f in fields(cls) if f.name not in ("extra", "monorepo")]
        kwargs: dict[str, Any] = {name: _text(data.get(name)) for name in names}
        kwargs["monorepo"] = _bool(data.get("monorepo"))
        known = frozenset([*names, "monorepo"])
        return cls(**kwargs, extra=_extra(data, known))

    def get(self, name: str) -> Any:
        """Return a declared field by name, looking into ``extra`` as well."""
        if name != "extra" and name in {f.name for f in fields(self)}:
            return getattr(self, name)
        return self.extra.get(name)

    def values(self) -> list[Any]:
        declared = [getattr(self, f.name) for f in fields(self) if f.name != "extra"]
        return [*declared, *self.extra.values()]

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extra"}
        return {**data, **self.extra}


# ---------------------------------------------------------------------------
# Discovered graph entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TableField:
    """A column of a discovered database table."""

    name: str
    type: str | None = None
    is_pii: bool = False
    gdpr_category: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> TableField:
        data = _mapping(data)
        return cls(
            name=_text(data.get("name")) or "",
            type=_text(data.get("type")),
            is_pii=data.get("is_pii") is True,
            gdpr_category=_text(data.get("gdpr_category")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "name": self.name,
                "type": self.type,
                "is_pii": self.is_pii,
                "gdpr_category": self.gdpr_category,
            }
        )


@dataclass
class DbTable:
    """A database table discovered in the project.

    ``retention_declared`` tells "explicitly left unset" (key present, value
    null) apart from "never considered" (key absent).
    """

    id: str
    name: str
    owner_service: str | None = None
    fields: list[TableField] = field(default_factory=list)
    audit_log: bool = False
    retention_days: int | None = None
    retention_declared: bool = False
    source_file: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset(
        {
            "id", "name", "owner_service", "owner", "fields", "audit_log",
            "retention_days", "source_file",
        }
    )

    @classmethod
    def from_dict(cls, data: Any) -> DbTable:
        data = _mapping(data)
        raw_fields = data.get("fields")
        owner = data.get("owner_service", data.get("owner"))
        return cls(
            id=_text(data.get("id")) or "",
            name=_text(data.get("name")) or _text(data.get("id")) or "",
            owner_service=_text(owner) or None,
            fields=(
                [TableField.from_dict(f) for f in raw_fields]
                if isinstance(raw_fields, list)
                else []
            ),
            audit_log=data.get("audit_log") is True,
            retention_days=_int(data.get("retention_days")),
            retention_declared="retention_days" in data,
            source_file=_text(data.get("source_file")),
            extra=_extra(data, cls._KEYS),
        )

    @property
    def has_pii(self) -> bool:
        return any(f.is_pii for f in self.fields)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "owner_service": self.owner_service,
            "fields": [f.to_dict() for f in self.fields],
            "audit_log": self.audit_log,
        }
        if self.retention_declared or self.retention_days is not None:
            data["retention_days"] = self.retention_days
        if self.source_file is not None:
            data["source_file"] = self.source_file
        return {**data, **self.extra}


@dataclass
class Endpoint:
    """An HTTP endpoint discovered in the project."""

    id: str
    method: str
    path: str
    source_file: str | None = None
    use_cases: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset({"id", "method", "path", "source_file", "use_cases"})

    @classmethod
    def from_dict(cls, data: Any) -> Endpoint:
        data = _mapping(data)
        return cls(
            id=_text(data.get("id")) or "",
            method=(_text(data.get("method")) or "").upper(),
            path=_text(data.get("path")) or "",
            source_file=_text(data.get("source_file")),
            use_cases=_str_list(data.get("use_cases")),
            extra=_extra(data, cls._KEYS),
        )

    @property
    def signature(self) -> str:
        """The ``"METHOD /path"`` string function records refer to."""
        return f"{self.method} {self.path}"

    def to_dict(self) -> dict[str, Any]:
        data = _drop_none(
            {
                "id": self.id,
                "method": self.method,
                "path": self.path,
                "source_file": self.source_file,
            }
        )
        if self.use_cases:
            data["use_cases"] = list(self.use_cases)
        return {**data, **self.extra}


@dataclass
class FunctionEntity:
    """A function discovered in the project source."""

    id: str
    name: str
    source_file: str | None = None
    use_cases: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset({"id", "name", "source_file", "use_cases"})

    @classmethod
    def from_dict(cls, data: Any) -> FunctionEntity:
        data = _mapping(data)
        return cls(
            id=_text(data.get("id")) or "",
            name=_text(data.get("name")) or "",
            source_file=_text(data.get("source_file")),
            use_cases=_str_list(data.get("use_cases")),
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        data = _drop_none({"id": self.id, "name": self.name, "source_file": self.source_file})
        if self.use_cases:
            data["use_cases"] = list(self.use_cases)
        return {**data, **self.extra}


def endpoint_key(value: str) -> str:
    """Normalise ``"method /path"`` for comparison: upper-case method, single space."""
    method, _, path = value.strip().partition(" ")
    return f"{method.upper()} {path.strip()}"


def _merge_by_id(items: list[Any]) -> list[Any]:
    """Collapse entities sharing an id; later keys fill gaps in the first one.

    Entities without an id are kept as they are.
    """
    merged: dict[str, dict[str, Any]] = {}
    result: list[dict[str, Any]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        key = "" if item.get("id") is None else str(item["id"])
        if not key:
            result.append(dict(item))
        elif key in merged:
            first = merged[key]
            first.update({k: v for k, v in item.items() if first.get(k) is None})
        else:
            merged[key] = dict(item)
            result.append(merged[key])
    return result


# ---------------------------------------------------------------------------
# Document root
# ---------------------------------------------------------------------------


@dataclass
class Document:
    """Root of the matrix.

    ``use_cases`` is ``None`` when the source document has no use case list
    (or the value is not a list); every other collection defaults to empty.
    """

    version: str | None = None
    project: str | None = None
    description: str | None = None
    author: str | None = None
    created: str | None = None
    last_updated: str | None = None
    stack: Stack | None = None
    use_cases: list[UseCase] | None = None
    adrs: list[ArchitectureDecision] = field(default_factory=list)
    deprecated: list[UseCase] = field(default_factory=list)
    db_tables: list[DbTable] = field(default_factory=list)
    endpoints: list[Endpoint] = field(default_factory=list)
    functions: list[FunctionEntity] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = frozenset(
        {
            "version", "project", "description", "author", "created", "last_updated",
            "stack", "use_cases", "adrs", "deprecated", "db_tables", "endpoints",
            "functions",
        }
    )

    @classmethod
    def from_dict(cls, data: Any) -> Document:
        data = _mapping(data)
        raw_use_cases = data.get("use_cases")
        raw_stack = data.get("stack")

        def _records(key: str) -> list[Any]:
            raw = data.get(key)
            return raw if isinstance(raw, list) else []

        return cls(
            version=_text(data.get("version")),
            project=_text(data.get("project")),
            description=_text(data.get("description")),
            author=_text(data.get("author")),
            created=_text(data.get("created")),
            last_updated=_text(data.get("last_updated")),
            stack=Stack.from_dict(raw_stack) if isinstance(raw_stack, dict) else None,
            use_cases=(
                [UseCase.from_dict(uc) for uc in raw_use_cases]
                if isinstance(raw_use_cases, list)
                else None
            ),
            adrs=[ArchitectureDecision.from_dict(a) for a in _records("adrs")],
            deprecated=[UseCase.from_dict(uc) for uc in _records("deprecated")],
            db_tables=[DbTable.from_dict(t) for t in _merge_by_id(_records("db_tables"))],
            endpoints=[Endpoint.from_dict(e) for e in _merge_by_id(_records("endpoints"))],
            functions=[FunctionEntity.from_dict(f) for f in _merge_by_id(_records("functions"))],
            extra=_extra(data, cls._KEYS),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "project": self.project,
            "description": self.description,
            "author": self.author,
            "created": self.created,
            "last_updated": self.last_updated,
        }
        if self.stack is not None:
            data["stack"] = self.stack.to_dict()
        data["adrs"] = [a.to_dict() for a in self.adrs]
        if self.use_cases is not None:
            data["use_cases"] = [uc.to_dict() for uc in self.use_cases]
        data["deprecated"] = [uc.to_dict() for uc in self.deprecated]
        if self.db_tables:
            data["db_tables"] = [t.to_dict() for t in self.db_tables]
        if self.endpoints:
            data["endpoints"] = [e.to_dict() for e in self.endpoints]
        if self.functions:
            data["functions"] = [f.to_dict() for f in self.functions]
        return {**data, **self.extra}

    @property
    def active_use_cases(self) -> list[UseCase]:
        return self.use_cases or []

    def all_use_cases(self) -> list[UseCase]:
        """Active followed by deprecated use cases."""
        return [*self.active_use_cases, *self.deprecated]
