"""Graph violation classifier: risk findings for tables, endpoints, and functions."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tracematrix.matrix.model import endpoint_key

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tracematrix.matrix.model import Document

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Codes and severities
# ---------------------------------------------------------------------------


class ViolationSeverity(enum.Enum):
    """Severity tiers, ordered worst first."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ViolationCode(enum.Enum):
    NO_OWNER = "NO_OWNER"
    PII_NO_AUDIT = "PII_NO_AUDIT"
    NO_RETENTION = "NO_RETENTION"
    GHOST_ENDPOINT = "GHOST_ENDPOINT"
    GHOST_FUNCTION = "GHOST_FUNCTION"

    def __str__(self) -> str:
        return self.value


ENTITY_TABLE = "table"
ENTITY_ENDPOINT = "endpoint"
ENTITY_FUNCTION = "function"


@dataclass(frozen=True)
class Violation:
    """A single classified observation about one graph entity."""

    id: str
    entity_id: str
    entity_type: str  # "table" | "endpoint" | "function"
    severity: ViolationSeverity
    code: ViolationCode
    message: str
    auto_fixable: bool
    fix_prompt: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "severity": self.severity.value,
            "code": self.code.value,
            "message": self.message,
            "auto_fixable": self.auto_fixable,
            "fix_prompt": self.fix_prompt,
        }


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


def _table_violations(document: Document) -> list[Violation]:
    found: list[Violation] = []
    for table in document.db_tables:
        label = table.name or table.id
        if not table.owner_service:
            found.append(
                Violation(
                    id=f"v_{table.id}_no_owner",
                    entity_id=table.id,
                    entity_type=ENTITY_TABLE,
                    severity=ViolationSeverity.CRITICAL,
                    code=ViolationCode.NO_OWNER,
                    message=f'Table "{label}" has no owner service. Nobody is responsible for it.',
                    auto_fixable=True,
                    fix_prompt=(
                        f'Review every endpoint that touches "{label}", decide which service '
                        "owns it, and set owner_service in the matrix."
                    ),
                )
            )

        if table.has_pii and not table.audit_log:
            found.append(
                Violation(
                    id=f"v_{table.id}_pii_no_audit",
                    entity_id=table.id,
                    entity_type=ENTITY_TABLE,
                    severity=ViolationSeverity.CRITICAL,
                    code=ViolationCode.PII_NO_AUDIT,
                    message=f'Table "{label}" holds PII but has no audit log. GDPR risk.',
                    auto_fixable=True,
                    fix_prompt=(
                        f'Add audit logging for every PII field in "{label}". '
                        "Record an audit entry on each write and delete."
                    ),
                )
            )

        if table.retention_days is None:
            if table.retention_declared:
                message = f'Table "{label}" leaves retention_days unset. Data is never deleted.'
            else:
                message = f'Table "{label}" declares no retention policy. Data is never deleted.'
            found.append(
                Violation(
                    id=f"v_{table.id}_no_retention",
                    entity_id=table.id,
                    entity_type=ENTITY_TABLE,
                    severity=ViolationSeverity.WARNING,
                    code=ViolationCode.NO_RETENTION,
                    message=message,
                    auto_fixable=False,
                    fix_prompt=(
                        f'Define a retention policy for "{label}" based on the kind of data '
                        "it stores and GDPR requirements."
                    ),
                )
            )
    return found


def _endpoint_violations(document: Document) -> list[Violation]:
    referenced = {
        endpoint_key(fn.endpoint)
        for uc in document.active_use_cases
        for fn in uc.functions
        if fn.endpoint
    }
    found: list[Violation] = []
    for endpoint in document.endpoints:
        signature = endpoint.signature
        if endpoint_key(signature) in referenced:
            continue
        found.append(
            Violation(
                id=f"v_{endpoint.id}_ghost",
                entity_id=endpoint.id,
                entity_type=ENTITY_ENDPOINT,
                severity=ViolationSeverity.WARNING,
                code=ViolationCode.GHOST_ENDPOINT,
                message=f'Endpoint "{signature}" is not linked to any use case (ghost logic).',
                auto_fixable=True,
                fix_prompt=(
                    f'Analyse "{signature}" and create a matching use case, '
                    "or mark the endpoint as deprecated."
                ),
            )
        )
    return found


def _function_violations(document: Document) -> list[Violation]:
    referenced = {
        fn.name
        for uc in document.active_use_cases
        for fn in uc.functions
        if fn.name
    }
    found: list[Violation] = []
    for entity in document.functions:
        if entity.name in referenced:
            continue
        found.append(
            Violation(
                id=f"v_{entity.id}_ghost",
                entity_id=entity.id,
                entity_type=ENTITY_FUNCTION,
                severity=ViolationSeverity.WARNING,
                code=ViolationCode.GHOST_FUNCTION,
                message=(
                    f'Function "{entity.name}" is not linked to any use case (possible dead code).'
                ),
                auto_fixable=True,
                fix_prompt=(
                    f'Check whether "{entity.name}" is still used. If it is, link it to a '
                    "use case; otherwise mark it as deprecated."
                ),
            )
        )
    return found


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def classify(document: Document) -> list[Violation]:
    """Classify every table, endpoint, and function entity in *document*.

    Findings are independent: a single table can carry several of them.
    Output order is tables, then endpoints, then functions, each in
    document order.
    """
    violations = [
        *_table_violations(document),
        *_endpoint_violations(document),
        *_function_violations(document),
    ]
    logger.debug(
        "Classified %d tables, %d endpoints, %d functions: %d violation(s)",
        len(document.db_tables),
        len(document.endpoints),
        len(document.functions),
        len(violations),
    )
    return violations


def findings_for_entity(violations: Iterable[Violation], entity_id: str) -> list[Violation]:
    """Return the violations attached to *entity_id*, in input order."""
    return [v for v in violations if v.entity_id == entity_id]


def worst_severity(violations: Iterable[Violation]) -> ViolationSeverity | None:
    """Collapse findings to one severity: critical > warning > info.

    Returns ``None`` when there are no findings at all.
    """
    severities = {v.severity for v in violations}
    for severity in ViolationSeverity:
        if severity in severities:
            return severity
    return None
