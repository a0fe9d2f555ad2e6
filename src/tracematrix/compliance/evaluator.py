"""Compliance evaluator: independent checks over a matrix document.

Each ``_check_*`` function inspects the document and appends findings to a
shared :class:`Report`.  Checks never raise and never depend on each other;
a missing optional field is reported, not crashed on.  The only outside
capability is a :class:`FileChecker`, called once per distinct path.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from tracematrix.compliance.rules import (
    DATE_RE,
    DECISION_ID_RE,
    NO_FAKE_TAG,
    PENDING_ELEMENT_ID,
    REQUIRED_STACK_FIELDS,
    REQUIRED_TOP_LEVEL_FIELDS,
    RULE_FILES,
    STUB_NAME_TOKENS,
    USE_CASE_ID_RE,
    VISUAL_ELEMENT_ID_RE,
    RuleCode,
    Severity,
)
from tracematrix.matrix.loader import RULES_DIR
from tracematrix.matrix.model import (
    VALID_DECISION_STATUSES,
    VALID_USE_CASE_STATUSES,
    UseCaseStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from tracematrix.matrix.model import Document

logger = logging.getLogger(__name__)


class FileChecker(Protocol):
    """Existence predicate for project-relative paths."""

    def exists(self, path: str) -> bool: ...


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    """A single classified observation."""

    rule: RuleCode
    severity: Severity
    detail: str


@dataclass
class Report:
    """Findings grouped by severity, each list in the order checks ran."""

    errors: list[Finding] = field(default_factory=list)
    warnings: list[Finding] = field(default_factory=list)
    passes: list[Finding] = field(default_factory=list)

    def error(self, rule: RuleCode, detail: str) -> None:
        self.errors.append(Finding(rule, Severity.ERROR, detail))

    def warn(self, rule: RuleCode, detail: str) -> None:
        self.warnings.append(Finding(rule, Severity.WARNING, detail))

    def passed(self, rule: RuleCode, detail: str) -> None:
        self.passes.append(Finding(rule, Severity.PASS, detail))

    def __iter__(self) -> Iterator[Finding]:
        yield from self.errors
        yield from self.warnings
        yield from self.passes

    @property
    def ok(self) -> bool:
        return not self.errors

    def rule_summary(self) -> dict[RuleCode, dict[Severity, int]]:
        """Per-rule counts of each severity, rules in enum order."""
        counts: Counter[tuple[RuleCode, Severity]] = Counter(
            (f.rule, f.severity) for f in self
        )
        summary: dict[RuleCode, dict[Severity, int]] = {}
        for rule in RuleCode:
            row = {sev: counts[(rule, sev)] for sev in Severity}
            if any(row.values()):
                summary[rule] = row
        return summary


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


def _check_top_level(doc: Document, report: Report) -> None:
    for name in REQUIRED_TOP_LEVEL_FIELDS:
        value = getattr(doc, name)
        if not value:
            report.error(RuleCode.CR_01, f"Matrix top-level field missing: {name}")
        else:
            report.passed(RuleCode.CR_01, f'Top-level field present: {name} = "{value}"')

    if doc.last_updated and not DATE_RE.match(doc.last_updated):
        report.error(
            RuleCode.CR_01,
            f'last_updated is not YYYY-MM-DD format: "{doc.last_updated}"',
        )

    if doc.use_cases is None:
        report.error(RuleCode.CR_01, "Matrix use_cases field is missing or not a list")
    else:
        report.passed(
            RuleCode.CR_01, f"use_cases list present ({len(doc.use_cases)} entries)"
        )


def _check_stack(doc: Document, report: Report) -> None:
    if doc.stack is None:
        report.warn(RuleCode.CR_01, "Stack declaration is missing. Add a stack section.")
        return

    if all(v is None for v in doc.stack.values()):
        report.warn(
            RuleCode.CR_01,
            "Stack declaration is all-null. Initialize stack values during project setup.",
        )
        return

    for name in REQUIRED_STACK_FIELDS:
        value = doc.stack.get(name)
        if value is None:
            report.warn(
                RuleCode.STACK_RULES,
                f'Stack field "{name}" is null. Required for initialized projects.',
            )
        else:
            report.passed(RuleCode.STACK_RULES, f'Stack field declared: {name} = "{value}"')


# ---------------------------------------------------------------------------
# Use case identity
# ---------------------------------------------------------------------------


def _check_use_case_identity(doc: Document, report: Report) -> None:
    positions: dict[str, list[str]] = {}
    located = [
        *((f"use_cases[{i}]", uc) for i, uc in enumerate(doc.active_use_cases)),
        *((f"deprecated[{i}]", uc) for i, uc in enumerate(doc.deprecated)),
    ]

    for where, uc in located:
        if not uc.id:
            report.error(RuleCode.CR_02, f"Use case at {where} has no id field")
            continue
        positions.setdefault(uc.id, []).append(where)

    duplicates = {uc_id: at for uc_id, at in positions.items() if len(at) > 1}
    for uc_id, at in duplicates.items():
        report.error(
            RuleCode.CR_02,
            f'Duplicate use case ID "{uc_id}" ({len(at)} occurrences: {", ".join(at)})',
        )
    if not duplicates:
        report.passed(RuleCode.CR_02, f"All use case IDs unique ({len(located)} total)")

    for _where, uc in located:
        label = uc.id or "<no id>"
        if uc.id and not USE_CASE_ID_RE.match(uc.id):
            report.warn(RuleCode.CR_02, f'Use case ID "{uc.id}" does not follow UC-XXX format')
        if uc.status not in VALID_USE_CASE_STATUSES:
            report.error(RuleCode.CR_02, f'UC {label} has invalid status: "{uc.status}"')
        if not uc.title:
            report.error(RuleCode.CR_02, f"UC {label} is missing title")
        if not uc.value:
            report.error(RuleCode.USE_CASE_FIRST, f"UC {label} is missing value statement")


# ---------------------------------------------------------------------------
# Duplication
# ---------------------------------------------------------------------------


def _check_duplicates(
    doc: Document,
    report: Report,
    *,
    kind: str,
    attr: str,
) -> None:
    """Flag a function attribute seen twice anywhere in the active list."""
    owners: dict[str, str] = {}
    found = False
    for uc in doc.active_use_cases:
        uc_label = uc.id or "<no id>"
        for fn in uc.functions:
            key = getattr(fn, attr)
            if not key:
                continue
            if key not in owners:
                owners[key] = uc_label
                continue
            found = True
            first = owners[key]
            if first == uc_label:
                detail = f'{kind} "{key}" registered twice in {uc_label}'
            else:
                detail = f'{kind} "{key}" in both {first} and {uc_label}'
            report.error(RuleCode.NO_DUPLICATE, detail)
    if not found:
        report.passed(
            RuleCode.NO_DUPLICATE,
            f"No duplicate {kind.lower()}s ({len(owners)} checked)",
        )


def _check_function_duplication(doc: Document, report: Report) -> None:
    _check_duplicates(doc, report, kind="Function", attr="name")


def _check_endpoint_duplication(doc: Document, report: Report) -> None:
    _check_duplicates(doc, report, kind="Endpoint", attr="endpoint")


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------


def _check_implemented_use_cases(doc: Document, report: Report) -> None:
    for uc in doc.active_use_cases:
        if not uc.is_implemented:
            continue
        if not uc.functions:
            report.error(
                RuleCode.CR_03, f'UC {uc.id} is "implemented" but has no functions registered'
            )
            continue

        report.passed(RuleCode.CR_03, f"UC {uc.id} has {len(uc.functions)} function(s) registered")
        for fn in uc.functions:
            if not fn.name:
                report.error(RuleCode.CR_03, f'UC {uc.id}: function record missing "name"')
            if not fn.file:
                report.error(RuleCode.CR_03, f'UC {uc.id}: function "{fn.name}" missing "file"')
            if fn.line is None:
                report.error(RuleCode.CR_03, f'UC {uc.id}: function "{fn.name}" missing "line"')
            if fn.auth_required is None:
                report.warn(
                    RuleCode.CR_03, f'UC {uc.id}: function "{fn.name}" missing "auth_required"'
                )
            if not fn.last_modified:
                report.warn(
                    RuleCode.CR_03, f'UC {uc.id}: function "{fn.name}" missing "last_modified"'
                )


def _check_file_references(doc: Document, report: Report, files: FileChecker) -> None:
    checked: set[str] = set()
    for uc in doc.active_use_cases:
        for fn in uc.functions:
            if not fn.file or fn.file in checked:
                continue
            checked.add(fn.file)
            if files.exists(fn.file):
                report.passed(RuleCode.CR_03, f"File reference verified: {fn.file}")
            else:
                report.error(
                    RuleCode.CR_03,
                    f'UC {uc.id}: function "{fn.name}" references non-existent file: {fn.file}',
                )
    logger.debug("Checked %d distinct file references", len(checked))


def _check_deprecated(doc: Document, report: Report) -> None:
    deprecated = UseCaseStatus.DEPRECATED.value
    for uc in doc.deprecated:
        if uc.status != deprecated:
            report.warn(
                RuleCode.CR_09,
                f'Entry in deprecated list has status "{uc.status}" '
                f'(expected "deprecated"): {uc.id}',
            )
        if not uc.deprecated_date:
            report.error(RuleCode.CR_09, f'Deprecated entry {uc.id} missing "deprecated_date"')
        if not uc.deprecated_reason:
            report.error(RuleCode.CR_09, f'Deprecated entry {uc.id} missing "deprecated_reason"')
        if uc.deprecated_date and uc.deprecated_reason:
            report.passed(
                RuleCode.CR_09, f"Deprecated entry {uc.id} has proper deprecation metadata"
            )

    for uc in doc.active_use_cases:
        if uc.status == deprecated:
            report.warn(
                RuleCode.CR_09,
                f'UC {uc.id} has status "deprecated" but is still in use_cases. '
                "Move it to the deprecated list.",
            )


# ---------------------------------------------------------------------------
# Visual element ids
# ---------------------------------------------------------------------------


def _check_visual_element_ids(doc: Document, report: Report) -> None:
    seen: set[str] = set()
    for uc in doc.active_use_cases:
        vid = uc.visual_element_id
        if vid is None:
            report.passed(
                RuleCode.META_INJECTION,
                f"UC {uc.id}: visual_element_id null (system UC or intentionally unlinked)",
            )
            continue
        if vid == PENDING_ELEMENT_ID:
            report.passed(
                RuleCode.META_INJECTION,
                f"UC {uc.id}: visual_element_id pending (UI not yet designed)",
            )
            continue

        if VISUAL_ELEMENT_ID_RE.match(vid):
            report.passed(RuleCode.META_INJECTION, f'UC {uc.id}: visual_element_id "{vid}" valid')
        else:
            report.warn(
                RuleCode.META_INJECTION,
                f'UC {uc.id}: visual_element_id "{vid}" does not match VE-[Entity]-[Action]',
            )
        if not vid:
            continue
        if vid in seen:
            report.error(
                RuleCode.META_INJECTION, f'Duplicate visual_element_id "{vid}" across use cases'
            )
        seen.add(vid)


# ---------------------------------------------------------------------------
# Stub detection
# ---------------------------------------------------------------------------


def _stub_token(name: str) -> str | None:
    lowered = name.lower()
    return next((t for t in STUB_NAME_TOKENS if t in lowered), None)


def _check_no_fake(doc: Document, report: Report) -> None:
    for uc in doc.active_use_cases:
        if not uc.is_implemented:
            continue
        if NO_FAKE_TAG not in uc.rules_applied:
            report.warn(
                RuleCode.NO_FAKE,
                f'UC {uc.id} is "implemented" but {NO_FAKE_TAG} is not in rules_applied',
            )

        for fn in uc.functions:
            if not fn.line:
                report.warn(
                    RuleCode.NO_FAKE, f'UC {uc.id}: function "{fn.name}" has line 0 or null'
                )
            if fn.endpoint and not fn.db_tables:
                report.warn(
                    RuleCode.NO_FAKE,
                    f'UC {uc.id}: function "{fn.name}" has an endpoint but no db_tables. '
                    "Register the tables it touches or confirm it touches none.",
                )
            if fn.auth_required is None:
                report.error(
                    RuleCode.NO_FAKE,
                    f'UC {uc.id}: function "{fn.name}" has no auth_required value',
                )
            if not fn.name or not fn.name.strip():
                report.error(
                    RuleCode.NO_FAKE,
                    f"UC {uc.id}: function record with empty name - stub detected",
                )
                continue
            token = _stub_token(fn.name)
            if token is not None:
                report.error(
                    RuleCode.NO_FAKE,
                    f'UC {uc.id}: function name "{fn.name}" suggests a stub ("{token}")',
                )

        if uc.functions:
            report.passed(
                RuleCode.NO_FAKE, f"UC {uc.id}: implemented with {len(uc.functions)} function(s)"
            )


# ---------------------------------------------------------------------------
# Architecture decisions
# ---------------------------------------------------------------------------


def _check_decisions(doc: Document, report: Report) -> None:
    for adr in doc.adrs:
        label = adr.id or "unknown"
        if not adr.id or not DECISION_ID_RE.match(adr.id):
            report.warn(
                RuleCode.CR_06, f"ADR missing or invalid id (expected ADR-XXX): {adr.id!r}"
            )
        if not adr.decision:
            report.error(RuleCode.CR_06, f'ADR {label} missing "decision"')
        if not adr.context:
            report.error(RuleCode.CR_06, f'ADR {label} missing "context"')
        if adr.status not in VALID_DECISION_STATUSES:
            report.warn(RuleCode.CR_06, f'ADR {label} has invalid status "{adr.status}"')
        if not adr.alternatives_considered:
            report.warn(RuleCode.CR_06, f"ADR {label} has no alternatives_considered")
        if adr.id and adr.decision and adr.context:
            report.passed(RuleCode.CR_06, f"ADR {adr.id} is well-formed")


# ---------------------------------------------------------------------------
# Rule documents
# ---------------------------------------------------------------------------


def _check_rule_documents(report: Report, files: FileChecker, rules_dir: str) -> None:
    for name in RULE_FILES:
        rel = f"{rules_dir}/{name}"
        if files.exists(rel):
            report.passed(RuleCode.CR_07, f"Rule file present: {rel}")
        else:
            report.error(RuleCode.CR_07, f"Required rule file missing: {rel}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def evaluate(
    document: Document,
    files: FileChecker,
    *,
    rules_dir: str = RULES_DIR,
    report: Report | None = None,
) -> Report:
    """Run every compliance check over *document*.

    Parameters
    ----------
    document:
        A loaded matrix.
    files:
        Existence predicate for project-relative paths.  Must not raise.
    rules_dir:
        Directory (relative to the project root) holding the rule documents.
    report:
        Optional report to append to, e.g. one already holding the caller's
        "document loaded" pass.

    Returns
    -------
    Report
        Every finding from every check; evaluation never stops early.
    """
    report = report if report is not None else Report()

    _check_top_level(document, report)
    _check_stack(document, report)
    _check_use_case_identity(document, report)
    _check_function_duplication(document, report)
    _check_endpoint_duplication(document, report)
    _check_implemented_use_cases(document, report)
    _check_deprecated(document, report)
    _check_visual_element_ids(document, report)
    _check_no_fake(document, report)
    _check_decisions(document, report)
    _check_file_references(document, report, files)
    _check_rule_documents(report, files, rules_dir)

    logger.debug(
        "Evaluated matrix: %d errors, %d warnings, %d passes",
        len(report.errors),
        len(report.warnings),
        len(report.passes),
    )
    return report
