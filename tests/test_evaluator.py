"""Tests for tracematrix.compliance.evaluator: the compliance checks."""

from __future__ import annotations

from typing import Any

import pytest

from tracematrix.compliance.evaluator import Report, evaluate
from tracematrix.compliance.rules import RULE_FILES, RuleCode
from tracematrix.matrix.model import Document

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeFiles:
    """File checker backed by a set of paths; records every call."""

    def __init__(self, present: set[str] | None = None) -> None:
        self.present = present if present is not None else {"src/orders.ts"}
        self.present |= {f"rules/{name}" for name in RULE_FILES}
        self.calls: list[str] = []

    def exists(self, path: str) -> bool:
        self.calls.append(path)
        return path in self.present


def _evaluate(data: dict[str, Any], files: FakeFiles | None = None) -> Report:
    return evaluate(Document.from_dict(data), files or FakeFiles())


def _details(findings: list[Any], rule: RuleCode) -> list[str]:
    return [f.detail for f in findings if f.rule is rule]


def _function(**overrides: Any) -> dict[str, Any]:
    fn: dict[str, Any] = {
        "name": "listOrders",
        "file": "src/orders.ts",
        "line": 40,
        "endpoint": "GET /orders",
        "db_tables": ["orders"],
        "auth_required": True,
        "last_modified": "2026-01-10",
    }
    fn.update(overrides)
    return fn


# ---------------------------------------------------------------------------
# Clean document
# ---------------------------------------------------------------------------


class TestCleanDocument:
    def test_no_errors_or_warnings(self, matrix_data: dict[str, Any]) -> None:
        report = _evaluate(matrix_data)
        assert report.errors == []
        assert report.warnings == []
        assert report.ok

    def test_every_rule_reports_a_pass(self, matrix_data: dict[str, Any]) -> None:
        report = _evaluate(matrix_data)
        rules = {f.rule for f in report.passes}
        for rule in (
            RuleCode.CR_01,
            RuleCode.CR_02,
            RuleCode.CR_03,
            RuleCode.CR_06,
            RuleCode.CR_07,
            RuleCode.CR_09,
            RuleCode.NO_DUPLICATE,
            RuleCode.NO_FAKE,
            RuleCode.META_INJECTION,
            RuleCode.STACK_RULES,
        ):
            assert rule in rules

    def test_rule_summary_counts(self, matrix_data: dict[str, Any]) -> None:
        report = _evaluate(matrix_data)
        summary = report.rule_summary()
        assert RuleCode.USE_CASE_FIRST not in summary
        cr07 = summary[RuleCode.CR_07]
        assert [cr07[s] for s in cr07] == [0, 0, len(RULE_FILES)]


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


class TestStructure:
    def test_missing_top_level_field(self, matrix_data: dict[str, Any]) -> None:
        del matrix_data["author"]
        report = _evaluate(matrix_data)
        assert "Matrix top-level field missing: author" in _details(report.errors, RuleCode.CR_01)

    def test_bad_date_format(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["last_updated"] = "15.01.2026"
        report = _evaluate(matrix_data)
        errors = _details(report.errors, RuleCode.CR_01)
        assert errors == ['last_updated is not YYYY-MM-DD format: "15.01.2026"']

    def test_use_cases_not_a_list(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"] = {"UC-001": "oops"}
        report = _evaluate(matrix_data)
        assert "Matrix use_cases field is missing or not a list" in _details(
            report.errors, RuleCode.CR_01
        )
        # Downstream checks still run against the remaining document.
        assert _details(report.passes, RuleCode.CR_07)

    def test_missing_use_cases_does_not_raise(self) -> None:
        report = _evaluate({})
        assert report.errors
        assert any("use_cases" in d for d in _details(report.errors, RuleCode.CR_01))


class TestStack:
    def test_all_null_warns_once(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["stack"] = {name: None for name in matrix_data["stack"]}
        report = _evaluate(matrix_data)
        stack_warnings = [
            f for f in report.warnings if f.rule in {RuleCode.CR_01, RuleCode.STACK_RULES}
        ]
        assert len(stack_warnings) == 1
        assert "all-null" in stack_warnings[0].detail
        assert not _details(report.passes, RuleCode.STACK_RULES)

    def test_partial_null_warns_per_field(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["stack"]["auth"] = None
        matrix_data["stack"]["testing"] = None
        matrix_data["stack"]["orm"] = None  # optional field, not reported
        report = _evaluate(matrix_data)
        warnings = _details(report.warnings, RuleCode.STACK_RULES)
        assert len(warnings) == 2
        assert any('"auth"' in w for w in warnings)
        assert any('"testing"' in w for w in warnings)
        assert len(_details(report.passes, RuleCode.STACK_RULES)) == 8

    def test_missing_stack_warns(self, matrix_data: dict[str, Any]) -> None:
        del matrix_data["stack"]
        report = _evaluate(matrix_data)
        assert any("Stack declaration is missing" in w for w in _details(
            report.warnings, RuleCode.CR_01
        ))


# ---------------------------------------------------------------------------
# Use case identity
# ---------------------------------------------------------------------------


class TestUseCaseIdentity:
    def test_duplicate_ids_reported_once_per_id(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"].append(
            {"id": "UC-002", "title": "Again", "value": "v", "status": "planned"}
        )
        matrix_data["deprecated"][0]["id"] = "UC-001"
        report = _evaluate(matrix_data)
        duplicates = [d for d in _details(report.errors, RuleCode.CR_02) if "Duplicate" in d]
        assert len(duplicates) == 2
        uc1 = next(d for d in duplicates if '"UC-001"' in d)
        uc2 = next(d for d in duplicates if '"UC-002"' in d)
        assert "use_cases[0]" in uc1
        assert "deprecated[0]" in uc1
        assert "use_cases[1]" in uc2
        assert "use_cases[2]" in uc2
        assert not any("All use case IDs unique" in p for p in _details(
            report.passes, RuleCode.CR_02
        ))

    def test_triplicate_id_is_one_error(self, matrix_data: dict[str, Any]) -> None:
        for _ in range(2):
            matrix_data["use_cases"].append(
                {"id": "UC-002", "title": "t", "value": "v", "status": "planned"}
            )
        report = _evaluate(matrix_data)
        duplicates = [d for d in _details(report.errors, RuleCode.CR_02) if "Duplicate" in d]
        assert len(duplicates) == 1
        assert "3 occurrences" in duplicates[0]

    def test_bad_id_format_warns(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["id"] = "usecase-2"
        report = _evaluate(matrix_data)
        assert _details(report.warnings, RuleCode.CR_02) == [
            'Use case ID "usecase-2" does not follow UC-XXX format'
        ]

    def test_invalid_status_is_error(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["status"] = "done"
        report = _evaluate(matrix_data)
        assert 'UC UC-002 has invalid status: "done"' in _details(report.errors, RuleCode.CR_02)

    def test_missing_title_and_value(self, matrix_data: dict[str, Any]) -> None:
        del matrix_data["use_cases"][1]["title"]
        del matrix_data["use_cases"][1]["value"]
        report = _evaluate(matrix_data)
        assert "UC UC-002 is missing title" in _details(report.errors, RuleCode.CR_02)
        assert _details(report.errors, RuleCode.USE_CASE_FIRST) == [
            "UC UC-002 is missing value statement"
        ]

    def test_missing_id(self, matrix_data: dict[str, Any]) -> None:
        del matrix_data["use_cases"][1]["id"]
        report = _evaluate(matrix_data)
        assert "Use case at use_cases[1] has no id field" in _details(
            report.errors, RuleCode.CR_02
        )


# ---------------------------------------------------------------------------
# Duplication
# ---------------------------------------------------------------------------


class TestDuplication:
    def test_function_in_two_use_cases(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["functions"] = [_function(name="createOrder")]
        report = _evaluate(matrix_data)
        errors = _details(report.errors, RuleCode.NO_DUPLICATE)
        assert 'Function "createOrder" in both UC-001 and UC-002' in errors

    def test_function_twice_in_same_use_case(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"].append(
            _function(name="createOrder", endpoint="PUT /orders")
        )
        report = _evaluate(matrix_data)
        errors = _details(report.errors, RuleCode.NO_DUPLICATE)
        assert errors == ['Function "createOrder" registered twice in UC-001']

    def test_endpoint_in_two_use_cases(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["functions"] = [_function(endpoint="POST /orders")]
        report = _evaluate(matrix_data)
        errors = _details(report.errors, RuleCode.NO_DUPLICATE)
        assert errors == ['Endpoint "POST /orders" in both UC-001 and UC-002']

    def test_no_duplicates_passes_for_both_kinds(self, matrix_data: dict[str, Any]) -> None:
        report = _evaluate(matrix_data)
        passes = _details(report.passes, RuleCode.NO_DUPLICATE)
        assert "No duplicate functions (1 checked)" in passes
        assert "No duplicate endpoints (1 checked)" in passes

    def test_deprecated_records_are_not_compared(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["deprecated"][0]["functions"] = [_function(name="createOrder")]
        report = _evaluate(matrix_data)
        assert not _details(report.errors, RuleCode.NO_DUPLICATE)


# ---------------------------------------------------------------------------
# Implemented use cases and file references
# ---------------------------------------------------------------------------


class TestImplementedUseCases:
    def test_empty_function_list_is_error_without_pass(
        self, matrix_data: dict[str, Any]
    ) -> None:
        matrix_data["use_cases"][0]["functions"] = []
        report = _evaluate(matrix_data)
        assert _details(report.errors, RuleCode.CR_03) == [
            'UC UC-001 is "implemented" but has no functions registered'
        ]
        assert not any("UC-001" in p for p in _details(report.passes, RuleCode.CR_03))

    def test_missing_required_function_fields(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"] = [{"name": "createOrder"}]
        report = _evaluate(matrix_data)
        errors = _details(report.errors, RuleCode.CR_03)
        assert 'UC UC-001: function "createOrder" missing "file"' in errors
        assert 'UC UC-001: function "createOrder" missing "line"' in errors
        warnings = _details(report.warnings, RuleCode.CR_03)
        assert 'UC UC-001: function "createOrder" missing "auth_required"' in warnings
        assert 'UC UC-001: function "createOrder" missing "last_modified"' in warnings

    def test_missing_file_is_error(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"][0]["file"] = "src/gone.ts"
        report = _evaluate(matrix_data)
        assert _details(report.errors, RuleCode.CR_03) == [
            'UC UC-001: function "createOrder" references non-existent file: src/gone.ts'
        ]

    def test_file_checked_once_per_path(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"].append(_function())
        matrix_data["use_cases"][1]["functions"] = [
            _function(name="cancelOrder", endpoint="DELETE /orders/:id")
        ]
        files = FakeFiles()
        _evaluate(matrix_data, files)
        assert files.calls.count("src/orders.ts") == 1

    def test_planned_use_case_files_are_checked(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["functions"] = [
            _function(name="cancelOrder", file="src/cancel.ts", endpoint="DELETE /orders/:id")
        ]
        files = FakeFiles()
        report = _evaluate(matrix_data, files)
        assert "src/cancel.ts" in files.calls
        assert any("src/cancel.ts" in e for e in _details(report.errors, RuleCode.CR_03))


# ---------------------------------------------------------------------------
# Deprecation
# ---------------------------------------------------------------------------


class TestDeprecated:
    def test_missing_deprecation_fields(self, matrix_data: dict[str, Any]) -> None:
        del matrix_data["deprecated"][0]["deprecated_date"]
        del matrix_data["deprecated"][0]["deprecated_reason"]
        report = _evaluate(matrix_data)
        assert _details(report.errors, RuleCode.CR_09) == [
            'Deprecated entry UC-000 missing "deprecated_date"',
            'Deprecated entry UC-000 missing "deprecated_reason"',
        ]
        assert not _details(report.passes, RuleCode.CR_09)

    def test_status_mismatch_is_warning(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["deprecated"][0]["status"] = "implemented"
        report = _evaluate(matrix_data)
        assert not _details(report.errors, RuleCode.CR_09)
        warnings = _details(report.warnings, RuleCode.CR_09)
        assert len(warnings) == 1
        assert '"implemented"' in warnings[0]

    def test_deprecated_status_in_active_list(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["status"] = "deprecated"
        report = _evaluate(matrix_data)
        warnings = _details(report.warnings, RuleCode.CR_09)
        assert len(warnings) == 1
        assert "Move it to the deprecated list" in warnings[0]


# ---------------------------------------------------------------------------
# Visual element ids
# ---------------------------------------------------------------------------


class TestVisualElementIds:
    @pytest.mark.parametrize("value", [None, "pending"])
    def test_null_and_pending_pass(self, matrix_data: dict[str, Any], value: Any) -> None:
        matrix_data["use_cases"][0]["visual_element_id"] = value
        report = _evaluate(matrix_data)
        assert not _details(report.warnings, RuleCode.META_INJECTION)
        assert not _details(report.errors, RuleCode.META_INJECTION)
        assert any("UC-001" in p for p in _details(report.passes, RuleCode.META_INJECTION))

    @pytest.mark.parametrize("value", ["VE-order-create", "Order-Create", "VE-Order", "VE-Order-"])
    def test_bad_pattern_warns(self, matrix_data: dict[str, Any], value: str) -> None:
        matrix_data["use_cases"][0]["visual_element_id"] = value
        report = _evaluate(matrix_data)
        assert len(_details(report.warnings, RuleCode.META_INJECTION)) == 1

    def test_duplicate_is_error(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["visual_element_id"] = "VE-Order-Create"
        report = _evaluate(matrix_data)
        assert _details(report.errors, RuleCode.META_INJECTION) == [
            'Duplicate visual_element_id "VE-Order-Create" across use cases'
        ]

    def test_duplicate_pending_is_fine(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["visual_element_id"] = "pending"
        report = _evaluate(matrix_data)
        assert not _details(report.errors, RuleCode.META_INJECTION)

    def test_repeated_empty_id_is_not_a_duplicate(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["visual_element_id"] = ""
        matrix_data["use_cases"][1]["visual_element_id"] = ""
        report = _evaluate(matrix_data)
        assert not _details(report.errors, RuleCode.META_INJECTION)
        assert len(_details(report.warnings, RuleCode.META_INJECTION)) == 2


# ---------------------------------------------------------------------------
# Stub detection
# ---------------------------------------------------------------------------


class TestNoFake:
    def test_stub_name_is_error(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"][0]["name"] = "todoHandler"
        report = _evaluate(matrix_data)
        errors = _details(report.errors, RuleCode.NO_FAKE)
        assert len(errors) == 1
        assert "todoHandler" in errors[0]

    @pytest.mark.parametrize("name", ["PlaceholderView", "createStub", "TODO_later"])
    def test_stub_tokens_are_case_insensitive(
        self, matrix_data: dict[str, Any], name: str
    ) -> None:
        matrix_data["use_cases"][0]["functions"][0]["name"] = name
        report = _evaluate(matrix_data)
        assert any(name in e for e in _details(report.errors, RuleCode.NO_FAKE))

    def test_empty_name_is_error(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"][0]["name"] = "  "
        report = _evaluate(matrix_data)
        assert any("empty name" in e for e in _details(report.errors, RuleCode.NO_FAKE))

    def test_null_auth_required_is_error(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"][0]["auth_required"] = None
        report = _evaluate(matrix_data)
        assert _details(report.errors, RuleCode.NO_FAKE) == [
            'UC UC-001: function "createOrder" has no auth_required value'
        ]

    def test_zero_line_warns(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"][0]["line"] = 0
        report = _evaluate(matrix_data)
        assert _details(report.warnings, RuleCode.NO_FAKE) == [
            'UC UC-001: function "createOrder" has line 0 or null'
        ]

    def test_missing_tag_warns(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["rules_applied"] = ["NO_DUPLICATE"]
        report = _evaluate(matrix_data)
        warnings = _details(report.warnings, RuleCode.NO_FAKE)
        assert warnings == ['UC UC-001 is "implemented" but NO_FAKE is not in rules_applied']

    def test_endpoint_without_tables_warns(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][0]["functions"][0]["db_tables"] = []
        report = _evaluate(matrix_data)
        warnings = _details(report.warnings, RuleCode.NO_FAKE)
        assert len(warnings) == 1
        assert "no db_tables" in warnings[0]

    def test_planned_use_cases_are_skipped(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["use_cases"][1]["functions"] = [
            _function(name="stubCancel", endpoint="DELETE /orders/:id", auth_required=None)
        ]
        report = _evaluate(matrix_data)
        assert not _details(report.errors, RuleCode.NO_FAKE)


# ---------------------------------------------------------------------------
# Architecture decisions
# ---------------------------------------------------------------------------


class TestDecisions:
    def test_well_formed_passes(self, matrix_data: dict[str, Any]) -> None:
        report = _evaluate(matrix_data)
        assert _details(report.passes, RuleCode.CR_06) == ["ADR ADR-001 is well-formed"]

    def test_problems(self, matrix_data: dict[str, Any]) -> None:
        matrix_data["adrs"] = [
            {"id": "decision-1", "status": "maybe", "alternatives_considered": []}
        ]
        report = _evaluate(matrix_data)
        assert _details(report.errors, RuleCode.CR_06) == [
            'ADR decision-1 missing "decision"',
            'ADR decision-1 missing "context"',
        ]
        warnings = _details(report.warnings, RuleCode.CR_06)
        assert len(warnings) == 3
        assert not _details(report.passes, RuleCode.CR_06)


# ---------------------------------------------------------------------------
# Rule documents
# ---------------------------------------------------------------------------


class TestRuleDocuments:
    def test_one_finding_per_file(self, matrix_data: dict[str, Any]) -> None:
        files = FakeFiles()
        files.present.discard("rules/NO_FAKE.md")
        report = _evaluate(matrix_data, files)
        assert _details(report.errors, RuleCode.CR_07) == [
            "Required rule file missing: rules/NO_FAKE.md"
        ]
        assert len(_details(report.passes, RuleCode.CR_07)) == len(RULE_FILES) - 1

    def test_custom_rules_dir(self, matrix_data: dict[str, Any]) -> None:
        files = FakeFiles()
        report = evaluate(Document.from_dict(matrix_data), files, rules_dir="docs/rules")
        assert len(_details(report.errors, RuleCode.CR_07)) == len(RULE_FILES)
        assert "docs/rules/CORE_RULES.md" in files.calls


class TestReport:
    def test_appends_to_given_report(self, matrix_data: dict[str, Any]) -> None:
        report = Report()
        report.passed(RuleCode.CR_01, "loaded")
        result = evaluate(Document.from_dict(matrix_data), FakeFiles(), report=report)
        assert result is report
        assert report.passes[0].detail == "loaded"

    def test_iteration_order(self) -> None:
        report = Report()
        report.passed(RuleCode.CR_01, "p")
        report.warn(RuleCode.CR_02, "w")
        report.error(RuleCode.CR_03, "e")
        assert [f.detail for f in report] == ["e", "w", "p"]
