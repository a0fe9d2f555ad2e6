"""Compliance domain: rule codes, evaluator, runner, formatters."""

from tracematrix.compliance.evaluator import FileChecker, Finding, Report, evaluate
from tracematrix.compliance.rules import RULE_FILES, RuleCode, Severity
from tracematrix.compliance.runner import (
    ComplianceResult,
    format_json,
    format_porcelain,
    render_report,
    run_compliance,
)

__all__ = [
    "RULE_FILES",
    "ComplianceResult",
    "FileChecker",
    "Finding",
    "Report",
    "RuleCode",
    "Severity",
    "evaluate",
    "format_json",
    "format_porcelain",
    "render_report",
    "run_compliance",
]
