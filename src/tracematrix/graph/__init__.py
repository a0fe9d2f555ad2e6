"""Graph domain: violation classification for tables, endpoints, functions."""

from tracematrix.graph.violations import (
    Violation,
    ViolationCode,
    ViolationSeverity,
    classify,
    findings_for_entity,
    worst_severity,
)

__all__ = [
    "Violation",
    "ViolationCode",
    "ViolationSeverity",
    "classify",
    "findings_for_entity",
    "worst_severity",
]
