"""Compliance orchestrator: load the matrix, evaluate, format results."""

from __future__ import annotations

import datetime
import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tracematrix.compliance.evaluator import Finding, Report, evaluate
from tracematrix.compliance.rules import RuleCode, Severity
from tracematrix.infrastructure.config import ProjectConfig, load_config
from tracematrix.infrastructure.files import ProjectFileChecker
from tracematrix.matrix.loader import MatrixLoadError, load_matrix

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class ComplianceResult:
    """Result of a compliance run."""

    report: Report = field(default_factory=Report)
    project_root: str = ""
    ran_at: str = ""
    matrix_loaded: bool = False
    files_checked: int = 0
    elapsed_ms: float = 0.0

    def failed(self, *, strict: bool = False) -> bool:
        """True when errors exist, or any warning exists under *strict*."""
        if strict:
            return bool(self.report.errors or self.report.warnings)
        return bool(self.report.errors)

    def to_dict(self) -> dict[str, object]:
        report = self.report

        def _items(items: list[Finding]) -> list[dict[str, str]]:
            return [{"rule": f.rule.value, "detail": f.detail} for f in items]

        return {
            "errors": _items(report.errors),
            "warnings": _items(report.warnings),
            "passes": _items(report.passes),
            "summary": {
                "project_root": self.project_root,
                "ran_at": self.ran_at,
                "errors_count": len(report.errors),
                "warnings_count": len(report.warnings),
                "passes_count": len(report.passes),
                "files_checked": self.files_checked,
                "elapsed_ms": self.elapsed_ms,
            },
        }


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run_compliance(
    project_root: Path,
    *,
    config: ProjectConfig | None = None,
) -> ComplianceResult:
    """Load the project's matrix and run every compliance check.

    A matrix that cannot be loaded is reported as a single CR-01 error and
    no other check runs.
    """
    start = time.monotonic()
    config = config or load_config(project_root)
    result = ComplianceResult(
        project_root=str(project_root),
        ran_at=datetime.datetime.now(tz=datetime.timezone.utc).isoformat(timespec="seconds"),
    )

    try:
        document = load_matrix(project_root / config.matrix_path)
    except MatrixLoadError as exc:
        logger.info("Matrix could not be loaded: %s", exc)
        result.report.error(RuleCode.CR_01, str(exc))
        result.elapsed_ms = (time.monotonic() - start) * 1000
        return result

    result.matrix_loaded = True
    result.report.passed(RuleCode.CR_01, "Matrix file exists and is parseable")

    files = ProjectFileChecker(project_root)
    evaluate(document, files, rules_dir=config.rules_dir, report=result.report)

    result.files_checked = files.calls
    result.elapsed_ms = (time.monotonic() - start) * 1000
    return result


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_ICONS = {
    Severity.ERROR: "[red]✗[/]",
    Severity.WARNING: "[yellow]⚠[/]",
    Severity.PASS: "[green]✓[/]",
}


def render_report(
    result: ComplianceResult,
    console: Console,
    *,
    show_passes: bool = False,
    strict: bool = False,
) -> None:
    """Render a compliance result with Rich.

    Errors and warnings are always listed; passing checks only with
    *show_passes*.  A per-rule summary table closes the output.
    """
    from rich.markup import escape
    from rich.panel import Panel
    from rich.table import Table

    report = result.report
    sections = [
        ("Errors", report.errors, Severity.ERROR),
        ("Warnings", report.warnings, Severity.WARNING),
    ]
    if show_passes:
        sections.append(("Passing checks", report.passes, Severity.PASS))

    for title, items, severity in sections:
        if not items:
            continue
        console.print(f"[bold]{title} ({len(items)})[/]")
        for item in items:
            console.print(f"  {_ICONS[severity]} [dim]\\[{item.rule}][/] {escape(item.detail)}")
        console.print()

    if not show_passes:
        console.print(f"[dim]Passing checks: {len(report.passes)} (use --show-passes to list)[/]")
        console.print()

    summary = Table(title="Compliance Summary", box=None, padding=(0, 1))
    summary.add_column("", width=1)
    summary.add_column("rule", style="cyan")
    summary.add_column("pass", justify="right")
    summary.add_column("warn", justify="right")
    summary.add_column("error", justify="right")
    for rule, counts in report.rule_summary().items():
        if counts[Severity.ERROR]:
            icon = _ICONS[Severity.ERROR]
        elif counts[Severity.WARNING]:
            icon = _ICONS[Severity.WARNING]
        else:
            icon = _ICONS[Severity.PASS]
        summary.add_row(
            icon,
            rule.value,
            str(counts[Severity.PASS]),
            str(counts[Severity.WARNING]),
            str(counts[Severity.ERROR]),
        )
    console.print(summary)
    console.print()

    n_err, n_warn = len(report.errors), len(report.warnings)
    if result.failed(strict=strict):
        mode = " (strict: warnings count as errors)" if strict else ""
        console.print(
            Panel(
                f"Validation FAILED - {n_err} error(s), {n_warn} warning(s){mode}",
                border_style="red",
            )
        )
    else:
        console.print(
            Panel(
                f"Validation PASSED - {len(report.passes)} check(s) passed, "
                f"{n_warn} warning(s)",
                border_style="green",
            )
        )


def format_json(result: ComplianceResult) -> str:
    """Format a compliance result as structured JSON.

    Returns a JSON string with ``errors``, ``warnings`` and ``passes``
    arrays and a ``summary`` object.
    """
    return json.dumps(result.to_dict(), ensure_ascii=False, indent=2)


def format_porcelain(result: ComplianceResult) -> str:
    """One ``severity:rule:detail`` line per error and warning.

    Passing checks are omitted.  Returns an empty string for a clean report.
    """
    report = result.report
    lines = [
        f"{f.severity.value}:{f.rule.value}:{f.detail}"
        for f in (*report.errors, *report.warnings)
    ]
    return "\n".join(lines)
