"""tracematrix CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from tracematrix import __version__

if TYPE_CHECKING:
    from tracematrix.infrastructure.config import ProjectConfig
    from tracematrix.matrix.model import Document

_PROJECT_OPTION = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="tracematrix")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """tracematrix - keep a project's traceability matrix honest."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose=verbose, quiet=quiet)


def _load_document(project_root: Path) -> tuple[ProjectConfig, Document]:
    """Load the project's matrix or exit 2 with the load error."""
    from tracematrix.infrastructure.config import load_config
    from tracematrix.matrix.loader import MatrixLoadError, load_matrix

    config = load_config(project_root)
    try:
        return config, load_matrix(project_root / config.matrix_path)
    except MatrixLoadError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
@click.option("--show-passes", is_flag=True, default=False, help="List passing checks too.")
@_PROJECT_OPTION
def check(
    *,
    fmt: str | None,
    strict: bool,
    show_passes: bool,
    project: Path | None,
) -> None:
    """Run every compliance rule against the matrix.

    Exit codes: 0 = clean, 1 = errors found (or warnings with --strict).
    A matrix that cannot be loaded is reported as an error finding.
    """
    from tracematrix.compliance.runner import (
        format_json,
        format_porcelain,
        render_report,
        run_compliance,
    )
    from tracematrix.infrastructure.config import load_config

    project_root = project or Path.cwd()
    config = load_config(project_root)
    strict = strict or config.strict

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    result = run_compliance(project_root, config=config)

    if fmt == "rich":
        from rich.console import Console

        render_report(result, Console(), show_passes=show_passes, strict=strict)
    else:
        output = format_json(result) if fmt == "json" else format_porcelain(result)
        if output:
            click.echo(output)

    if result.failed(strict=strict):
        sys.exit(1)


# ---------------------------------------------------------------------------
# violations
# ---------------------------------------------------------------------------

_SEVERITY_STYLES = {"critical": "red", "warning": "yellow", "info": "blue"}


@main.command()
@click.option("--entity", "entity_id", default=None, help="Only show findings for this id.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@_PROJECT_OPTION
def violations(*, entity_id: str | None, as_json: bool, project: Path | None) -> None:
    """Show data-table risks and ghost endpoints/functions."""
    from tracematrix.services.mcp_server import handle_detect_violations

    project_root = project or Path.cwd()
    _config, document = _load_document(project_root)
    data = handle_detect_violations(document, entity_id=entity_id)

    if as_json:
        click.echo(json.dumps(data, ensure_ascii=False, indent=2))
        return

    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    console = Console()
    found = data["violations"]
    if entity_id is not None:
        worst = data["worst_severity"] or "none"
        style = _SEVERITY_STYLES.get(worst, "green")
        console.print(f"[bold]{escape(entity_id)}[/]: worst severity [{style}]{worst}[/]")

    if not found:
        console.print("[green]No violations found.[/]")
        return

    table = Table(title="Violations", show_lines=False)
    table.add_column("severity")
    table.add_column("code", style="cyan")
    table.add_column("entity")
    table.add_column("message")
    for v in found:
        style = _SEVERITY_STYLES[v["severity"]]
        table.add_row(
            f"[{style}]{v['severity']}[/]",
            v["code"],
            escape(v["entity_id"]),
            escape(v["message"]),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# inject
# ---------------------------------------------------------------------------


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("element")
@click.option("--use-case", "use_case_id", required=True, help="Use case id, e.g. UC-001.")
@click.option("--function", "function_name", required=True, help="Function name in the matrix.")
@click.option("--element-id", default=None, help="Visual element id (default: use case's own).")
@click.option("--dry-run", is_flag=True, help="Show the result without writing the file.")
@_PROJECT_OPTION
def inject(
    *,
    file: Path,
    element: str,
    use_case_id: str,
    function_name: str,
    element_id: str | None,
    dry_run: bool,
    project: Path | None,
) -> None:
    """Annotate ELEMENT in FILE with its use-case metadata."""
    from tracematrix.injector.meta import build_payload, inject_file

    project_root = project or Path.cwd()
    config, document = _load_document(project_root)

    try:
        payload = build_payload(
            document,
            use_case_id,
            function_name,
            visual_element_id=element_id,
        )
    except LookupError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    result = inject_file(
        file,
        element,
        payload,
        attribute=config.meta_attribute,
        dry_run=dry_run,
    )
    if not result.success:
        click.echo(f"Error: {result.reason}", err=True)
        sys.exit(1)

    if not result.changed:
        click.echo(f"{file}:{result.line_number}: annotation already up to date")
    elif dry_run:
        click.echo(f"{file}:{result.line_number}: would annotate <{element}> (dry run)")
        if result.new_text is not None and result.line_number is not None:
            click.echo(result.new_text.split("\n")[result.line_number - 1])
    else:
        action = "replaced" if result.had_prior_annotation else "created"
        click.echo(f"{file}:{result.line_number}: annotation {action}")


# ---------------------------------------------------------------------------
# endpoint
# ---------------------------------------------------------------------------


@main.command()
@click.argument("method")
@click.argument("path")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@_PROJECT_OPTION
def endpoint(*, method: str, path: str, as_json: bool, project: Path | None) -> None:
    """Find which function and use case serve METHOD PATH."""
    from tracematrix.services.mcp_server import handle_query_endpoint

    project_root = project or Path.cwd()
    _config, document = _load_document(project_root)

    try:
        data = handle_query_endpoint(document, method=method, path=path)
    except LookupError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(data, ensure_ascii=False, indent=2))
        return

    location = data["file"] or "?"
    if data["line"]:
        location = f"{location}:{data['line']}"
    click.echo(f"{data['endpoint']} -> {data['function']} ({data['use_case_id']}) {location}")


# ---------------------------------------------------------------------------
# add-use-case
# ---------------------------------------------------------------------------


@main.command("add-use-case")
@click.option("--title", required=True, help="Short use case title.")
@click.option("--value", required=True, help="Business value statement.")
@click.option("--actor", default=None, help="Who performs the use case.")
@click.option(
    "--status",
    type=click.Choice(["planned", "in_progress", "implemented"]),
    default="planned",
    show_default=True,
)
@_PROJECT_OPTION
def add_use_case(
    *,
    title: str,
    value: str,
    actor: str | None,
    status: str,
    project: Path | None,
) -> None:
    """Register a new use case with the next free id."""
    from tracematrix.matrix.loader import register_use_case, save_matrix
    from tracematrix.matrix.model import UseCase

    project_root = project or Path.cwd()
    config, document = _load_document(project_root)

    use_case = register_use_case(
        document,
        UseCase(title=title, value=value, actor=actor, status=status),
    )
    save_matrix(project_root / config.matrix_path, document)
    click.echo(f"Registered {use_case.id}: {title}")


# ---------------------------------------------------------------------------
# mcp-serve
# ---------------------------------------------------------------------------


@main.command("mcp-serve")
@_PROJECT_OPTION
def mcp_serve(*, project: Path | None) -> None:
    """Run the tracematrix MCP server (stdio transport)."""
    import anyio

    from tracematrix.services.mcp_server import create_server

    project_root = project or Path.cwd()
    _load_document(project_root)

    server = create_server(project_root)

    async def _run() -> None:
        from mcp import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    anyio.run(_run)
