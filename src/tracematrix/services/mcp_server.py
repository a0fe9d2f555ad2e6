"""MCP server: stdio-based tool server exposing compliance and annotation tools."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import mcp
from mcp.server import Server
from mcp.types import TextContent

from tracematrix import __version__
from tracematrix.compliance.runner import run_compliance
from tracematrix.graph.violations import (
    ViolationSeverity,
    classify,
    findings_for_entity,
    worst_severity,
)
from tracematrix.infrastructure.config import ProjectConfig, load_config
from tracematrix.injector.meta import build_payload, inject_file
from tracematrix.matrix.loader import MatrixLoadError, find_endpoint, load_matrix

if TYPE_CHECKING:
    from pathlib import Path

    from tracematrix.matrix.model import Document

logger = logging.getLogger(__name__)


# --- Tool handler functions (sync, testable without transport) ---


def handle_check_compliance(
    project_root: Path,
    *,
    config: ProjectConfig | None = None,
) -> dict[str, Any]:
    """Run every compliance check and return the report as a dict."""
    result = run_compliance(project_root, config=config)
    data = result.to_dict()
    data["passed"] = not result.failed(strict=(config or ProjectConfig()).strict)
    return data


def handle_detect_violations(
    document: Document,
    *,
    entity_id: str | None = None,
) -> dict[str, Any]:
    """Classify graph risks, optionally narrowed to one entity."""
    violations = classify(document)
    if entity_id is not None:
        violations = findings_for_entity(violations, entity_id)
        worst = worst_severity(violations)
        return {
            "entity_id": entity_id,
            "worst_severity": worst.value if worst is not None else None,
            "violations": [v.to_dict() for v in violations],
        }

    counts = {severity.value: 0 for severity in ViolationSeverity}
    for v in violations:
        counts[v.severity.value] += 1
    return {
        "violations": [v.to_dict() for v in violations],
        "summary": counts,
    }


def handle_inject_meta(
    project_root: Path,
    document: Document,
    *,
    file_path: str,
    element_name: str,
    use_case_id: str,
    function_name: str,
    visual_element_id: str | None = None,
    dry_run: bool = False,
    attribute: str | None = None,
) -> dict[str, Any]:
    """Inject the annotation for *function_name* into *file_path*.

    Raises
    ------
    LookupError
        Unknown use case or function.
    ValueError
        *file_path* points outside the project root.
    """
    root = project_root.resolve()
    target = (root / file_path).resolve()
    if not target.is_relative_to(root):
        msg = f"Path escapes the project root: {file_path}"
        raise ValueError(msg)

    payload = build_payload(
        document,
        use_case_id,
        function_name,
        visual_element_id=visual_element_id,
    )
    kwargs: dict[str, Any] = {"dry_run": dry_run}
    if attribute is not None:
        kwargs["attribute"] = attribute
    result = inject_file(target, element_name, payload, **kwargs)

    data = result.to_dict()
    data["file_path"] = file_path
    data["dry_run"] = dry_run
    if result.success:
        data["payload"] = payload.to_dict()
    return data


def handle_query_endpoint(document: Document, *, method: str, path: str) -> dict[str, Any]:
    """Look up the function record that serves ``METHOD path``.

    Raises
    ------
    LookupError
        No active use case lists the endpoint.
    """
    match = find_endpoint(document, method, path)
    if match is None:
        msg = f"No function serves {method.upper()} {path}"
        raise LookupError(msg)
    return {
        "endpoint": match.endpoint,
        "function": match.function_name,
        "use_case_id": match.use_case_id,
        "file": match.file,
        "line": match.line,
    }


# --- MCP Server creation ---

_TOOLS = [
    mcp.Tool(
        name="check_compliance",
        description=(
            "Run every matrix compliance rule. Returns errors, warnings and "
            "passing checks with a summary."
        ),
        inputSchema={"type": "object", "properties": {}},
    ),
    mcp.Tool(
        name="detect_violations",
        description=(
            "Classify data-table and ghost endpoint/function risks. "
            "Pass entity_id to get one entity's findings and worst severity."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "entity_id": {
                    "type": "string",
                    "description": "Table, endpoint, or function id (e.g. tbl_orders)",
                },
            },
        },
    ),
    mcp.Tool(
        name="inject_meta",
        description=(
            "Attach a use-case metadata annotation to an element in a source file. "
            "The element is matched by exact, case-sensitive name."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "file_path": {
                    "type": "string",
                    "description": "Source file, relative to the project root",
                },
                "element_name": {"type": "string"},
                "use_case_id": {"type": "string", "description": "e.g. UC-001"},
                "function_name": {"type": "string"},
                "visual_element_id": {"type": "string"},
                "dry_run": {"type": "boolean", "default": False},
            },
            "required": ["file_path", "element_name", "use_case_id", "function_name"],
        },
    ),
    mcp.Tool(
        name="query_endpoint",
        description="Find the function and use case serving an HTTP endpoint.",
        inputSchema={
            "type": "object",
            "properties": {
                "method": {"type": "string", "description": "HTTP method (e.g. GET)"},
                "path": {"type": "string", "description": "Route path (e.g. /users/:id)"},
            },
            "required": ["method", "path"],
        },
    ),
]


def create_server(project_root: Path) -> Server:
    """Create and configure the MCP server for a project."""
    server = Server(
        name="tracematrix",
        version=__version__,
        instructions="Traceability matrix: compliance checks, risk findings, code annotations.",
    )

    @server.list_tools()  # type: ignore[no-untyped-call,untyped-decorator]
    async def _list_tools() -> list[mcp.Tool]:
        return _TOOLS

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def _call_tool(
        name: str,
        arguments: dict[str, Any] | None,
    ) -> list[TextContent]:
        args = arguments or {}
        try:
            result = _dispatch_tool(project_root, name, args)
        except (LookupError, ValueError, MatrixLoadError) as exc:
            logger.info("Tool %s failed: %s", name, exc)
            return [TextContent(type="text", text=f"Error: {exc}")]
        return [
            TextContent(
                type="text",
                text=json.dumps(result, ensure_ascii=False, indent=2),
            )
        ]

    return server


def _dispatch_tool(
    project_root: Path,
    name: str,
    args: dict[str, Any],
    config: ProjectConfig | None = None,
) -> Any:
    """Route tool call to the appropriate handler."""
    config = config or load_config(project_root)

    if name == "check_compliance":
        return handle_check_compliance(project_root, config=config)

    if name not in {"detect_violations", "inject_meta", "query_endpoint"}:
        msg = f"Unknown tool: {name}"
        raise ValueError(msg)

    document = load_matrix(project_root / config.matrix_path)

    if name == "detect_violations":
        return handle_detect_violations(document, entity_id=args.get("entity_id"))

    if name == "inject_meta":
        return handle_inject_meta(
            project_root,
            document,
            file_path=args["file_path"],
            element_name=args["element_name"],
            use_case_id=args["use_case_id"],
            function_name=args["function_name"],
            visual_element_id=args.get("visual_element_id"),
            dry_run=args.get("dry_run", False),
            attribute=config.meta_attribute,
        )

    return handle_query_endpoint(document, method=args["method"], path=args["path"])
