"""Shared test fixtures for tracematrix."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

import pytest
import yaml

from tracematrix.compliance.rules import RULE_FILES

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

# A matrix that passes every compliance check with no warnings.
CLEAN_MATRIX: dict[str, Any] = {
    "version": "1.0",
    "project": "shop",
    "description": "Order management for a small web shop",
    "author": "Shop Team",
    "created": "2026-01-02",
    "last_updated": "2026-01-15",
    "stack": {
        "runtime": "node",
        "framework": "express",
        "language": "typescript",
        "orm": "prisma",
        "database": "postgres",
        "auth": "jwt",
        "api_style": "rest",
        "deployment": "docker",
        "ci_cd": "github-actions",
        "testing": "vitest",
        "package_manager": "pnpm",
    },
    "adrs": [
        {
            "id": "ADR-001",
            "status": "accepted",
            "title": "Use Postgres",
            "date": "2026-01-03",
            "context": "We need relational storage for orders.",
            "decision": "Use Postgres for all persistent data.",
            "alternatives_considered": ["MySQL", "SQLite"],
            "consequences": ["Managed database required"],
        }
    ],
    "use_cases": [
        {
            "id": "UC-001",
            "title": "Create order",
            "value": "Customers can buy products without calling the shop",
            "status": "implemented",
            "actor": "customer",
            "visual_element_id": "VE-Order-Create",
            "rules_applied": ["NO_FAKE", "NO_DUPLICATE"],
            "functions": [
                {
                    "name": "createOrder",
                    "file": "src/orders.ts",
                    "line": 12,
                    "endpoint": "POST /orders",
                    "db_tables": ["orders"],
                    "auth_required": True,
                    "roles_required": ["customer"],
                    "last_modified": "2026-01-10",
                }
            ],
        },
        {
            "id": "UC-002",
            "title": "Cancel order",
            "value": "Customers can undo a mistaken purchase",
            "status": "planned",
            "visual_element_id": "pending",
            "functions": [],
        },
    ],
    "deprecated": [
        {
            "id": "UC-000",
            "title": "Phone orders",
            "value": "Staff take orders by phone",
            "status": "deprecated",
            "deprecated_date": "2026-01-05",
            "deprecated_reason": "Replaced by self-service checkout",
            "replaced_by": "UC-001",
        }
    ],
    "db_tables": [
        {
            "id": "tbl_orders",
            "name": "orders",
            "owner_service": "orders-service",
            "fields": [{"name": "id", "type": "uuid"}, {"name": "total", "type": "int"}],
            "audit_log": False,
            "retention_days": 365,
        }
    ],
    "endpoints": [{"id": "ep_create_order", "method": "POST", "path": "/orders"}],
    "functions": [
        {"id": "fn_create_order", "name": "createOrder", "source_file": "src/orders.ts"}
    ],
}

ORDERS_SOURCE = """\
import { api } from './api'

export function createOrder(req, res) {
  return api.post('/orders', req.body)
}
"""


@pytest.fixture()
def matrix_data() -> dict[str, Any]:
    """A fresh, mutable copy of the clean matrix."""
    return copy.deepcopy(CLEAN_MATRIX)


@pytest.fixture()
def write_project(tmp_path: Path) -> Callable[[dict[str, Any] | None], Path]:
    """Return a factory that lays out a project around a matrix dict.

    Passing ``None`` creates the project without a matrix file.
    """

    def _write(data: dict[str, Any] | None) -> Path:
        project = tmp_path / "proj"
        (project / "schema").mkdir(parents=True, exist_ok=True)
        (project / "rules").mkdir(exist_ok=True)
        (project / "src").mkdir(exist_ok=True)
        for name in RULE_FILES:
            (project / "rules" / name).write_text(f"# {name}\n", encoding="utf-8")
        (project / "src" / "orders.ts").write_text(ORDERS_SOURCE, encoding="utf-8")
        if data is not None:
            (project / "schema" / "DCM.yaml").write_text(
                yaml.safe_dump(data, sort_keys=False), encoding="utf-8"
            )
        return project

    return _write


@pytest.fixture()
def tmp_project(
    write_project: Callable[[dict[str, Any] | None], Path],
    matrix_data: dict[str, Any],
) -> Path:
    """A project whose matrix passes every check."""
    return write_project(matrix_data)
