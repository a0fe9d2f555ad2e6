"""Matrix domain: document model, YAML persistence, lookups."""

from tracematrix.matrix.loader import (
    MATRIX_FILENAME,
    MATRIX_PATH,
    MATRIX_SCHEMA_VERSION,
    RULES_DIR,
    SCHEMA_DIR,
    EndpointMatch,
    MatrixLoadError,
    find_endpoint,
    find_function,
    find_use_case,
    load_matrix,
    next_use_case_id,
    register_use_case,
    save_matrix,
)
from tracematrix.matrix.model import (
    VALID_DECISION_STATUSES,
    VALID_USE_CASE_STATUSES,
    ArchitectureDecision,
    DbTable,
    DecisionStatus,
    Document,
    Endpoint,
    FunctionEntity,
    FunctionRecord,
    Stack,
    TableField,
    UseCase,
    UseCaseStatus,
)

__all__ = [
    "MATRIX_FILENAME",
    "MATRIX_PATH",
    "MATRIX_SCHEMA_VERSION",
    "RULES_DIR",
    "SCHEMA_DIR",
    "VALID_DECISION_STATUSES",
    "VALID_USE_CASE_STATUSES",
    "ArchitectureDecision",
    "DbTable",
    "DecisionStatus",
    "Document",
    "Endpoint",
    "EndpointMatch",
    "FunctionEntity",
    "FunctionRecord",
    "MatrixLoadError",
    "Stack",
    "TableField",
    "UseCase",
    "UseCaseStatus",
    "find_endpoint",
    "find_function",
    "find_use_case",
    "load_matrix",
    "next_use_case_id",
    "register_use_case",
    "save_matrix",
]
