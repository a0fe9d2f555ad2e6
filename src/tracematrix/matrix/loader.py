"""Matrix YAML loader, writer, and lookups.

Reads ``schema/DCM.yaml`` into a :class:`~tracematrix.matrix.model.Document`
and writes it back wholesale.  The lookups here are exact-match helpers used
by the CLI, the payload builder, and the MCP server.
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import yaml

from tracematrix.matrix.model import Document, FunctionRecord, UseCase, endpoint_key

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# On-disk layout
# ---------------------------------------------------------------------------

SCHEMA_DIR = "schema"
MATRIX_FILENAME = "DCM.yaml"
MATRIX_PATH = f"{SCHEMA_DIR}/{MATRIX_FILENAME}"
RULES_DIR = "rules"
MATRIX_SCHEMA_VERSION = "1.0"

_USE_CASE_NUMBER_RE = re.compile(r"^UC-(\d+)$")


class MatrixLoadError(Exception):
    """Raised when the matrix file is missing or cannot be parsed."""


@dataclass(frozen=True)
class EndpointMatch:
    """A function record that serves a given endpoint."""

    function_name: str | None
    use_case_id: str | None
    file: str | None
    line: int | None
    endpoint: str


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_matrix(path: Path) -> Document:
    """Parse the matrix file at *path*.

    Raises
    ------
    MatrixLoadError
        When the file does not exist, is not valid YAML, or does not hold a
        mapping at the top level.
    """
    if not path.is_file():
        msg = f"Matrix file not found at: {path}"
        raise MatrixLoadError(msg)

    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text)
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read matrix file {path}: {exc}"
        raise MatrixLoadError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"Matrix parse error in {path}: {exc}"
        raise MatrixLoadError(msg) from exc

    if not isinstance(data, dict):
        msg = f"Matrix file {path} must contain a mapping at the top level"
        raise MatrixLoadError(msg)

    logger.debug("Loaded matrix from %s", path)
    return Document.from_dict(data)


def save_matrix(
    path: Path,
    document: Document,
    *,
    today: datetime.date | None = None,
) -> None:
    """Serialize *document* to *path*, stamping ``last_updated``."""
    document.last_updated = (today or datetime.date.today()).isoformat()
    text = yaml.safe_dump(
        document.to_dict(),
        sort_keys=False,
        allow_unicode=True,
        width=120,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.debug("Wrote matrix to %s", path)


# ---------------------------------------------------------------------------
# Use case registration
# ---------------------------------------------------------------------------


def next_use_case_id(document: Document) -> str:
    """Return the next free ``UC-NNN`` id across active and deprecated lists."""
    highest = 0
    for uc in document.all_use_cases():
        match = _USE_CASE_NUMBER_RE.match(uc.id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"UC-{highest + 1:03d}"


def register_use_case(document: Document, use_case: UseCase) -> UseCase:
    """Append *use_case* to the active list, assigning an id when missing.

    Raises
    ------
    ValueError
        When the use case carries an id that is already taken.
    """
    taken = {uc.id for uc in document.all_use_cases() if uc.id}
    if use_case.id is None:
        use_case.id = next_use_case_id(document)
    elif use_case.id in taken:
        msg = f"Use case id '{use_case.id}' is already registered"
        raise ValueError(msg)

    if document.use_cases is None:
        document.use_cases = []
    document.use_cases.append(use_case)
    logger.info("Registered use case %s", use_case.id)
    return use_case


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def find_use_case(document: Document, use_case_id: str) -> UseCase | None:
    """Return the use case with *use_case_id*, active list first."""
    for uc in document.all_use_cases():
        if uc.id == use_case_id:
            return uc
    return None


def find_function(document: Document, name: str) -> tuple[UseCase, FunctionRecord] | None:
    """Return the first active ``(use_case, function)`` pair named *name*."""
    for uc in document.active_use_cases:
        for fn in uc.functions:
            if fn.name == name:
                return uc, fn
    return None


def find_endpoint(document: Document, method: str, path: str) -> EndpointMatch | None:
    """Return the function record serving ``METHOD path``, or ``None``."""
    endpoint = endpoint_key(f"{method} {path}")
    for uc in document.active_use_cases:
        for fn in uc.functions:
            if fn.endpoint and endpoint_key(fn.endpoint) == endpoint:
                return EndpointMatch(
                    function_name=fn.name,
                    use_case_id=uc.id,
                    file=fn.file,
                    line=fn.line,
                    endpoint=endpoint,
                )
    return None
