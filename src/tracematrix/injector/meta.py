"""Annotation injector: attach a JSON metadata attribute to a tag in source text.

No parser is involved.  The target line is found by a bounded textual scan:

1. the first line containing ``<ElementName`` followed by whitespace, ``/``
   or ``>`` (direct usage);
2. otherwise the first ``function ElementName`` / ``const|let|var
   ElementName =`` declaration, then the first line after it (within
   :data:`DECLARATION_SCAN_WINDOW` lines) that opens any tag.

The first tag on the target line receives ``attr='<json>'`` right after its
name.  An existing attribute with the same key is stripped first, so
repeated injections replace rather than append.

Element names must be identifiers (dotted names such as ``Form.Item`` are
allowed); anything else fails before the scan.  A bare ``<Name`` that ends
its line, with attributes on the following lines, is not a direct usage.
Such a tag is only reached through the declaration fallback of step 2,
where insertion does accept a tag name at end of line.
"""

from __future__ import annotations

import datetime
import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tracematrix.infrastructure.config import DEFAULT_META_ATTRIBUTE
from tracematrix.matrix.loader import MATRIX_SCHEMA_VERSION, find_use_case

if TYPE_CHECKING:
    from pathlib import Path

    from tracematrix.matrix.model import Document

logger = logging.getLogger(__name__)

DECLARATION_SCAN_WINDOW = 80

_ELEMENT_NAME_RE = re.compile(r"[A-Za-z_$][\w$.]*")
_ANY_TAG_RE = re.compile(r"<[A-Za-z]")
_TAG_NAME_RE = re.compile(r"<([A-Za-z][A-Za-z0-9.]*)")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnnotationPayload:
    """The record serialised into the metadata attribute."""

    use_case_id: str
    use_case_title: str
    function: str
    file: str
    line: int
    endpoint: str | None = None
    db_tables: tuple[str, ...] = ()
    auth_required: bool = False
    last_verified: str = ""
    schema_version: str = MATRIX_SCHEMA_VERSION
    visual_element_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "use_case_id": self.use_case_id,
            "use_case_title": self.use_case_title,
            "function": self.function,
            "file": self.file,
            "line": self.line,
            "endpoint": self.endpoint,
            "db_tables": list(self.db_tables),
            "auth_required": self.auth_required,
            "last_verified": self.last_verified,
            "schema_version": self.schema_version,
            "visual_element_id": self.visual_element_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnnotationPayload:
        return cls(
            use_case_id=str(data.get("use_case_id", "")),
            use_case_title=str(data.get("use_case_title", "")),
            function=str(data.get("function", "")),
            file=str(data.get("file", "")),
            line=int(data.get("line") or 0),
            endpoint=data.get("endpoint"),
            db_tables=tuple(data.get("db_tables") or ()),
            auth_required=bool(data.get("auth_required", False)),
            last_verified=str(data.get("last_verified", "")),
            schema_version=str(data.get("schema_version", MATRIX_SCHEMA_VERSION)),
            visual_element_id=str(data.get("visual_element_id", "")),
        )

    def to_json(self) -> str:
        """Compact single-line JSON, safe inside a single-quoted attribute."""
        text = json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
        return text.replace("'", "\\u0027")


@dataclass(frozen=True)
class InjectionResult:
    """Outcome of one injection.

    ``changed`` is False on a successful re-injection of an identical
    payload; callers use it to skip the write.
    """

    success: bool
    new_text: str | None = None
    line_number: int | None = None
    had_prior_annotation: bool | None = None
    changed: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data["line_number"] = self.line_number
            data["had_prior_annotation"] = self.had_prior_annotation
            data["changed"] = self.changed
        else:
            data["reason"] = self.reason
        return data


# ---------------------------------------------------------------------------
# Line location and rewriting
# ---------------------------------------------------------------------------


def _attribute_re(attribute: str) -> re.Pattern[str]:
    return re.compile(rf"\s*{re.escape(attribute)}=(?:'[^']*'|\"[^\"]*\"|\{{[^}}]*\}})")


def find_target_line(lines: list[str], element_name: str) -> int | None:
    """Return the 0-based index of the line to annotate, or ``None``."""
    name = re.escape(element_name)
    direct = re.compile(rf"<{name}[\s/>]")
    for index, line in enumerate(lines):
        if direct.search(line):
            logger.debug("Direct usage of <%s> at line %d", element_name, index + 1)
            return index

    declaration = re.compile(rf"(?:function\s+{name}\b|(?:const|let|var)\s+{name}\s*=)")
    for index, line in enumerate(lines):
        if not declaration.search(line):
            continue
        stop = min(len(lines), index + DECLARATION_SCAN_WINDOW)
        for candidate in range(index + 1, stop):
            if _ANY_TAG_RE.search(lines[candidate]):
                logger.debug(
                    "Declaration of %s at line %d, first tag at line %d",
                    element_name,
                    index + 1,
                    candidate + 1,
                )
                return candidate
    return None


def _rewrite_line(line: str, tag_name: str, attribute: str, payload_json: str) -> tuple[str, str]:
    """Return ``(cleaned, rewritten)`` for *line*.

    *cleaned* has any prior annotation removed; *rewritten* additionally
    carries the new one.  Both are equal when the tag cannot be matched.
    """
    cleaned = _attribute_re(attribute).sub("", line)
    tag_re = re.compile(rf"(<{re.escape(tag_name)})(?=[\s/>]|$)")
    rewritten = tag_re.sub(
        lambda m: f"{m.group(1)} {attribute}='{payload_json}'", cleaned, count=1
    )
    return cleaned, rewritten


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def inject(
    text: str,
    element_name: str,
    payload: AnnotationPayload,
    *,
    attribute: str = DEFAULT_META_ATTRIBUTE,
    source: str = "the file",
) -> InjectionResult:
    """Inject *payload* on the tag that represents *element_name* in *text*.

    Parameters
    ----------
    text:
        Full source text.  Lines are split and re-joined on ``"\\n"`` so
        line endings are preserved as-is.
    element_name:
        Element or component name, matched exactly and case-sensitively.
    payload:
        Record to serialise into the attribute.
    attribute:
        Attribute key, ``data-matrix-meta`` unless configured otherwise.
    source:
        Name used in failure reasons.

    Returns
    -------
    InjectionResult
        Never raises for a missing element or a no-op; both are reported
        as ``success=False`` with a reason.
    """
    if not _ELEMENT_NAME_RE.fullmatch(element_name):
        return InjectionResult(
            success=False,
            reason=(
                f'Invalid element name "{element_name}": expected an identifier such as '
                '"Button" or "Form.Item".'
            ),
        )

    lines = text.split("\n")
    index = find_target_line(lines, element_name)
    if index is None:
        return InjectionResult(
            success=False,
            reason=(
                f'Could not locate "<{element_name}" or a function/const named '
                f'"{element_name}" in {source}. Check that the element name matches '
                "exactly (case-sensitive)."
            ),
        )

    original = lines[index]
    had_prior = re.search(rf"{re.escape(attribute)}=", original) is not None
    match = _TAG_NAME_RE.search(original)
    tag_name = match.group(1) if match else element_name

    cleaned, rewritten = _rewrite_line(original, tag_name, attribute, payload.to_json())
    if rewritten == cleaned:
        return InjectionResult(
            success=False,
            line_number=index + 1,
            had_prior_annotation=had_prior,
            reason=(
                f'Tag "<{tag_name}>" was found at line {index + 1} of {source} but '
                "injection produced no change. Check that the tag name is correct."
            ),
        )

    lines[index] = rewritten
    return InjectionResult(
        success=True,
        new_text="\n".join(lines),
        line_number=index + 1,
        had_prior_annotation=had_prior,
        changed=rewritten != original,
    )


def read_annotation(line: str, attribute: str = DEFAULT_META_ATTRIBUTE) -> dict[str, Any] | None:
    """Decode the annotation carried by *line*, or ``None`` if absent or unreadable."""
    match = re.search(rf"{re.escape(attribute)}=(?:'([^']*)'|\"([^\"]*)\")", line)
    if match is None:
        return None
    blob = match.group(1) if match.group(1) is not None else match.group(2)
    try:
        data = json.loads(blob)
    except json.JSONDecodeError:
        logger.debug("Unreadable %s value: %s", attribute, blob)
        return None
    return data if isinstance(data, dict) else None


def build_payload(
    document: Document,
    use_case_id: str,
    function_name: str,
    *,
    visual_element_id: str | None = None,
    today: datetime.date | None = None,
) -> AnnotationPayload:
    """Build a payload from the matrix record of *function_name* in *use_case_id*.

    Raises
    ------
    LookupError
        If the use case does not exist or has no function by that name.
    """
    use_case = find_use_case(document, use_case_id)
    if use_case is None:
        msg = f"Use case not found: {use_case_id}"
        raise LookupError(msg)

    record = next((fn for fn in use_case.functions if fn.name == function_name), None)
    if record is None:
        msg = f"Function {function_name!r} is not listed under {use_case_id}"
        raise LookupError(msg)

    if visual_element_id is None:
        visual_element_id = use_case.visual_element_id or ""

    return AnnotationPayload(
        use_case_id=use_case_id,
        use_case_title=use_case.title or "",
        function=function_name,
        file=record.file or "",
        line=record.line or 0,
        endpoint=record.endpoint,
        db_tables=tuple(record.db_tables),
        auth_required=record.auth_required is True,
        last_verified=(today or datetime.date.today()).isoformat(),
        schema_version=MATRIX_SCHEMA_VERSION,
        visual_element_id=visual_element_id,
    )


def inject_file(
    path: Path,
    element_name: str,
    payload: AnnotationPayload,
    *,
    attribute: str = DEFAULT_META_ATTRIBUTE,
    dry_run: bool = False,
) -> InjectionResult:
    """Read *path*, inject, and write back when the text changed.

    Read and write failures are returned as failed results.
    """
    try:
        with path.open(encoding="utf-8", newline="") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        return InjectionResult(success=False, reason=f"Cannot read file: {exc}")

    result = inject(text, element_name, payload, attribute=attribute, source=str(path))
    if not result.success or not result.changed or dry_run:
        return result

    try:
        with path.open("w", encoding="utf-8", newline="") as fh:
            fh.write(result.new_text or "")
    except OSError as exc:
        return InjectionResult(success=False, reason=f"Cannot write file: {exc}")

    logger.info("Annotated %s at line %s", path, result.line_number)
    return result
