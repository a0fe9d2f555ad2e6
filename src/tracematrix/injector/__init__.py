"""Injector domain: metadata annotations in source files."""

from tracematrix.injector.meta import (
    DECLARATION_SCAN_WINDOW,
    AnnotationPayload,
    InjectionResult,
    build_payload,
    find_target_line,
    inject,
    inject_file,
    read_annotation,
)

__all__ = [
    "DECLARATION_SCAN_WINDOW",
    "AnnotationPayload",
    "InjectionResult",
    "build_payload",
    "find_target_line",
    "inject",
    "inject_file",
    "read_annotation",
]
