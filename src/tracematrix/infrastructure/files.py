"""Filesystem-backed existence checks for project-relative paths."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class ProjectFileChecker:
    """Answer ``exists(path)`` relative to a project root.

    Errors from the filesystem are logged and reported as "does not exist",
    so callers can hand this to the evaluator without wrapping it.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = project_root
        self.calls = 0

    def exists(self, path: str) -> bool:
        self.calls += 1
        try:
            return (self.project_root / path).is_file()
        except OSError as exc:
            logger.warning("Cannot stat %s: %s", path, exc)
            return False
