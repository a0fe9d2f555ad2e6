"""Infrastructure: project configuration and filesystem capabilities."""

from tracematrix.infrastructure.config import (
    DEFAULT_META_ATTRIBUTE,
    ProjectConfig,
    load_config,
)
from tracematrix.infrastructure.files import ProjectFileChecker

__all__ = [
    "DEFAULT_META_ATTRIBUTE",
    "ProjectConfig",
    "ProjectFileChecker",
    "load_config",
]
