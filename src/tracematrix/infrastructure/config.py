"""Project configuration from ``.tracematrix/config.yml``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import yaml

from tracematrix.matrix.loader import MATRIX_PATH, RULES_DIR

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_DIR = ".tracematrix"
CONFIG_FILENAME = "config.yml"
DEFAULT_META_ATTRIBUTE = "data-matrix-meta"


@dataclass(frozen=True)
class ProjectConfig:
    """Settings for one project.  Paths are relative to the project root."""

    matrix_path: str = MATRIX_PATH
    rules_dir: str = RULES_DIR
    strict: bool = False
    meta_attribute: str = DEFAULT_META_ATTRIBUTE


def _read_config_file(config_path: Path) -> dict[str, Any]:
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default settings", config_path)
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def load_config(project_root: Path) -> ProjectConfig:
    """Load settings, falling back to defaults for missing or mistyped keys."""
    data = _read_config_file(project_root / CONFIG_DIR / CONFIG_FILENAME)
    defaults = ProjectConfig()
    kwargs: dict[str, Any] = {}

    for key in ("matrix_path", "rules_dir", "meta_attribute"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            kwargs[key] = value.strip().rstrip("/")
        elif value is not None:
            logger.warning("Ignoring config key %s: expected a non-empty string", key)

    strict = data.get("strict")
    if isinstance(strict, bool):
        kwargs["strict"] = strict

    for key in ("matrix_path", "rules_dir", "strict", "meta_attribute"):
        kwargs.setdefault(key, getattr(defaults, key))
    return ProjectConfig(**kwargs)
