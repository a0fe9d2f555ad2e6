"""Rule codes, severities, and the fixed constants the checks compare against."""

from __future__ import annotations

import enum
import re


class RuleCode(enum.Enum):
    """Every rule the compliance evaluator can report under."""

    CR_01 = "CR-01"  # document structure
    CR_02 = "CR-02"  # use case identity and status
    CR_03 = "CR-03"  # implemented use cases are complete
    CR_06 = "CR-06"  # architecture decision format
    CR_07 = "CR-07"  # rule documents present
    CR_09 = "CR-09"  # deprecation metadata
    USE_CASE_FIRST = "USE_CASE_FIRST"
    NO_DUPLICATE = "NO_DUPLICATE"
    NO_FAKE = "NO_FAKE"
    META_INJECTION = "META_INJECTION"
    STACK_RULES = "STACK_RULES"

    def __str__(self) -> str:
        return self.value


class Severity(enum.Enum):
    """Classification of a compliance finding."""

    ERROR = "error"
    WARNING = "warning"
    PASS = "pass"


# Rule document each code is specified in, under the rules directory.
RULE_FILES: tuple[str, ...] = (
    "CORE_RULES.md",
    "NO_DUPLICATE.md",
    "USE_CASE_FIRST.md",
    "META_INJECTION.md",
    "STACK_RULES.md",
    "NO_FAKE.md",
)

REQUIRED_TOP_LEVEL_FIELDS: tuple[str, ...] = (
    "version",
    "project",
    "description",
    "author",
    "created",
    "last_updated",
)

REQUIRED_STACK_FIELDS: tuple[str, ...] = (
    "runtime",
    "framework",
    "language",
    "database",
    "auth",
    "api_style",
    "deployment",
    "ci_cd",
    "testing",
    "package_manager",
)

# Substrings (lower-case) that mark a registered function name as a stub.
STUB_NAME_TOKENS: tuple[str, ...] = ("todo", "placeholder", "stub")

# The rules_applied tag every implemented use case must carry.
NO_FAKE_TAG = "NO_FAKE"

# Sentinel visual element id for UI that has not been designed yet.
PENDING_ELEMENT_ID = "pending"

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
USE_CASE_ID_RE = re.compile(r"^UC-\d{3,}$")
DECISION_ID_RE = re.compile(r"^ADR-\d{3,}$")
VISUAL_ELEMENT_ID_RE = re.compile(r"^VE-[A-Z][a-zA-Z0-9]+-[A-Z][a-zA-Z0-9]+$")
