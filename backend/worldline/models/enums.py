"""
Enum definitions for the Worldline API.

Entity types are dynamic (str) to allow world-specific types.
"""
from enum import Enum


class DualWriteMode(str, Enum):
    """Kind of primary write a dual-write projection follows."""
    CREATE = "create"
    UPDATE = "update"


class StateChangeType(str, Enum):
    """How a provenance record changed its field."""
    SET = "set"


class DualWriteSkipReason(str, Enum):
    """Why a dual-write projection wrote nothing."""
    DISABLED = "dual-write-disabled"
    MISSING_DB_NAME = "missing-db-name"
    MISSING_CONTEXT = "missing-timeline-context-headers"
    NO_TRACKABLE_FIELDS = "no-trackable-fields"


def normalize_type(type_str: str) -> str:
    """
    Normalize a type string for consistency.

    - Lowercase
    - Strip whitespace
    - Replace spaces with underscores

    Examples:
        "Character" -> "character"
        "World Rule" -> "world_rule"
        " special ability " -> "special_ability"
    """
    return type_str.lower().strip().replace(" ", "_")
