"""
Worldline models.

Usage:
    from worldline.models import Entity, EntityCreate, TimelineSegment, MigrationReport
    from worldline.models import DualWriteMode, DualWriteSkipReason, normalize_type
    from worldline.models import TimelineWriteContext, DualWriteResult
"""

# --- Enums & utilities ---
from worldline.models.enums import (
    DualWriteMode,
    DualWriteSkipReason,
    StateChangeType,
    normalize_type,
)

# --- Domain models ---
from worldline.models.domain import (
    Entity, EntityCreate, EntityUpdate,
    TimelineAxis, TimelineEra, TimelineSegment, TimelineMarker, LegacyTimeline,
    MigrationOptions, MigrationReport,
    TimelineStateChange, TimelineStateChangeCreate, TimelineStateChangeQuery,
    TimelineWriteContext, DualWriteFailure, DualWriteResult,
)

__all__ = [
    # Enums
    "DualWriteMode", "DualWriteSkipReason", "StateChangeType", "normalize_type",
    # Domain
    "Entity", "EntityCreate", "EntityUpdate",
    "TimelineAxis", "TimelineEra", "TimelineSegment", "TimelineMarker", "LegacyTimeline",
    "MigrationOptions", "MigrationReport",
    "TimelineStateChange", "TimelineStateChangeCreate", "TimelineStateChangeQuery",
    "TimelineWriteContext", "DualWriteFailure", "DualWriteResult",
]
