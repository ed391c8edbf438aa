"""Domain models: the core data structures of the timeline graph."""

from worldline.models.domain.entity import Entity, EntityCreate, EntityUpdate
from worldline.models.domain.timeline import (
    TimelineAxis,
    TimelineEra,
    TimelineSegment,
    TimelineMarker,
    LegacyTimeline,
)
from worldline.models.domain.migration import MigrationOptions, MigrationReport
from worldline.models.domain.state_change import (
    TimelineStateChange,
    TimelineStateChangeCreate,
    TimelineStateChangeQuery,
)
from worldline.models.domain.dual_write import (
    TimelineWriteContext,
    DualWriteFailure,
    DualWriteResult,
)

__all__ = [
    "Entity", "EntityCreate", "EntityUpdate",
    "TimelineAxis", "TimelineEra", "TimelineSegment", "TimelineMarker", "LegacyTimeline",
    "MigrationOptions", "MigrationReport",
    "TimelineStateChange", "TimelineStateChangeCreate", "TimelineStateChangeQuery",
    "TimelineWriteContext", "DualWriteFailure", "DualWriteResult",
]
