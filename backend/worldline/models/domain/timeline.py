"""Timeline domain models: the axis → era → segment → marker hierarchy and the legacy flat model."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class TimelineAxis(BaseModel):
    """Root of a timeline hierarchy, e.g. one narrative continuity."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    code: str
    name: str
    axis_type: str = "main"
    description: Optional[str] = None
    status: str = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TimelineEra(BaseModel):
    """Ordered subdivision of an axis."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    axis_id: str
    code: str
    name: str
    summary: Optional[str] = None
    order: int = 0
    status: str = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TimelineSegment(BaseModel):
    """A bounded tick range within an era."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    axis_id: str
    era_id: str
    name: str
    code: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    order: int = 0
    start_tick: int = 0
    end_tick: int = 0
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    legacy_timeline_id: Optional[str] = Field(
        default=None,
        description="Id of the legacy timeline this segment was migrated from.",
    )
    status: str = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TimelineMarker(BaseModel):
    """A point-in-tick reference owned by exactly one segment."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    axis_id: str
    era_id: Optional[str] = None
    segment_id: Optional[str] = None
    label: str
    tick: int = 0
    marker_type: str = "event"
    description: Optional[str] = None
    event_ref_id: Optional[str] = None
    legacy_event_id: Optional[str] = Field(
        default=None,
        description="Id of the event whose legacy occurs-on link produced this marker.",
    )
    status: str = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LegacyTimeline(BaseModel):
    """Pre-migration flat timeline node linked by previous/next pointers."""

    id: str
    name: Optional[str] = None
    code: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    duration_years: Optional[float] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    previous_id: Optional[str] = None
    next_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
