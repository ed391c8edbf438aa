"""Timeline state-change (provenance) models."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from worldline.models.enums import StateChangeType


class TimelineStateChangeCreate(BaseModel):
    """Payload for appending a field-level provenance record."""

    axis_id: str
    era_id: Optional[str] = None
    segment_id: Optional[str] = None
    marker_id: Optional[str] = None
    event_id: Optional[str] = None
    subject_type: str
    subject_id: str
    field_path: str = Field(description="Dot-separated path of the changed leaf, e.g. attributes.rank.")
    change_type: StateChangeType = StateChangeType.SET
    new_value: Optional[str] = Field(default=None, description="JSON-serialized new value.")
    effective_tick: int
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class TimelineStateChange(BaseModel):
    """An append-only fact: a field of a subject was set at a tick."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    axis_id: str
    era_id: Optional[str] = None
    segment_id: Optional[str] = None
    marker_id: Optional[str] = None
    event_id: Optional[str] = None
    subject_type: str
    subject_id: str
    field_path: str
    change_type: StateChangeType = StateChangeType.SET
    new_value: Optional[str] = None
    effective_tick: int
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TimelineStateChangeQuery(BaseModel):
    """Filters for listing provenance records."""

    axis_id: Optional[str] = None
    era_id: Optional[str] = None
    segment_id: Optional[str] = None
    marker_id: Optional[str] = None
    event_id: Optional[str] = None
    subject_type: Optional[str] = None
    subject_id: Optional[str] = None
    field_path: Optional[str] = Field(default=None, description="Case-insensitive substring match.")
    tick_from: Optional[int] = None
    tick_to: Optional[int] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
