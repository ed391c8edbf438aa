"""Dual-write projection models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TimelineWriteContext(BaseModel):
    """Timeline coordinate a write is recorded against."""

    model_config = ConfigDict(frozen=True)

    axis_id: str
    tick: int
    era_id: Optional[str] = None
    segment_id: Optional[str] = None
    marker_id: Optional[str] = None
    event_id: Optional[str] = None


class DualWriteFailure(BaseModel):
    """A field whose provenance record could not be appended."""

    field_path: str
    error: str


class DualWriteResult(BaseModel):
    """Outcome of projecting one primary write into the provenance log."""

    written: int = 0
    skipped: bool = False
    reason: Optional[str] = None
    failures: list[DualWriteFailure] = Field(default_factory=list)
