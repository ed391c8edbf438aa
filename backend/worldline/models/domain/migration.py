"""Legacy timeline migration request/report models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class MigrationOptions(BaseModel):
    """Options for a legacy timeline migration run."""

    delete_legacy: bool = Field(
        default=True,
        description="Delete legacy timelines and occurs-on links once every link has a marker.",
    )


class MigrationReport(BaseModel):
    """Summary of one legacy timeline migration run."""

    axis_id: str
    era_id: str
    timelines_found: int = 0
    segments_created: int = 0
    segments_total: int = 0
    legacy_event_links_found: int = 0
    markers_created: int = 0
    markers_total: int = 0
    world_rules_updated: int = 0
    unresolved_legacy_event_links: int = 0
    deleted_occurs_on_relations: int = 0
    deleted_timelines: int = 0
    deleted_legacy_timeline_nodes: bool = False
    migrated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
