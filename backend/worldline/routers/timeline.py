"""Timeline migration and state-change routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from worldline.dependencies import (
    TimelineMigrationServiceDep,
    TimelineStateChangeServiceDep,
)
from worldline.models import (
    MigrationOptions,
    MigrationReport,
    TimelineStateChange,
    TimelineStateChangeCreate,
    TimelineStateChangeQuery,
)
from worldline.services.timeline_audit import audit_timeline_operation

router = APIRouter()


@router.post("/{database}/migrate-legacy", response_model=MigrationReport)
async def migrate_legacy_timelines(
    database: str,
    request: Request,
    service: TimelineMigrationServiceDep,
    delete_legacy: bool = Query(default=True),
):
    try:
        report = await service.migrate(database, MigrationOptions(delete_legacy=delete_legacy))
    except ValueError as exc:
        audit_timeline_operation(
            "timeline-migration.legacy",
            method=request.method,
            path=request.url.path,
            database=database,
            result="error",
            status_code=400,
            detail=str(exc),
        )
        raise HTTPException(400, str(exc)) from exc
    audit_timeline_operation(
        "timeline-migration.legacy",
        method=request.method,
        path=request.url.path,
        database=database,
        resource_id=report.axis_id,
        result="success",
        status_code=200,
        detail=f"segments={report.segments_total} markers={report.markers_total} "
               f"unresolved={report.unresolved_legacy_event_links}",
    )
    return report


@router.post("/{database}/state-changes", response_model=TimelineStateChange, status_code=201)
async def create_state_change(
    database: str,
    body: TimelineStateChangeCreate,
    service: TimelineStateChangeServiceDep,
):
    try:
        return await service.create(body, database)
    except LookupError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


@router.get("/{database}/state-changes", response_model=list[TimelineStateChange])
async def list_state_changes(
    database: str,
    service: TimelineStateChangeServiceDep,
    axis_id: Optional[str] = Query(None),
    era_id: Optional[str] = Query(None),
    segment_id: Optional[str] = Query(None),
    marker_id: Optional[str] = Query(None),
    event_id: Optional[str] = Query(None),
    subject_type: Optional[str] = Query(None),
    subject_id: Optional[str] = Query(None),
    field_path: Optional[str] = Query(None),
    tick_from: Optional[int] = Query(None),
    tick_to: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    query = TimelineStateChangeQuery(
        axis_id=axis_id,
        era_id=era_id,
        segment_id=segment_id,
        marker_id=marker_id,
        event_id=event_id,
        subject_type=subject_type,
        subject_id=subject_id,
        field_path=field_path,
        tick_from=tick_from,
        tick_to=tick_to,
        limit=limit,
        offset=offset,
    )
    try:
        return await service.list_state_changes(database, query)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
