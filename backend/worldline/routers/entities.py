"""Entity routes.

Writes are recorded into the timeline state-change log when the request
carries ``x-timeline-axis-id`` and ``x-timeline-tick`` headers.
"""

from fastapi import APIRouter, HTTPException, Request

from worldline.dependencies import EntityServiceDep
from worldline.models import Entity, EntityCreate, EntityUpdate
from worldline.services.timeline_context import parse_timeline_write_context

router = APIRouter()


@router.post("/{database}/entities", response_model=Entity, status_code=201)
async def create_entity(
    database: str,
    body: EntityCreate,
    request: Request,
    service: EntityServiceDep,
):
    try:
        entity, _ = await service.create_entity(
            database,
            body,
            timeline_context=parse_timeline_write_context(request.headers),
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return entity


@router.get("/{database}/entities/{entity_id}", response_model=Entity)
async def get_entity(database: str, entity_id: str, service: EntityServiceDep):
    try:
        entity = await service.get_entity(database, entity_id)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    if not entity:
        raise HTTPException(404, "Entity not found")
    return entity


@router.patch("/{database}/entities/{entity_id}", response_model=Entity)
async def update_entity(
    database: str,
    entity_id: str,
    body: EntityUpdate,
    request: Request,
    service: EntityServiceDep,
):
    try:
        updated = await service.update_entity(
            database,
            entity_id,
            body,
            timeline_context=parse_timeline_write_context(request.headers),
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    if not updated:
        raise HTTPException(404, "Entity not found")
    entity, _ = updated
    return entity
