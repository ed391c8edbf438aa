"""
Dependency injection for FastAPI routes.

Provides typed service dependencies that enable IDE navigation (Ctrl+Click).
"""

from typing import Annotated
from fastapi import Request, Depends

from worldline.services.entities import EntityService
from worldline.services.timeline_migration import LegacyTimelineMigrationService
from worldline.services.timeline_state_change import TimelineStateChangeService


def get_entity_service(request: Request) -> EntityService:
    return request.app.state.entity_service


def get_timeline_migration_service(request: Request) -> LegacyTimelineMigrationService:
    return request.app.state.timeline_migration_service


def get_timeline_state_change_service(request: Request) -> TimelineStateChangeService:
    return request.app.state.timeline_state_change_service


EntityServiceDep = Annotated[EntityService, Depends(get_entity_service)]
TimelineMigrationServiceDep = Annotated[LegacyTimelineMigrationService, Depends(get_timeline_migration_service)]
TimelineStateChangeServiceDep = Annotated[TimelineStateChangeService, Depends(get_timeline_state_change_service)]
