"""
Worldline - FastAPI Backend
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from worldline.config import settings
from worldline.logging import setup_logging, get_logger
from worldline.routers import entities, timeline
from worldline.services.dual_write import TimelineDualWriteService
from worldline.services.entities import EntityService
from worldline.services.timeline_migration import LegacyTimelineMigrationService
from worldline.services.timeline_state_change import TimelineStateChangeService

logger = get_logger('main')


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        f"Starting Worldline API (write_mode={settings.TIMELINE_WRITE_MODE}, "
        f"read_mode={settings.TIMELINE_READ_MODE}, database_dir={settings.DATABASE_DIR})"
    )

    # Databases are created lazily per name on first connect
    app.state.timeline_state_change_service = TimelineStateChangeService()
    app.state.dual_write_service = TimelineDualWriteService(
        sink=app.state.timeline_state_change_service,
    )
    app.state.entity_service = EntityService(
        dual_write=app.state.dual_write_service,
    )
    app.state.timeline_migration_service = LegacyTimelineMigrationService()
    logger.info("Services initialized")

    yield

    logger.info("Shutting down application")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Worldline API",
        description="Timeline hierarchy, legacy migration and state-change log",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(entities.router, prefix="/api/lore", tags=["Entities"])
    app.include_router(timeline.router, prefix="/api/timeline", tags=["Timeline"])

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "worldline",
            "timeline_write_mode": settings.TIMELINE_WRITE_MODE,
            "timeline_read_mode": settings.TIMELINE_READ_MODE,
        }

    @app.get("/")
    async def root():
        return {
            "name": "Worldline API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health"
        }

    return app
