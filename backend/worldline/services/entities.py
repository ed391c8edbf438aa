"""World entity writes with timeline dual-write."""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import aiosqlite

from worldline.database.db import connect
from worldline.logging import get_logger
from worldline.models import (
    DualWriteMode,
    DualWriteResult,
    Entity,
    EntityCreate,
    EntityUpdate,
    TimelineWriteContext,
    normalize_type,
)
from worldline.services.dual_write import TimelineDualWriteService

logger = get_logger("services.entities")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_entity(row: dict) -> Entity:
    return Entity(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        summary=row.get("summary"),
        tags=json.loads(row["tags"]),
        attributes=json.loads(row["attributes"]),
        status=row.get("status", "active"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


class EntityService:
    def __init__(self, dual_write: TimelineDualWriteService):
        self.dual_write = dual_write

    async def _get_db(self, database: str) -> aiosqlite.Connection:
        return await connect(database)

    async def create_entity(
        self,
        database: str,
        data: EntityCreate,
        timeline_context: Optional[TimelineWriteContext] = None,
    ) -> tuple[Entity, DualWriteResult]:
        now = _now()
        entity = Entity(
            id=str(uuid4()),
            name=data.name,
            type=normalize_type(data.type),
            summary=data.summary,
            tags=data.tags,
            attributes=data.attributes,
            status=data.status,
            created_at=now,
            updated_at=now,
        )
        db = await self._get_db(database)
        try:
            await db.execute(
                """INSERT INTO entities
                   (id, name, type, summary, tags, attributes, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    entity.id,
                    entity.name,
                    entity.type,
                    entity.summary,
                    json.dumps(entity.tags),
                    json.dumps(entity.attributes),
                    entity.status,
                    now,
                    now,
                ),
            )
            await db.commit()
        finally:
            await db.close()

        projection = await self.dual_write.project(
            database=database,
            subject_type=entity.type,
            subject_id=entity.id,
            entity=entity,
            mode=DualWriteMode.CREATE,
            context=timeline_context,
            action="entity.create",
        )
        return entity, projection

    async def get_entity(self, database: str, entity_id: str) -> Entity | None:
        db = await self._get_db(database)
        try:
            cursor = await db.execute("SELECT * FROM entities WHERE id = ?", (entity_id,))
            row = await cursor.fetchone()
            return _row_to_entity(dict(row)) if row else None
        finally:
            await db.close()

    async def update_entity(
        self,
        database: str,
        entity_id: str,
        data: EntityUpdate,
        timeline_context: Optional[TimelineWriteContext] = None,
    ) -> tuple[Entity, DualWriteResult] | None:
        existing = await self.get_entity(database, entity_id)
        if not existing:
            return None
        fields: dict = {}
        if data.name is not None:
            fields["name"] = data.name
        if data.type is not None:
            fields["type"] = normalize_type(data.type)
        if data.summary is not None:
            fields["summary"] = data.summary
        if data.tags is not None:
            fields["tags"] = json.dumps(data.tags)
        if data.attributes is not None:
            fields["attributes"] = json.dumps(_deep_merge(existing.attributes, data.attributes))
        if data.status is not None:
            fields["status"] = data.status

        entity = existing
        if fields:
            fields["updated_at"] = _now()
            set_clause = ", ".join(f"{k} = ?" for k in fields)
            params = list(fields.values()) + [entity_id]
            db = await self._get_db(database)
            try:
                await db.execute(f"UPDATE entities SET {set_clause} WHERE id = ?", params)
                await db.commit()
            finally:
                await db.close()
            entity = await self.get_entity(database, entity_id) or existing

        projection = await self.dual_write.project(
            database=database,
            subject_type=entity.type,
            subject_id=entity.id,
            entity=entity,
            mode=DualWriteMode.UPDATE,
            context=timeline_context,
            payload=data,
            action="entity.update",
        )
        return entity, projection
