"""Append-only timeline state-change store."""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aiosqlite

from worldline.database.db import connect
from worldline.logging import get_logger
from worldline.models import (
    TimelineStateChange,
    TimelineStateChangeCreate,
    TimelineStateChangeQuery,
    normalize_type,
)

logger = get_logger("services.timeline_state_change")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_state_change(row: dict) -> TimelineStateChange:
    return TimelineStateChange(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row.get("era_id"),
        segment_id=row.get("segment_id"),
        marker_id=row.get("marker_id"),
        event_id=row.get("event_id"),
        subject_type=row["subject_type"],
        subject_id=row["subject_id"],
        field_path=row["field_path"],
        change_type=row["change_type"],
        new_value=row.get("new_value"),
        effective_tick=row["effective_tick"],
        notes=row.get("notes"),
        tags=json.loads(row["tags"]),
        created_at=row["created_at"],
    )


class TimelineStateChangeService:
    """Writes and reads field-level provenance records. Records are never updated or deleted."""

    async def _get_db(self, database: str) -> aiosqlite.Connection:
        return await connect(database)

    async def _exists(self, db: aiosqlite.Connection, query: str, params: tuple) -> bool:
        cursor = await db.execute(query, params)
        return await cursor.fetchone() is not None

    async def _resolve_refs(
        self,
        db: aiosqlite.Connection,
        data: TimelineStateChangeCreate,
    ) -> TimelineStateChangeCreate:
        """
        Check that every referenced node exists and agrees with the marker.

        Era and segment ids left empty are filled in from the marker.

        :raises LookupError: If the axis, marker, event or subject does not exist
        :raises ValueError: If the marker belongs to another axis, era or segment
        """
        if not await self._exists(db, "SELECT 1 FROM timeline_axes WHERE id = ?", (data.axis_id,)):
            raise LookupError("Timeline axis not found")

        era_id, segment_id = data.era_id, data.segment_id
        if data.marker_id:
            cursor = await db.execute(
                "SELECT axis_id, era_id, segment_id FROM timeline_markers WHERE id = ?",
                (data.marker_id,),
            )
            marker = await cursor.fetchone()
            if not marker:
                raise LookupError("Timeline marker not found")
            if marker["axis_id"] != data.axis_id:
                raise ValueError("Marker axis_id does not match axis_id")
            if era_id and marker["era_id"] and era_id != marker["era_id"]:
                raise ValueError("Marker era_id does not match era_id")
            if segment_id and marker["segment_id"] and segment_id != marker["segment_id"]:
                raise ValueError("Marker segment_id does not match segment_id")
            era_id = era_id or marker["era_id"]
            segment_id = segment_id or marker["segment_id"]

        if data.event_id and not await self._exists(
            db, "SELECT 1 FROM events WHERE id = ?", (data.event_id,)
        ):
            raise LookupError("Event not found")

        subject_type = normalize_type(data.subject_type)
        if subject_type == "event":
            subject_found = await self._exists(db, "SELECT 1 FROM events WHERE id = ?", (data.subject_id,))
        else:
            subject_found = await self._exists(
                db,
                "SELECT 1 FROM entities WHERE id = ? AND type = ?",
                (data.subject_id, subject_type),
            )
        if not subject_found:
            raise LookupError("Subject not found")

        return data.model_copy(update={"era_id": era_id, "segment_id": segment_id})

    async def create(self, data: TimelineStateChangeCreate, database: str) -> TimelineStateChange:
        """
        Append one provenance record after validating its references.

        :raises LookupError: If a referenced node does not exist
        :raises ValueError: If the marker disagrees with the record's coordinate
        """
        db = await self._get_db(database)
        try:
            data = await self._resolve_refs(db, data)
            record = TimelineStateChange(
                id=str(uuid4()),
                axis_id=data.axis_id,
                era_id=data.era_id,
                segment_id=data.segment_id,
                marker_id=data.marker_id,
                event_id=data.event_id,
                subject_type=data.subject_type,
                subject_id=data.subject_id,
                field_path=data.field_path,
                change_type=data.change_type,
                new_value=data.new_value,
                effective_tick=data.effective_tick,
                notes=data.notes,
                tags=data.tags,
                created_at=_now(),
            )
            await db.execute(
                """INSERT INTO timeline_state_changes
                   (id, axis_id, era_id, segment_id, marker_id, event_id, subject_type, subject_id,
                    field_path, change_type, new_value, effective_tick, notes, tags, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.axis_id,
                    record.era_id,
                    record.segment_id,
                    record.marker_id,
                    record.event_id,
                    record.subject_type,
                    record.subject_id,
                    record.field_path,
                    record.change_type.value,
                    record.new_value,
                    record.effective_tick,
                    record.notes,
                    json.dumps(record.tags),
                    record.created_at.isoformat(),
                ),
            )
            await db.commit()
        finally:
            await db.close()
        logger.debug(
            f"Appended state change {record.id[:8]} for {record.subject_type}:{record.subject_id} "
            f"field={record.field_path} tick={record.effective_tick}"
        )
        return record

    async def list_state_changes(
        self,
        database: str,
        query: TimelineStateChangeQuery | None = None,
    ) -> list[TimelineStateChange]:
        query = query or TimelineStateChangeQuery()
        conditions: list[str] = []
        params: list[Any] = []
        for column in (
            "axis_id",
            "era_id",
            "segment_id",
            "marker_id",
            "event_id",
            "subject_type",
            "subject_id",
        ):
            value = getattr(query, column)
            if value is not None:
                conditions.append(f"{column} = ?")
                params.append(value)
        if query.field_path:
            conditions.append("LOWER(field_path) LIKE ?")
            params.append(f"%{query.field_path.lower()}%")
        if query.tick_from is not None:
            conditions.append("effective_tick >= ?")
            params.append(query.tick_from)
        if query.tick_to is not None:
            conditions.append("effective_tick <= ?")
            params.append(query.tick_to)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"""SELECT * FROM timeline_state_changes {where}
                  ORDER BY effective_tick ASC, created_at DESC, rowid DESC
                  LIMIT ? OFFSET ?"""
        params.extend([query.limit, query.offset])

        db = await self._get_db(database)
        try:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
            return [_row_to_state_change(dict(r)) for r in rows]
        finally:
            await db.close()
