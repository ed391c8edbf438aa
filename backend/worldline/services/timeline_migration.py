"""Migration of legacy flat timelines into the axis → era → segment → marker hierarchy.

A run executes inside a single write transaction and is keyed by natural ids
(``legacy_timeline_id`` on segments, ``legacy_event_id`` on markers, sentinel
codes on the axis and era), so re-running it updates rows in place instead of
duplicating them. Run at most one migration per database at a time.
"""

import json
import math
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import aiosqlite

from worldline.database.db import connect
from worldline.logging import get_logger
from worldline.models import (
    LegacyTimeline,
    MigrationOptions,
    MigrationReport,
    TimelineAxis,
    TimelineEra,
    TimelineMarker,
    TimelineSegment,
)

logger = get_logger("services.timeline_migration")

LEGACY_AXIS_CODE = "__legacy_timeline_axis__"
LEGACY_AXIS_NAME = "Legacy timeline axis"
LEGACY_AXIS_DESCRIPTION = "Auto-generated axis for migrated legacy timeline nodes."
LEGACY_ERA_CODE = "__legacy_timeline_era__"
LEGACY_ERA_NAME = "Legacy timeline era"
LEGACY_ERA_SUMMARY = "Auto-generated era that stores converted legacy timeline segments."

LEGACY_SEGMENT_ID_PREFIX = "legacy-segment-"
LEGACY_MARKER_ID_PREFIX = "legacy-marker-"

COUNT_LEGACY_TIMELINES = "SELECT COUNT(*) AS total FROM legacy_timelines"

COUNT_LEGACY_EVENT_LINKS = """
SELECT COUNT(*) AS total
FROM legacy_occurs_on o
JOIN events ev ON ev.id = o.event_id
JOIN legacy_timelines t ON t.id = o.timeline_id
"""

COUNT_MIGRATED_SEGMENTS = (
    "SELECT COUNT(*) AS total FROM timeline_segments WHERE legacy_timeline_id IS NOT NULL"
)

COUNT_MIGRATED_MARKERS = (
    "SELECT COUNT(*) AS total FROM timeline_markers WHERE legacy_event_id IS NOT NULL"
)

COUNT_UNRESOLVED_LEGACY_EVENT_LINKS = """
SELECT COUNT(*) AS total
FROM legacy_occurs_on o
JOIN events ev ON ev.id = o.event_id
JOIN legacy_timelines t ON t.id = o.timeline_id
WHERE NOT EXISTS (
    SELECT 1 FROM timeline_markers m WHERE m.event_ref_id = o.event_id
)
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_json(raw: str | None, fallback: Any) -> Any:
    if not raw:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return fallback


def _first_present(*values: Any, default: Any = None) -> Any:
    return next((v for v in values if v is not None), default)


def _as_duration(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _row_to_legacy_timeline(row: dict) -> LegacyTimeline:
    tags = _load_json(row.get("tags"), [])
    if not isinstance(tags, list):
        tags = []
    return LegacyTimeline(
        id=row["id"],
        name=row.get("name"),
        code=row.get("code"),
        summary=row.get("summary"),
        description=row.get("description"),
        duration_years=_as_duration(row.get("duration_years")),
        notes=row.get("notes"),
        tags=[tag for tag in tags if isinstance(tag, str)],
        previous_id=row.get("previous_id"),
        next_id=row.get("next_id"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _row_to_segment(row: dict) -> TimelineSegment:
    return TimelineSegment(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row["era_id"],
        name=row["name"],
        code=row.get("code"),
        summary=row.get("summary"),
        description=row.get("description"),
        order=row["order_index"],
        start_tick=row["start_tick"],
        end_tick=row["end_tick"],
        notes=row.get("notes"),
        tags=_load_json(row.get("tags"), []),
        legacy_timeline_id=row.get("legacy_timeline_id"),
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_marker(row: dict) -> TimelineMarker:
    return TimelineMarker(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row.get("era_id"),
        segment_id=row.get("segment_id"),
        label=row["label"],
        tick=row["tick"],
        marker_type=row["marker_type"],
        description=row.get("description"),
        event_ref_id=row.get("event_ref_id"),
        legacy_event_id=row.get("legacy_event_id"),
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class LegacyTimelineMigrationService:
    """Moves legacy timelines and occurs-on links onto segments and markers."""

    async def _get_db(self, database: str) -> aiosqlite.Connection:
        return await connect(database)

    async def _count(self, db: aiosqlite.Connection, query: str) -> int:
        cursor = await db.execute(query)
        row = await cursor.fetchone()
        return int(row["total"]) if row and row["total"] is not None else 0

    async def migrate(
        self,
        database: str,
        options: Optional[MigrationOptions] = None,
    ) -> MigrationReport:
        """
        Run the legacy timeline migration as one atomic transaction.

        Any failure rolls the whole run back and is re-raised. Every step is
        idempotent, so a failed run can be retried as is.

        :param database: Logical database name
        :type database: str
        :param options: Migration options, defaults to deleting legacy data when fully resolved
        :type options: MigrationOptions | None
        :return: Counts describing what the run found, created and deleted
        :rtype: MigrationReport
        """
        options = options or MigrationOptions()
        logger.info(f"Starting legacy timeline migration on '{database}' (delete_legacy={options.delete_legacy})")

        db = await self._get_db(database)
        try:
            await db.execute("BEGIN IMMEDIATE")
            try:
                report = await self._run(db, options)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception(f"Legacy timeline migration on '{database}' failed; transaction rolled back")
                raise
        finally:
            await db.close()

        logger.info(
            f"Legacy timeline migration on '{database}' done: "
            f"segments +{report.segments_created}/{report.segments_total}, "
            f"markers +{report.markers_created}/{report.markers_total}, "
            f"world rules updated {report.world_rules_updated}, "
            f"unresolved links {report.unresolved_legacy_event_links}, "
            f"legacy deleted={report.deleted_legacy_timeline_nodes}"
        )
        return report

    async def _run(self, db: aiosqlite.Connection, options: MigrationOptions) -> MigrationReport:
        now = _now()
        axis_id, era_id = await self._ensure_legacy_axis_era(db, now)

        timelines_found = await self._count(db, COUNT_LEGACY_TIMELINES)
        legacy_event_links_found = await self._count(db, COUNT_LEGACY_EVENT_LINKS)
        segments_before = await self._count(db, COUNT_MIGRATED_SEGMENTS)
        markers_before = await self._count(db, COUNT_MIGRATED_MARKERS)

        await self._migrate_timelines(db, axis_id, era_id, now)
        await self._migrate_event_links(db, now)
        world_rules_updated = await self._remap_world_rule_timelines(db, now)

        segments_total = await self._count(db, COUNT_MIGRATED_SEGMENTS)
        markers_total = await self._count(db, COUNT_MIGRATED_MARKERS)
        unresolved = await self._count(db, COUNT_UNRESOLVED_LEGACY_EVENT_LINKS)

        report = MigrationReport(
            axis_id=axis_id,
            era_id=era_id,
            timelines_found=timelines_found,
            segments_created=max(0, segments_total - segments_before),
            segments_total=segments_total,
            legacy_event_links_found=legacy_event_links_found,
            markers_created=max(0, markers_total - markers_before),
            markers_total=markers_total,
            world_rules_updated=world_rules_updated,
            unresolved_legacy_event_links=unresolved,
        )

        if options.delete_legacy and unresolved == 0:
            deleted_links, deleted_timelines = await self._delete_legacy(db)
            report.deleted_occurs_on_relations = deleted_links
            report.deleted_timelines = deleted_timelines
            report.deleted_legacy_timeline_nodes = True
        elif options.delete_legacy:
            logger.warning(
                f"Keeping legacy timelines: {unresolved} occurs-on link(s) have no marker"
            )
        return report

    async def _ensure_legacy_axis_era(
        self,
        db: aiosqlite.Connection,
        now: str,
    ) -> tuple[str, str]:
        await db.execute(
            """INSERT INTO timeline_axes
               (id, code, name, axis_type, description, status, created_at, updated_at)
               VALUES (?, ?, ?, 'parallel', ?, 'active', ?, ?)
               ON CONFLICT(code) DO UPDATE SET updated_at = excluded.updated_at""",
            (str(uuid4()), LEGACY_AXIS_CODE, LEGACY_AXIS_NAME, LEGACY_AXIS_DESCRIPTION, now, now),
        )
        cursor = await db.execute("SELECT id FROM timeline_axes WHERE code = ?", (LEGACY_AXIS_CODE,))
        axis_id = (await cursor.fetchone())["id"]

        await db.execute(
            """INSERT INTO timeline_eras
               (id, axis_id, code, name, summary, order_index, status, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, 0, 'active', ?, ?)
               ON CONFLICT(code) DO UPDATE SET
                   axis_id = excluded.axis_id,
                   updated_at = excluded.updated_at""",
            (str(uuid4()), axis_id, LEGACY_ERA_CODE, LEGACY_ERA_NAME, LEGACY_ERA_SUMMARY, now, now),
        )
        cursor = await db.execute("SELECT id FROM timeline_eras WHERE code = ?", (LEGACY_ERA_CODE,))
        era_id = (await cursor.fetchone())["id"]
        return axis_id, era_id

    async def _migrate_timelines(
        self,
        db: aiosqlite.Connection,
        axis_id: str,
        era_id: str,
        now: str,
    ) -> int:
        # Sequence comes from a total order on rows, never from the
        # previous/next chain, which may contain cycles.
        cursor = await db.execute(
            """SELECT * FROM legacy_timelines
               ORDER BY COALESCE(created_at, '') ASC, name IS NULL, name ASC, id ASC"""
        )
        rows = await cursor.fetchall()

        for index, row in enumerate(rows):
            timeline = _row_to_legacy_timeline(dict(row))
            await db.execute(
                """INSERT INTO timeline_segments
                   (id, axis_id, era_id, name, code, summary, description, order_index,
                    start_tick, end_tick, notes, tags, legacy_timeline_id, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, 'active', ?, ?)
                   ON CONFLICT(legacy_timeline_id) DO UPDATE SET
                       axis_id = excluded.axis_id,
                       era_id = excluded.era_id,
                       name = excluded.name,
                       code = excluded.code,
                       summary = excluded.summary,
                       description = excluded.description,
                       order_index = excluded.order_index,
                       start_tick = excluded.start_tick,
                       end_tick = excluded.end_tick,
                       notes = excluded.notes,
                       tags = excluded.tags,
                       updated_at = excluded.updated_at""",
                (
                    f"{LEGACY_SEGMENT_ID_PREFIX}{timeline.id}",
                    axis_id,
                    era_id,
                    _first_present(timeline.name, default="Legacy timeline"),
                    timeline.code,
                    timeline.summary,
                    timeline.description,
                    index,
                    # Fractional durations truncate toward zero
                    int(timeline.duration_years or 0),
                    timeline.notes,
                    json.dumps(timeline.tags),
                    timeline.id,
                    now,
                    now,
                ),
            )
        return len(rows)

    async def _migrate_event_links(self, db: aiosqlite.Connection, now: str) -> int:
        cursor = await db.execute(
            """SELECT o.event_id, o.year,
                      ev.name AS event_name, ev.summary AS event_summary,
                      t.name AS timeline_name,
                      s.id AS segment_id, s.axis_id, s.era_id
               FROM legacy_occurs_on o
               JOIN events ev ON ev.id = o.event_id
               JOIN legacy_timelines t ON t.id = o.timeline_id
               JOIN timeline_segments s ON s.legacy_timeline_id = t.id
               ORDER BY o.event_id ASC, t.id ASC"""
        )
        links = [dict(r) for r in await cursor.fetchall()]

        for link in links:
            event_id = link["event_id"]
            segment_id = link["segment_id"]
            await db.execute(
                """INSERT INTO timeline_markers
                   (id, axis_id, era_id, segment_id, label, tick, marker_type, description,
                    event_ref_id, legacy_event_id, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, 'event', ?, ?, ?, 'active', ?, ?)
                   ON CONFLICT(legacy_event_id) DO UPDATE SET
                       axis_id = excluded.axis_id,
                       era_id = excluded.era_id,
                       segment_id = excluded.segment_id,
                       label = excluded.label,
                       tick = excluded.tick,
                       marker_type = excluded.marker_type,
                       description = COALESCE(excluded.description, timeline_markers.description),
                       event_ref_id = excluded.event_ref_id,
                       updated_at = excluded.updated_at""",
                (
                    f"{LEGACY_MARKER_ID_PREFIX}{event_id}",
                    link["axis_id"],
                    link["era_id"],
                    segment_id,
                    _first_present(link["event_name"], link["timeline_name"], default="Legacy marker"),
                    int(_first_present(link["year"], default=0)),
                    link["event_summary"],
                    event_id,
                    event_id,
                    now,
                    now,
                ),
            )
            marker_cursor = await db.execute(
                "SELECT id FROM timeline_markers WHERE legacy_event_id = ?",
                (event_id,),
            )
            marker_id = (await marker_cursor.fetchone())["id"]

            # A marker has exactly one owning segment: detach before attaching.
            await db.execute(
                "DELETE FROM timeline_segment_markers WHERE marker_id = ? AND segment_id <> ?",
                (marker_id, segment_id),
            )
            await db.execute(
                """INSERT INTO timeline_segment_markers (segment_id, marker_id, created_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(segment_id, marker_id) DO NOTHING""",
                (segment_id, marker_id, now),
            )
        return len(links)

    async def _remap_world_rule_timelines(self, db: aiosqlite.Connection, now: str) -> int:
        cursor = await db.execute(
            "SELECT id, legacy_timeline_id FROM timeline_segments WHERE legacy_timeline_id IS NOT NULL"
        )
        segment_by_legacy_id = {row["legacy_timeline_id"]: row["id"] for row in await cursor.fetchall()}

        cursor = await db.execute("SELECT id, timeline_ids FROM world_rules")
        rules = [dict(r) for r in await cursor.fetchall()]

        updated = 0
        for rule in rules:
            timeline_ids = _load_json(rule["timeline_ids"], [])
            if not isinstance(timeline_ids, list):
                continue
            mapped = [
                segment_by_legacy_id.get(timeline_id, timeline_id) if isinstance(timeline_id, str) else timeline_id
                for timeline_id in timeline_ids
            ]
            if mapped == timeline_ids:
                continue
            await db.execute(
                "UPDATE world_rules SET timeline_ids = ?, updated_at = ? WHERE id = ?",
                (json.dumps(mapped), now, rule["id"]),
            )
            updated += 1
        return updated

    async def _delete_legacy(self, db: aiosqlite.Connection) -> tuple[int, int]:
        cursor = await db.execute(
            """DELETE FROM legacy_occurs_on
               WHERE event_id IN (SELECT id FROM events)
                 AND timeline_id IN (SELECT id FROM legacy_timelines)"""
        )
        deleted_links = cursor.rowcount
        cursor = await db.execute("DELETE FROM legacy_timelines")
        deleted_timelines = cursor.rowcount
        return max(deleted_links, 0), max(deleted_timelines, 0)

    # Read helpers for inspecting migrated data

    async def get_legacy_anchor(self, database: str) -> tuple[TimelineAxis, TimelineEra] | None:
        db = await self._get_db(database)
        try:
            cursor = await db.execute("SELECT * FROM timeline_axes WHERE code = ?", (LEGACY_AXIS_CODE,))
            axis_row = await cursor.fetchone()
            cursor = await db.execute("SELECT * FROM timeline_eras WHERE code = ?", (LEGACY_ERA_CODE,))
            era_row = await cursor.fetchone()
        finally:
            await db.close()
        if not axis_row or not era_row:
            return None
        axis = TimelineAxis(**dict(axis_row))
        era_data = dict(era_row)
        era_data["order"] = era_data.pop("order_index")
        return axis, TimelineEra(**era_data)

    async def list_segments(self, database: str) -> list[TimelineSegment]:
        db = await self._get_db(database)
        try:
            cursor = await db.execute(
                "SELECT * FROM timeline_segments ORDER BY era_id ASC, order_index ASC, id ASC"
            )
            rows = await cursor.fetchall()
            return [_row_to_segment(dict(r)) for r in rows]
        finally:
            await db.close()

    async def list_markers(self, database: str) -> list[TimelineMarker]:
        db = await self._get_db(database)
        try:
            cursor = await db.execute(
                "SELECT * FROM timeline_markers ORDER BY segment_id ASC, tick ASC, id ASC"
            )
            rows = await cursor.fetchall()
            return [_row_to_marker(dict(r)) for r in rows]
        finally:
            await db.close()

    async def list_marker_owners(self, database: str, marker_id: str) -> list[str]:
        """Ids of the segments that own a marker through the ownership edge."""
        db = await self._get_db(database)
        try:
            cursor = await db.execute(
                "SELECT segment_id FROM timeline_segment_markers WHERE marker_id = ? ORDER BY segment_id",
                (marker_id,),
            )
            return [row["segment_id"] for row in await cursor.fetchall()]
        finally:
            await db.close()
