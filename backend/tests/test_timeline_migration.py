"""Tests for the legacy timeline migration."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from worldline.database.db import connect
from worldline.models import MigrationOptions
from worldline.services.timeline_migration import (
    LEGACY_AXIS_CODE,
    LEGACY_ERA_CODE,
    LegacyTimelineMigrationService,
)

DB = "world"
KEEP_LEGACY = MigrationOptions(delete_legacy=False)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _execute(sql: str, params: tuple = ()) -> None:
    db = await connect(DB)
    try:
        await db.execute(sql, params)
        await db.commit()
    finally:
        await db.close()


async def _count(table: str) -> int:
    db = await connect(DB)
    try:
        cursor = await db.execute(f"SELECT COUNT(*) AS total FROM {table}")
        return (await cursor.fetchone())["total"]
    finally:
        await db.close()


async def _world_rule_timeline_ids(rule_id: str) -> list:
    db = await connect(DB)
    try:
        cursor = await db.execute("SELECT timeline_ids FROM world_rules WHERE id = ?", (rule_id,))
        return json.loads((await cursor.fetchone())["timeline_ids"])
    finally:
        await db.close()


async def _seed_legacy_world() -> None:
    """
    Four legacy timelines with a created_at tie between t1 and t3, one
    timeline without a timestamp, two occurs-on links and two world rules.
    """
    db = await connect(DB)
    try:
        await db.executemany(
            """INSERT INTO legacy_timelines
               (id, name, code, summary, duration_years, tags, previous_id, next_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                ("t1", "B", "T1", "first", 100, '["age"]', "t2", "t3", "2020-01-02"),
                ("t2", "Z", None, None, None, "[]", None, "t1", "2020-01-01"),
                ("t3", "A", None, None, 5, "[]", "t1", "t1", "2020-01-02"),
                ("t4", "C", None, None, None, "[]", None, None, None),
            ],
        )
        await db.executemany(
            "INSERT INTO events (id, name, summary) VALUES (?, ?, ?)",
            [
                ("e1", "Founding", "The city is founded"),
                ("e2", None, None),
            ],
        )
        await db.executemany(
            "INSERT INTO legacy_occurs_on (event_id, timeline_id, year) VALUES (?, ?, ?)",
            [
                ("e1", "t1", 10),
                ("e2", "t2", None),
            ],
        )
        await db.executemany(
            "INSERT INTO world_rules (id, name, timeline_ids) VALUES (?, ?, ?)",
            [
                ("r1", "Magic fades", '["t1", "elsewhere"]'),
                ("r2", "Unrelated", '["elsewhere"]'),
            ],
        )
        await db.commit()
    finally:
        await db.close()


# ---------------------------------------------------------------------------
# Hierarchy construction
# ---------------------------------------------------------------------------


class TestMigrationHierarchy:
    @pytest.mark.asyncio
    async def test_empty_database(self) -> None:
        service = LegacyTimelineMigrationService()
        report = await service.migrate(DB)

        assert report.timelines_found == 0
        assert report.segments_total == 0
        assert report.markers_total == 0
        assert report.unresolved_legacy_event_links == 0
        assert report.deleted_legacy_timeline_nodes

        anchor = await service.get_legacy_anchor(DB)
        assert anchor is not None
        axis, era = anchor
        assert axis.id == report.axis_id
        assert axis.code == LEGACY_AXIS_CODE
        assert era.id == report.era_id
        assert era.code == LEGACY_ERA_CODE
        assert era.axis_id == axis.id

    @pytest.mark.asyncio
    async def test_segment_order_follows_created_at_then_name(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        await service.migrate(DB, KEEP_LEGACY)

        segments = {s.legacy_timeline_id: s for s in await service.list_segments(DB)}
        assert {k: s.order for k, s in segments.items()} == {"t4": 0, "t2": 1, "t3": 2, "t1": 3}
        assert sorted(s.order for s in segments.values()) == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_segment_fields(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        report = await service.migrate(DB, KEEP_LEGACY)

        segments = {s.legacy_timeline_id: s for s in await service.list_segments(DB)}
        first = segments["t1"]
        assert first.id == "legacy-segment-t1"
        assert first.axis_id == report.axis_id
        assert first.era_id == report.era_id
        assert first.name == "B"
        assert first.code == "T1"
        assert first.start_tick == 0
        assert first.end_tick == 100
        assert first.tags == ["age"]
        assert segments["t2"].end_tick == 0

    @pytest.mark.asyncio
    async def test_markers_from_occurs_on_links(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        report = await service.migrate(DB, KEEP_LEGACY)

        assert report.legacy_event_links_found == 2
        assert report.markers_created == 2
        markers = {m.legacy_event_id: m for m in await service.list_markers(DB)}
        founding = markers["e1"]
        assert founding.id == "legacy-marker-e1"
        assert founding.label == "Founding"
        assert founding.tick == 10
        assert founding.marker_type == "event"
        assert founding.description == "The city is founded"
        assert founding.event_ref_id == "e1"
        assert founding.segment_id == "legacy-segment-t1"

        # Unnamed event falls back to its timeline's name, missing year to tick 0
        assert markers["e2"].label == "Z"
        assert markers["e2"].tick == 0

        assert await service.list_marker_owners(DB, "legacy-marker-e1") == ["legacy-segment-t1"]
        assert await service.list_marker_owners(DB, "legacy-marker-e2") == ["legacy-segment-t2"]

    @pytest.mark.asyncio
    async def test_unnamed_timeline_sorts_after_named_on_created_at_tie(self) -> None:
        await _execute(
            """INSERT INTO legacy_timelines (id, name, created_at) VALUES
               ('a-unnamed', NULL, '2020-01-01'),
               ('b-named', 'Named', '2020-01-01'),
               ('c-later', 'Earlier name', '2020-02-01')"""
        )
        service = LegacyTimelineMigrationService()

        await service.migrate(DB, KEEP_LEGACY)

        segments = {s.legacy_timeline_id: s for s in await service.list_segments(DB)}
        assert {k: s.order for k, s in segments.items()} == {"b-named": 0, "a-unnamed": 1, "c-later": 2}
        assert segments["a-unnamed"].name == "Legacy timeline"

    @pytest.mark.asyncio
    async def test_fractional_duration_truncates_to_end_tick(self) -> None:
        await _execute(
            "INSERT INTO legacy_timelines (id, name, duration_years) VALUES (?, ?, ?)",
            ("t1", "Long age", 2.5),
        )
        service = LegacyTimelineMigrationService()

        report = await service.migrate(DB)

        assert report.segments_created == 1
        [segment] = await service.list_segments(DB)
        assert segment.end_tick == 2

    @pytest.mark.asyncio
    async def test_unusable_duration_and_tag_values_are_defaulted(self) -> None:
        await _execute(
            "INSERT INTO legacy_timelines (id, name, duration_years, tags) VALUES (?, ?, ?, ?)",
            ("t1", "Odd", "a while", '[1, "kept", null]'),
        )
        await _execute(
            "INSERT INTO legacy_timelines (id, name, tags) VALUES (?, ?, ?)",
            ("t2", "Odder", '{"not": "a list"}'),
        )
        service = LegacyTimelineMigrationService()

        await service.migrate(DB)

        segments = {s.legacy_timeline_id: s for s in await service.list_segments(DB)}
        assert segments["t1"].end_tick == 0
        assert segments["t1"].tags == ["kept"]
        assert segments["t2"].tags == []

    @pytest.mark.asyncio
    async def test_invalid_database_name(self) -> None:
        with pytest.raises(ValueError):
            await LegacyTimelineMigrationService().migrate("../escape")


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


class TestMigrationIdempotence:
    @pytest.mark.asyncio
    async def test_second_run_reuses_ids_and_counts(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        first = await service.migrate(DB, KEEP_LEGACY)
        segments_first = [s.id for s in await service.list_segments(DB)]
        markers_first = [m.id for m in await service.list_markers(DB)]

        second = await service.migrate(DB, KEEP_LEGACY)

        assert first.segments_created == 4
        assert first.markers_created == 2
        assert second.axis_id == first.axis_id
        assert second.era_id == first.era_id
        assert second.segments_created == 0
        assert second.markers_created == 0
        assert second.segments_total == first.segments_total == 4
        assert second.markers_total == first.markers_total == 2
        assert [s.id for s in await service.list_segments(DB)] == segments_first
        assert [m.id for m in await service.list_markers(DB)] == markers_first
        assert await _count("timeline_axes") == 1
        assert await _count("timeline_eras") == 1

    @pytest.mark.asyncio
    async def test_repointed_link_keeps_single_owner(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()
        await service.migrate(DB, KEEP_LEGACY)

        await _execute("UPDATE legacy_occurs_on SET timeline_id = 't3' WHERE event_id = 'e1'")
        report = await service.migrate(DB, KEEP_LEGACY)

        assert report.markers_created == 0
        assert await service.list_marker_owners(DB, "legacy-marker-e1") == ["legacy-segment-t3"]
        markers = {m.id: m for m in await service.list_markers(DB)}
        assert markers["legacy-marker-e1"].segment_id == "legacy-segment-t3"
        assert await _count("timeline_segment_markers") == 2


# ---------------------------------------------------------------------------
# World rules
# ---------------------------------------------------------------------------


class TestWorldRuleRemap:
    @pytest.mark.asyncio
    async def test_matching_ids_are_replaced(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        report = await service.migrate(DB, KEEP_LEGACY)

        assert report.world_rules_updated == 1
        assert await _world_rule_timeline_ids("r1") == ["legacy-segment-t1", "elsewhere"]
        assert await _world_rule_timeline_ids("r2") == ["elsewhere"]

    @pytest.mark.asyncio
    async def test_unchanged_rules_are_not_counted_again(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        await service.migrate(DB, KEEP_LEGACY)
        second = await service.migrate(DB, KEEP_LEGACY)

        assert second.world_rules_updated == 0


# ---------------------------------------------------------------------------
# Legacy cleanup
# ---------------------------------------------------------------------------


class TestLegacyCleanup:
    @pytest.mark.asyncio
    async def test_deletes_legacy_when_fully_resolved(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        report = await service.migrate(DB)

        assert report.unresolved_legacy_event_links == 0
        assert report.deleted_legacy_timeline_nodes
        assert report.deleted_occurs_on_relations == 2
        assert report.deleted_timelines == 4
        assert await _count("legacy_timelines") == 0
        assert await _count("legacy_occurs_on") == 0
        assert await _count("timeline_segments") == 4
        assert await _count("timeline_markers") == 2
        assert await _count("events") == 2

    @pytest.mark.asyncio
    async def test_keep_legacy_leaves_everything(self) -> None:
        await _seed_legacy_world()

        report = await LegacyTimelineMigrationService().migrate(DB, KEEP_LEGACY)

        assert not report.deleted_legacy_timeline_nodes
        assert report.deleted_timelines == 0
        assert await _count("legacy_timelines") == 4
        assert await _count("legacy_occurs_on") == 2

    @pytest.mark.asyncio
    async def test_unresolved_links_block_deletion(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        with patch.object(
            LegacyTimelineMigrationService,
            "_migrate_event_links",
            AsyncMock(return_value=0),
        ):
            report = await service.migrate(DB)

        assert report.unresolved_legacy_event_links == 2
        assert report.legacy_event_links_found == 2
        assert report.markers_total == 0
        assert not report.deleted_legacy_timeline_nodes
        assert report.deleted_occurs_on_relations == 0
        assert await _count("legacy_timelines") == 4
        assert await _count("legacy_occurs_on") == 2


# ---------------------------------------------------------------------------
# Atomicity
# ---------------------------------------------------------------------------


class TestMigrationAtomicity:
    @pytest.mark.asyncio
    async def test_failure_rolls_back_every_step(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        with patch.object(
            LegacyTimelineMigrationService,
            "_remap_world_rule_timelines",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            with pytest.raises(RuntimeError, match="boom"):
                await service.migrate(DB)

        assert await service.get_legacy_anchor(DB) is None
        assert await service.list_segments(DB) == []
        assert await service.list_markers(DB) == []
        assert await _count("legacy_timelines") == 4
        assert await _world_rule_timeline_ids("r1") == ["t1", "elsewhere"]

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(self) -> None:
        await _seed_legacy_world()
        service = LegacyTimelineMigrationService()

        with patch.object(
            LegacyTimelineMigrationService,
            "_remap_world_rule_timelines",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            with pytest.raises(RuntimeError):
                await service.migrate(DB)

        report = await service.migrate(DB)

        assert report.segments_created == 4
        assert report.deleted_legacy_timeline_nodes
