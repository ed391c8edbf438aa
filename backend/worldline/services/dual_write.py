"""Best-effort dual-write of entity writes into the timeline state-change log.

Call ``project`` after the primary write has committed and its connection is
closed. Projection failures are reported in the result and never raised, so
the primary write outcome cannot be affected.
"""

from typing import Any, Optional, Protocol

from worldline.config import settings
from worldline.logging import get_logger
from worldline.models import (
    DualWriteFailure,
    DualWriteMode,
    DualWriteResult,
    DualWriteSkipReason,
    TimelineStateChange,
    TimelineStateChangeCreate,
    TimelineWriteContext,
)
from worldline.services.timeline_audit import audit_timeline_operation
from worldline.services.timeline_context import (
    flatten_fields,
    select_changed_fields,
    serialize_value,
)

logger = get_logger("services.dual_write")

DUAL_WRITE_NOTES = "auto dual-write"
DUAL_WRITE_TAGS = ["dual-write"]


class StateChangeSink(Protocol):
    async def create(self, data: TimelineStateChangeCreate, database: str) -> TimelineStateChange: ...


def _skipped(reason: DualWriteSkipReason) -> DualWriteResult:
    return DualWriteResult(written=0, skipped=True, reason=reason.value)


class TimelineDualWriteService:
    """Projects entity writes into field-level provenance records."""

    def __init__(self, sink: StateChangeSink):
        self.sink = sink

    def _log_result(
        self,
        action: str,
        database: Optional[str],
        subject_id: str,
        result: DualWriteResult,
    ) -> None:
        if result.skipped:
            detail = f"skipped: {result.reason or 'unknown'}"
        else:
            detail = f"written: {result.written}"
            if result.failures:
                detail += f", failed: {len(result.failures)}"
        audit_timeline_operation(
            f"timeline-dual-write.{action}",
            database=database,
            resource_id=subject_id,
            result="success",
            status_code=202 if result.skipped else 200,
            detail=detail,
        )

    async def project(
        self,
        *,
        database: Optional[str],
        subject_type: str,
        subject_id: str,
        entity: Any,
        mode: DualWriteMode,
        context: Optional[TimelineWriteContext],
        payload: Any = None,
        action: str,
    ) -> DualWriteResult:
        """
        Append one state-change record per changed leaf field of ``entity``.

        :param database: Database the primary write went to
        :param subject_type: Type tag of the written entity, e.g. ``character``
        :param subject_id: Id of the written entity
        :param entity: Persisted entity (dict or pydantic model)
        :param mode: Whether the primary write was a create or an update
        :param context: Timeline coordinate of the request, None when absent
        :param payload: Original update payload; its paths decide what an update touched
        :param action: Label used only for operational logging
        :return: Counts, skip reason and per-field failures
        :rtype: DualWriteResult
        """
        if not settings.is_dual_write_enabled:
            result = _skipped(DualWriteSkipReason.DISABLED)
        elif not database:
            result = _skipped(DualWriteSkipReason.MISSING_DB_NAME)
        elif context is None:
            result = _skipped(DualWriteSkipReason.MISSING_CONTEXT)
        else:
            fields = select_changed_fields(flatten_fields(entity), mode, payload)
            if not fields:
                result = _skipped(DualWriteSkipReason.NO_TRACKABLE_FIELDS)
            else:
                result = await self._append_fields(
                    database, subject_type, subject_id, context, fields
                )

        self._log_result(action, database, subject_id, result)
        return result

    async def _append_fields(
        self,
        database: str,
        subject_type: str,
        subject_id: str,
        context: TimelineWriteContext,
        fields: list[tuple[str, Any]],
    ) -> DualWriteResult:
        result = DualWriteResult(written=0, skipped=False)
        for field_path, value in fields:
            try:
                await self.sink.create(
                    TimelineStateChangeCreate(
                        axis_id=context.axis_id,
                        era_id=context.era_id,
                        segment_id=context.segment_id,
                        marker_id=context.marker_id,
                        event_id=context.event_id,
                        subject_type=subject_type,
                        subject_id=subject_id,
                        field_path=field_path,
                        new_value=serialize_value(value),
                        effective_tick=context.tick,
                        notes=DUAL_WRITE_NOTES,
                        tags=list(DUAL_WRITE_TAGS),
                    ),
                    database,
                )
                result.written += 1
            except Exception as e:
                logger.warning(
                    f"[dual-write] append failed for {subject_type}:{subject_id} field={field_path}: {e}"
                )
                result.failures.append(DualWriteFailure(field_path=field_path, error=str(e) or type(e).__name__))
        return result
