"""Structured audit log line for timeline migration and dual-write operations."""

import json
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from worldline.config import settings
from worldline.logging import get_logger

logger = get_logger("services.timeline_audit")


def _safe_dumps(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def audit_timeline_operation(
    action: str,
    *,
    method: Optional[str] = None,
    path: Optional[str] = None,
    database: Optional[str] = None,
    resource_id: Optional[str] = None,
    result: Optional[Literal["success", "error"]] = None,
    status_code: Optional[int] = None,
    detail: Optional[str] = None,
) -> None:
    """
    Emit one ``[timeline-audit]`` line when auditing is enabled.

    :param action: Dotted action name, e.g. ``timeline-migration.legacy``
    :type action: str
    """
    if not settings.TIMELINE_AUDIT_ENABLED:
        return

    payload = {
        "action": action,
        "method": method,
        "path": path,
        "database": database,
        "resource_id": resource_id,
        "result": result,
        "status_code": status_code,
        "detail": detail,
        "read_mode": settings.TIMELINE_READ_MODE,
        "write_mode": settings.TIMELINE_WRITE_MODE,
        "at": datetime.now(timezone.utc).isoformat(),
    }
    line = _safe_dumps({k: v for k, v in payload.items() if v is not None})
    logger.info(f"[timeline-audit] {line}")
