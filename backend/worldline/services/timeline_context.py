"""Timeline write context parsing and field flattening helpers shared by dual-write."""

import json
import re
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel

from worldline.models import DualWriteMode, TimelineWriteContext

AXIS_ID_HEADER = "x-timeline-axis-id"
TICK_HEADER = "x-timeline-tick"
ERA_ID_HEADER = "x-timeline-era-id"
SEGMENT_ID_HEADER = "x-timeline-segment-id"
MARKER_ID_HEADER = "x-timeline-marker-id"
EVENT_ID_HEADER = "x-timeline-event-id"

IGNORED_ROOT_KEYS = frozenset({"id", "created_at", "updated_at", "createdAt", "updatedAt"})
MAX_FLATTEN_DEPTH = 32

_TICK_PATTERN = re.compile(r"[+-]?[0-9]+(?:\.0*)?")


def _normalized_headers(headers: Mapping[str, str]) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        # First occurrence wins for repeated headers.
        normalized.setdefault(key.lower(), value)
    return normalized


def _read_header(headers: dict[str, str], name: str) -> Optional[str]:
    raw = headers.get(name)
    if not isinstance(raw, str):
        return None
    trimmed = raw.strip()
    return trimmed or None


def _read_tick(raw: Optional[str]) -> Optional[int]:
    if raw is None or not _TICK_PATTERN.fullmatch(raw):
        return None
    return int(raw.split(".", 1)[0])


def parse_timeline_write_context(headers: Mapping[str, str]) -> Optional[TimelineWriteContext]:
    """
    Build a timeline write context from ``x-timeline-*`` request headers.

    Axis id and an integral tick are required; era, segment, marker and event
    ids are optional.

    :param headers: Request headers (any case)
    :type headers: Mapping[str, str]
    :return: The parsed context, or None when the required headers are absent or invalid
    :rtype: TimelineWriteContext | None
    """
    normalized = _normalized_headers(headers)
    axis_id = _read_header(normalized, AXIS_ID_HEADER)
    tick = _read_tick(_read_header(normalized, TICK_HEADER))
    if not axis_id or tick is None:
        return None
    return TimelineWriteContext(
        axis_id=axis_id,
        tick=tick,
        era_id=_read_header(normalized, ERA_ID_HEADER),
        segment_id=_read_header(normalized, SEGMENT_ID_HEADER),
        marker_id=_read_header(normalized, MARKER_ID_HEADER),
        event_id=_read_header(normalized, EVENT_ID_HEADER),
    )


def to_plain(value: Any, exclude_unset: bool = False) -> Any:
    """Dump pydantic models to plain dicts; pass anything else through."""
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=exclude_unset)
    return value


def _flatten_into(node: dict, prefix: str, depth: int, output: dict[str, Any]) -> None:
    for key, child in node.items():
        if child is None:
            continue
        if not prefix and key in IGNORED_ROOT_KEYS:
            continue
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(child, dict) and depth + 1 < MAX_FLATTEN_DEPTH:
            _flatten_into(child, path, depth + 1, output)
            continue
        output[path] = child


def flatten_fields(value: Any) -> dict[str, Any]:
    """
    Flatten nested dicts into ``{dot.path: leaf}``.

    Lists and scalars are leaves. None values and root bookkeeping keys
    (id and timestamps) are skipped. Dicts nested deeper than
    ``MAX_FLATTEN_DEPTH`` are kept as leaves.

    :param value: A dict or pydantic model
    :type value: Any
    :return: Leaf values keyed by field path, in document order
    :rtype: dict[str, Any]
    """
    output: dict[str, Any] = {}
    plain = to_plain(value)
    if isinstance(plain, dict):
        _flatten_into(plain, "", 0, output)
    return output


def select_changed_fields(
    flattened: dict[str, Any],
    mode: DualWriteMode,
    payload: Any = None,
) -> list[tuple[str, Any]]:
    """
    Pick the fields a write should be recorded for.

    Creates track every field. Updates track only entity fields whose path
    the caller's payload explicitly touched.
    """
    if mode == DualWriteMode.CREATE:
        return list(flattened.items())

    payload_paths = set(flatten_fields(to_plain(payload, exclude_unset=True)))
    if not payload_paths:
        return []
    return [(path, value) for path, value in flattened.items() if path in payload_paths]


def serialize_value(value: Any) -> str:
    """JSON-serialize a field value, falling back to its string form."""
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return json.dumps(str(value))
