"""
Normalize getCargoTrack event lists.

Each raw record names its fields differently depending on the carrier behind
ECCANG. Timestamp is required (records without a parseable one are dropped);
status, comment and area are optional. Output order follows the input; callers
sort by occurred_at when displaying.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from shipsync.models import NormalizedTrackingEvent
from shipsync.services.payload_search import find_array
from shipsync.services.status_mapping import normalize_status, status_value

logger = logging.getLogger(__name__)

TIMESTAMP_KEYS = (
    "occurredAt",
    "occurDate",
    "occur_date",
    "occur_time",
    "time",
    "trackTime",
    "track_time",
    "track_occur_date",
    "scantime",
    "scanTime",
    "scan_date",
    "eventTime",
    "dealDate",
    "operateDate",
    "created_at",
    "@time",
)

STATUS_KEYS = (
    "status",
    "statusCode",
    "trackStatus",
    "track_status",
    "eventCode",
    "event_code",
    "code",
    "@status",
)

COMMENT_KEYS = (
    "comment",
    "remark",
    "description",
    "trackDesc",
    "track_desc",
    "eventDescription",
    "event_des",
    "context",
    "info",
    "detail",
    "trackContent",
    "track_content",
)

AREA_KEYS = (
    "area",
    "location",
    "city",
    "site",
    "country",
    "position",
    "address",
)

DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 / common provider formats / epoch seconds or milliseconds."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _first_text(record: dict, keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return None


def _first_timestamp(record: dict) -> Optional[datetime]:
    for key in TIMESTAMP_KEYS:
        if key in record:
            parsed = parse_timestamp(record[key])
            if parsed is not None:
                return parsed
    return None


def map_tracking_event(raw: Any) -> Optional[NormalizedTrackingEvent]:
    if not isinstance(raw, dict):
        return None
    occurred_at = _first_timestamp(raw)
    if occurred_at is None:
        return None
    raw_status = _first_text(raw, STATUS_KEYS)
    return NormalizedTrackingEvent(
        occurred_at=occurred_at,
        status_code=status_value(normalize_status(raw_status)) if raw_status else None,
        comment=_first_text(raw, COMMENT_KEYS),
        area=_first_text(raw, AREA_KEYS),
    )


def normalize_events(payload: Any) -> list[NormalizedTrackingEvent]:
    """Convert a raw tracking payload into events; bad records are dropped."""
    if not payload:
        return []
    raw_events = find_array(payload)
    events = []
    for raw in raw_events:
        event = map_tracking_event(raw)
        if event is not None:
            events.append(event)
    dropped = len(raw_events) - len(events)
    if dropped:
        logger.debug("Dropped %s tracking records without a usable timestamp", dropped)
    return events


def _sort_key(event: NormalizedTrackingEvent) -> datetime:
    ts = event.occurred_at
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def latest_event(events: list[NormalizedTrackingEvent]) -> Optional[NormalizedTrackingEvent]:
    """Most recent event (naive timestamps treated as UTC)."""
    if not events:
        return None
    return max(events, key=_sort_key)
