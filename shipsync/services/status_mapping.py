"""
ECCANG status tokens -> internal ShipmentStatus.

The provider mixes numeric codes (0..7), English words and its own
abbreviations across operations. normalize_status is pure and total: unknown
non-empty strings come back uppercased, anything empty or unparseable is CREATED.
"""
from typing import Any, Union

from shipsync.models import ShipmentStatus

# Numeric order/track status codes
ECCANG_STATUS_CODES = {
    "0": ShipmentStatus.CREATED,
    "1": ShipmentStatus.SUBMITTED,
    "2": ShipmentStatus.AWAITING_TRACK_NUMBER,
    "3": ShipmentStatus.LABEL_READY,
    "4": ShipmentStatus.IN_TRANSIT,
    "5": ShipmentStatus.DELIVERED,
    "6": ShipmentStatus.EXCEPTION,
    "7": ShipmentStatus.CANCELLED,
}

# Lowercase word/abbreviation aliases
ECCANG_STATUS_ALIASES = {
    "created": ShipmentStatus.CREATED,
    "draft": ShipmentStatus.CREATED,
    "new": ShipmentStatus.CREATED,
    "submitted": ShipmentStatus.SUBMITTED,
    "submit": ShipmentStatus.SUBMITTED,
    "confirmed": ShipmentStatus.SUBMITTED,
    "received": ShipmentStatus.SUBMITTED,
    "pending": ShipmentStatus.SUBMITTED,
    "awaiting_track_number": ShipmentStatus.AWAITING_TRACK_NUMBER,
    "awaiting": ShipmentStatus.AWAITING_TRACK_NUMBER,
    "waiting": ShipmentStatus.AWAITING_TRACK_NUMBER,
    "no_track": ShipmentStatus.AWAITING_TRACK_NUMBER,
    "processing": ShipmentStatus.AWAITING_TRACK_NUMBER,
    "label_ready": ShipmentStatus.LABEL_READY,
    "labelled": ShipmentStatus.LABEL_READY,
    "labeled": ShipmentStatus.LABEL_READY,
    "printed": ShipmentStatus.LABEL_READY,
    "in_transit": ShipmentStatus.IN_TRANSIT,
    "in transit": ShipmentStatus.IN_TRANSIT,
    "transit": ShipmentStatus.IN_TRANSIT,
    "shipped": ShipmentStatus.IN_TRANSIT,
    "dispatched": ShipmentStatus.IN_TRANSIT,
    "picked_up": ShipmentStatus.IN_TRANSIT,
    "pickup": ShipmentStatus.IN_TRANSIT,
    "out_for_delivery": ShipmentStatus.IN_TRANSIT,
    "delivered": ShipmentStatus.DELIVERED,
    "signed": ShipmentStatus.DELIVERED,
    "exception": ShipmentStatus.EXCEPTION,
    "problem": ShipmentStatus.EXCEPTION,
    "failed": ShipmentStatus.EXCEPTION,
    "undelivered": ShipmentStatus.EXCEPTION,
    "returned": ShipmentStatus.EXCEPTION,
    "lost": ShipmentStatus.EXCEPTION,
    "cancelled": ShipmentStatus.CANCELLED,
    "canceled": ShipmentStatus.CANCELLED,
    "cancel": ShipmentStatus.CANCELLED,
    "void": ShipmentStatus.CANCELLED,
}

# Both tables answer string lookups
ECCANG_TO_INTERNAL = {**ECCANG_STATUS_CODES, **ECCANG_STATUS_ALIASES}

# Create-order statuses that mean a tracking number is still to come
AWAITING_STATES = (ShipmentStatus.AWAITING_TRACK_NUMBER, ShipmentStatus.LABEL_READY)

# Statuses before a label exists
PRE_LABEL_STATES = (
    ShipmentStatus.CREATED,
    ShipmentStatus.SUBMITTED,
    ShipmentStatus.AWAITING_TRACK_NUMBER,
)


def _stringify_number(value: Union[int, float]) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_status(token: Any) -> Union[ShipmentStatus, str]:
    """Map a provider status token to ShipmentStatus. Never raises."""
    if token is None or isinstance(token, bool):
        return ShipmentStatus.CREATED
    if isinstance(token, (int, float)):
        raw = _stringify_number(token)
        return ECCANG_TO_INTERNAL.get(raw, raw.upper())
    if not isinstance(token, str):
        return ShipmentStatus.CREATED
    normalized = token.strip().lower()
    if not normalized:
        return ShipmentStatus.CREATED
    return (
        ECCANG_TO_INTERNAL.get(normalized)
        or ECCANG_TO_INTERNAL.get(normalized.replace(" ", "_").replace("-", "_"))
        or token.upper()
    )


def is_lifecycle_status(value: Any) -> bool:
    return value in {s.value for s in ShipmentStatus}


def status_value(status: Union[ShipmentStatus, str]) -> str:
    """Plain string for persistence."""
    return status.value if isinstance(status, ShipmentStatus) else str(status)
