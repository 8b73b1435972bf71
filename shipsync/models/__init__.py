"""
SQLAlchemy models and the plain records the sync core passes around.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shipsync.database import Base
import enum
import uuid


# Enums
class ShipmentStatus(str, enum.Enum):
    CREATED = "CREATED"
    SUBMITTED = "SUBMITTED"
    AWAITING_TRACK_NUMBER = "AWAITING_TRACK_NUMBER"
    LABEL_READY = "LABEL_READY"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"
    CANCELLED = "CANCELLED"


# Models
class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column("owner_id", String, nullable=False, index=True)
    reference_no = Column("reference_no", String, unique=True, nullable=False, index=True)
    shipping_method = Column("shipping_method", String, nullable=True)
    country_code = Column("country_code", String, nullable=True)
    weight_kg = Column("weight_kg", Float, nullable=True)
    pieces = Column("pieces", Integer, nullable=True)
    label_type = Column("label_type", String, nullable=True)
    # String, not SQLEnum: unknown provider tokens are kept in uppercased form
    status = Column("status", String, nullable=False, default=ShipmentStatus.CREATED.value, index=True)
    order_code = Column("order_code", String, nullable=True, index=True)
    tracking_number = Column("tracking_number", String, nullable=True, index=True)
    label_url = Column("label_url", String, nullable=True)
    invoice_url = Column("invoice_url", String, nullable=True)
    raw_request = Column("raw_request", JSON, nullable=True)
    raw_response = Column("raw_response", JSON, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())

    events = relationship("TrackingEvent", back_populates="shipment", cascade="all, delete-orphan")


class TrackingEvent(Base):
    __tablename__ = "tracking_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shipment_id = Column("shipment_id", String, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    occurred_at = Column("occurred_at", DateTime, nullable=False)
    status_code = Column("status_code", String, nullable=True)
    comment = Column("comment", String, nullable=True)
    area = Column("area", String, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())

    shipment = relationship("Shipment", back_populates="events")


# Records
@dataclass
class ShipmentRecord:
    """Detached view of a shipment row; the synchronizer merges into copies of it."""

    owner_id: str
    reference_no: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    shipping_method: Optional[str] = None
    country_code: Optional[str] = None
    weight_kg: Optional[float] = None
    pieces: Optional[int] = None
    label_type: Optional[str] = None
    status: str = ShipmentStatus.CREATED.value
    order_code: Optional[str] = None
    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    invoice_url: Optional[str] = None
    raw_request: dict[str, Any] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def copy(self, **changes: Any) -> "ShipmentRecord":
        return replace(self, **changes)


@dataclass
class NormalizedTrackingEvent:
    occurred_at: datetime
    status_code: Optional[str] = None
    comment: Optional[str] = None
    area: Optional[str] = None


@dataclass
class ShipmentWithEvents:
    shipment: ShipmentRecord
    events: list[NormalizedTrackingEvent] = field(default_factory=list)
