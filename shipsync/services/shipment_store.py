"""
Persistence contract consumed by the synchronizer, with a SQLAlchemy implementation.
Records cross this boundary as ShipmentRecord / NormalizedTrackingEvent so no
ORM session leaks into async code.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from shipsync.models import NormalizedTrackingEvent, Shipment, ShipmentRecord, TrackingEvent

logger = logging.getLogger(__name__)

_RECORD_FIELDS = (
    "id",
    "owner_id",
    "reference_no",
    "shipping_method",
    "country_code",
    "weight_kg",
    "pieces",
    "label_type",
    "status",
    "order_code",
    "tracking_number",
    "label_url",
    "invoice_url",
    "raw_request",
    "raw_response",
)


class ShipmentStore(ABC):
    """Read/write one shipment and its event list."""

    @abstractmethod
    def get_shipment(self, shipment_id: str) -> Optional[ShipmentRecord]:
        ...

    @abstractmethod
    def get_by_reference(self, reference_no: str) -> Optional[ShipmentRecord]:
        ...

    @abstractmethod
    def upsert_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        ...

    @abstractmethod
    def replace_events(self, shipment_id: str, events: list[NormalizedTrackingEvent]) -> None:
        ...

    @abstractmethod
    def list_events(self, shipment_id: str) -> list[NormalizedTrackingEvent]:
        ...

    @abstractmethod
    def save_tracking(
        self, record: ShipmentRecord, events: Optional[list[NormalizedTrackingEvent]]
    ) -> ShipmentRecord:
        """Upsert the record and (when events is not None) replace its events atomically."""
        ...


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def row_to_record(row: Shipment) -> ShipmentRecord:
    return ShipmentRecord(
        id=row.id,
        owner_id=row.owner_id,
        reference_no=row.reference_no,
        shipping_method=row.shipping_method,
        country_code=row.country_code,
        weight_kg=row.weight_kg,
        pieces=row.pieces,
        label_type=row.label_type,
        status=row.status,
        order_code=row.order_code,
        tracking_number=row.tracking_number,
        label_url=row.label_url,
        invoice_url=row.invoice_url,
        raw_request=dict(row.raw_request or {}),
        raw_response=dict(row.raw_response or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlShipmentStore(ShipmentStore):
    """ShipmentStore over a SQLAlchemy session factory (one session per call)."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get_shipment(self, shipment_id: str) -> Optional[ShipmentRecord]:
        with self._session_factory() as db:
            row = db.query(Shipment).filter(Shipment.id == shipment_id).first()
            return row_to_record(row) if row else None

    def get_by_reference(self, reference_no: str) -> Optional[ShipmentRecord]:
        with self._session_factory() as db:
            row = db.query(Shipment).filter(Shipment.reference_no == reference_no).first()
            return row_to_record(row) if row else None

    def list_events(self, shipment_id: str) -> list[NormalizedTrackingEvent]:
        with self._session_factory() as db:
            rows = (
                db.query(TrackingEvent)
                .filter(TrackingEvent.shipment_id == shipment_id)
                .order_by(TrackingEvent.occurred_at.desc())
                .all()
            )
            return [
                NormalizedTrackingEvent(
                    occurred_at=r.occurred_at,
                    status_code=r.status_code,
                    comment=r.comment,
                    area=r.area,
                )
                for r in rows
            ]

    def upsert_shipment(self, record: ShipmentRecord) -> ShipmentRecord:
        return self.save_tracking(record, None)

    def replace_events(self, shipment_id: str, events: list[NormalizedTrackingEvent]) -> None:
        with self._session_factory() as db:
            try:
                self._replace_events(db, shipment_id, events)
                db.commit()
            except Exception:
                db.rollback()
                raise

    def save_tracking(
        self, record: ShipmentRecord, events: Optional[list[NormalizedTrackingEvent]]
    ) -> ShipmentRecord:
        with self._session_factory() as db:
            try:
                row = self._upsert(db, record)
                if events is not None:
                    self._replace_events(db, record.id, events)
                db.commit()
                db.refresh(row)
                return row_to_record(row)
            except Exception:
                db.rollback()
                raise

    def _upsert(self, db: Session, record: ShipmentRecord) -> Shipment:
        row = db.query(Shipment).filter(Shipment.id == record.id).first()
        if row is None:
            row = Shipment(id=record.id)
            db.add(row)
        for name in _RECORD_FIELDS:
            setattr(row, name, getattr(record, name))
        # JSON columns need a fresh object to register as changed
        row.raw_request = dict(record.raw_request or {})
        row.raw_response = dict(record.raw_response or {})
        row.updated_at = datetime.now(timezone.utc).replace(tzinfo=None)
        db.flush()
        return row

    def _replace_events(self, db: Session, shipment_id: str, events: list[NormalizedTrackingEvent]) -> None:
        db.query(TrackingEvent).filter(TrackingEvent.shipment_id == shipment_id).delete(
            synchronize_session=False
        )
        for event in events:
            db.add(
                TrackingEvent(
                    shipment_id=shipment_id,
                    occurred_at=_naive_utc(event.occurred_at),
                    status_code=event.status_code,
                    comment=event.comment,
                    area=event.area,
                )
            )
        db.flush()
        logger.debug("Replaced tracking events for shipment %s (%s events)", shipment_id, len(events))
