"""
Shipment synchronizer: one ECCANG call per operation (create, label, track,
cancel, track-number refresh), merged into the stored shipment.

Every operation has the same shape: build params -> callService -> check the
acknowledgement flag -> normalize -> merge. The merge re-reads the record and
overwrites raw_request/raw_response[operation] with the latest call, so the
audit map holds the most recent request/response per operation name.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
from sqlalchemy.exc import IntegrityError

from shipsync.exceptions import (
    ProtocolError,
    ProviderRejected,
    ProviderUnavailable,
    ShipmentConflict,
    ShipmentNotFound,
    ShipmentSyncError,
)
from shipsync.models import NormalizedTrackingEvent, ShipmentRecord, ShipmentStatus, ShipmentWithEvents
from shipsync.schemas import CreateShipmentRequest, ShipmentUpdate
from shipsync.services.eccang_service import EccangClient, build_create_order_payload
from shipsync.services.payload_search import find_array, find_number, find_string, find_value
from shipsync.services.shipment_store import ShipmentStore
from shipsync.services.status_mapping import (
    AWAITING_STATES,
    PRE_LABEL_STATES,
    normalize_status,
    status_value,
)
from shipsync.services.tracking_events import latest_event, normalize_events
from shipsync.workers.track_number_poller import TrackNumberPoller

logger = logging.getLogger(__name__)

ACK_KEYS = ("ack", "ask", "ackCode", "success", "code")
SUCCESS_TOKENS = frozenset({"success", "successful", "true", "ok", "1", "200"})
SUCCESS_CODES = (1, 200)
ACK_WORDS = frozenset({"success", "successful", "true", "ok", "failure", "fail", "false"})

MESSAGE_KEYS = ("message", "msg", "errMessage", "errorMessage", "error", "cnmessage", "enmessage")
ORDER_CODE_KEYS = ("orderCode", "order_code", "ordercode", "ordercode2", "order_code2")
TRACKING_NUMBER_KEYS = (
    "trackingNumber",
    "tracking_number",
    "trackingNo",
    "tracking_no",
    "track_no",
    "shipping_method_no",
    "mailNo",
)
LABEL_URL_KEYS = ("labelUrl", "label_url", "label_path")
INVOICE_URL_KEYS = ("invoiceUrl", "invoice_url")
ORDER_STATUS_KEYS = ("status", "orderStatus", "order_status", "track_status", "trackStatus")
TRACK_STATUS_KEYS = ("status", "track_status", "trackStatus")
FEE_KEYS = ("totalFee", "total_fee", "total", "fee", "amount")

DEFAULT_LABEL_TYPE = "PDF"
TRACK_LANGUAGES = ("EN", "CN")

# kind -> (ECCANG service, EccangClient method)
REFERENCE_DATA_SERVICES = {
    "shipping_methods": ("getShippingMethod", "get_shipping_method"),
    "extra_services": ("getExtraService", "get_extra_service"),
    "field_rules": ("getFieldRule", "get_field_rule"),
    "countries": ("getCountry", "get_country"),
    "goods_types": ("getGoodstype", "get_goods_type"),
}


def is_acknowledged(response: Any) -> bool:
    """
    Provider acknowledgement: first present of ack/ask/ackCode/success/code.
    bool as-is, numbers 1/200, strings success/successful/true/ok/1/200.
    """
    if not isinstance(response, dict):
        return False
    ack = None
    for key in ACK_KEYS:
        if response.get(key) is not None:
            ack = response[key]
            break
    if isinstance(ack, bool):
        return ack
    if isinstance(ack, (int, float)):
        return ack in SUCCESS_CODES
    if isinstance(ack, str):
        return ack.strip().lower() in SUCCESS_TOKENS
    return False


def merge_audit(current: Any, operation: str, value: Any) -> dict:
    """Copy of the audit map with `operation` set to `value` (last call wins)."""
    base = dict(current) if isinstance(current, dict) else {}
    base[operation] = value
    return base


def resolve_code(
    candidates: list[tuple[str, Optional[str]]],
    code: Optional[str] = None,
    code_type: Optional[str] = None,
) -> tuple[str, str]:
    """
    Pick the identifier sent to the provider. An explicit code wins; otherwise
    the field named by code_type, then the first non-empty candidate.
    Returns (code, type).
    """
    if code and code.strip():
        return code.strip(), code_type or candidates[0][0]
    by_type = dict(candidates)
    if code_type and (by_type.get(code_type) or "").strip():
        return by_type[code_type].strip(), code_type
    for name, value in candidates:
        if value and value.strip():
            return value.strip(), name
    raise ShipmentSyncError("No code available for this shipment", "ERR_NO_CODE")


def _accept_status(value: Any) -> Optional[Any]:
    # Acknowledgement words sometimes sit under "status"
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str) and (not value.strip() or value.strip().lower() in ACK_WORDS):
        return None
    if not isinstance(value, (str, int, float)):
        return None
    return normalize_status(value)


def find_status(response: Any, keys: Iterable[str]) -> Optional[Any]:
    """Normalized status under the first candidate key holding a real status token."""
    return find_value(response, keys, _accept_status)


def _top_level_status(response: Any, keys: Iterable[str]) -> Optional[Any]:
    """Look only at the response root and a dict-valued `data`, not event lists."""
    nodes = [response]
    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        nodes.append(response["data"])
    for node in nodes:
        if not isinstance(node, dict):
            continue
        for key in keys:
            status = _accept_status(node.get(key))
            if status is not None:
                return status
    return None


def summarize_shipments(records: Iterable[ShipmentRecord]) -> dict:
    """Totals for reporting: count, weight, pieces, count by status."""
    records = list(records)
    by_status: dict[str, int] = {}
    for r in records:
        by_status[r.status] = by_status.get(r.status, 0) + 1
    return {
        "total_shipments": len(records),
        "total_weight_kg": sum(r.weight_kg or 0 for r in records),
        "total_pieces": sum(r.pieces or 0 for r in records),
        "by_status": by_status,
    }


class ShipmentSynchronizer:
    """Runs provider operations for shipments and merges results into the store."""

    def __init__(
        self,
        store: ShipmentStore,
        client: EccangClient,
        poller: Optional[TrackNumberPoller] = None,
    ):
        self.store = store
        self.client = client
        self.poller = poller
        if self.poller is not None and self.poller.resolver is None:
            self.poller.resolver = self.refresh_track_number

    # ---- helpers ----

    async def _store_call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store call in the default executor, off the event loop."""
        return await asyncio.get_event_loop().run_in_executor(None, partial(func, *args))

    async def _get_or_raise(self, shipment_id: str) -> ShipmentRecord:
        record = await self._store_call(self.store.get_shipment, shipment_id)
        if record is None:
            raise ShipmentNotFound(shipment_id)
        return record

    async def _call(
        self,
        service: str,
        method: Callable[[Any], Awaitable[Any]],
        params: Any,
        action: str,
    ) -> Any:
        """Call the provider and enforce the acknowledgement flag."""
        try:
            response = await method(params)
        except ProviderUnavailable as e:
            logger.error("ECCANG call to %s failed: %s", service, e.message)
            raise
        except (ProtocolError, httpx.HTTPError) as e:
            logger.error("ECCANG call to %s failed: %s", service, e)
            raise ProviderUnavailable(
                f"Failed to {action} with ECCANG", details={"operation": service}
            ) from e
        if not is_acknowledged(response):
            message = find_string(response, MESSAGE_KEYS) or f"ECCANG rejected {service}"
            logger.error("ECCANG %s rejected: %s", service, message)
            raise ProviderRejected(message, operation=service, response=response)
        return response

    async def _merge(
        self,
        shipment_id: str,
        operation: str,
        request: Any,
        response: Any,
        update: Callable[[ShipmentRecord], dict],
        events: Optional[list[NormalizedTrackingEvent]] = None,
    ) -> ShipmentRecord:
        """
        Single write path for provider results: re-read, apply `update`, record
        the call under `operation`, save (with events in the same transaction).
        """
        current = await self._get_or_raise(shipment_id)
        changes = update(current)
        merged = current.copy(
            **changes,
            raw_request=merge_audit(current.raw_request, operation, request),
            raw_response=merge_audit(current.raw_response, operation, response),
        )
        return await self._store_call(self.store.save_tracking, merged, events)

    # ---- operations ----

    async def create_shipment(self, owner_id: str, request: CreateShipmentRequest) -> ShipmentRecord:
        """Submit createOrder and persist the new shipment; arms the track-number poll if needed."""
        if await self._store_call(self.store.get_by_reference, request.reference_no) is not None:
            raise ShipmentConflict(request.reference_no)

        payload = build_create_order_payload(request)
        response = await self._call("createOrder", self.client.create_order, payload, "create order")

        status = find_status(response, ORDER_STATUS_KEYS) or ShipmentStatus.SUBMITTED
        tracking_number = find_string(response, TRACKING_NUMBER_KEYS)
        record = ShipmentRecord(
            owner_id=owner_id,
            reference_no=request.reference_no,
            shipping_method=request.shipping_method,
            country_code=request.country_code,
            weight_kg=request.weight_kg,
            pieces=request.pieces,
            label_type=request.label_type,
            status=status_value(status),
            order_code=find_string(response, ORDER_CODE_KEYS),
            tracking_number=tracking_number,
            label_url=find_string(response, LABEL_URL_KEYS),
            invoice_url=find_string(response, INVOICE_URL_KEYS),
            raw_request=merge_audit(None, "createOrder", payload),
            raw_response=merge_audit(None, "createOrder", response),
        )
        try:
            saved = await self._store_call(self.store.upsert_shipment, record)
        except IntegrityError as e:
            raise ShipmentConflict(request.reference_no) from e

        logger.info(
            "Created shipment %s (ref=%s, status=%s, order_code=%s)",
            saved.id, saved.reference_no, saved.status, saved.order_code,
        )
        if status in AWAITING_STATES and not tracking_number and self.poller is not None:
            self.poller.arm(saved.id)
        return saved

    async def refresh_track_number(self, shipment_id: str) -> bool:
        """
        getTrackNumber for a shipment still waiting on its tracking number.
        Returns True when polling can stop (number or first order code found,
        shipment gone or cancelled). Provider errors propagate.
        """
        record = await self._store_call(self.store.get_shipment, shipment_id)
        if record is None:
            logger.info("Shipment %s no longer exists; stopping track number poll", shipment_id)
            return True
        if record.tracking_number or record.status == ShipmentStatus.CANCELLED.value:
            return True

        params = {"reference_no": [record.reference_no]}
        response = await self._call(
            "getTrackNumber", self.client.get_track_number, params, "retrieve tracking number"
        )
        tracking_number = find_string(response, TRACKING_NUMBER_KEYS)
        order_code = find_string(response, ORDER_CODE_KEYS)
        new_order_code = bool(order_code) and not record.order_code
        if not tracking_number and not new_order_code:
            return False

        status = find_status(response, ORDER_STATUS_KEYS)
        if tracking_number and (status is None or status in PRE_LABEL_STATES):
            status = ShipmentStatus.LABEL_READY

        def update(current: ShipmentRecord) -> dict:
            return {
                "tracking_number": tracking_number or current.tracking_number,
                "order_code": order_code or current.order_code,
                "status": status_value(status) if status is not None else current.status,
            }

        saved = await self._merge(shipment_id, "getTrackNumber", params, response, update)
        logger.info(
            "Shipment %s track number resolved (tracking=%s, order_code=%s)",
            shipment_id, saved.tracking_number, saved.order_code,
        )
        return True

    async def request_label(self, shipment_id: str, label_type: Optional[str] = None) -> ShipmentRecord:
        """getLabelUrl; stores label/invoice URLs."""
        record = await self._get_or_raise(shipment_id)
        label_type = label_type or record.label_type or DEFAULT_LABEL_TYPE
        params = {"reference_no": record.reference_no, "label": label_type}
        response = await self._call("getLabelUrl", self.client.get_label_url, params, "retrieve label")

        label_url = find_string(response, LABEL_URL_KEYS + ("url",))
        invoice_url = find_string(response, INVOICE_URL_KEYS)

        def update(current: ShipmentRecord) -> dict:
            changes = {
                "label_type": label_type,
                "label_url": label_url or current.label_url,
                "invoice_url": invoice_url or current.invoice_url,
            }
            if label_url and current.status in PRE_LABEL_STATES:
                changes["status"] = ShipmentStatus.LABEL_READY.value
            return changes

        return await self._merge(shipment_id, "getLabelUrl", params, response, update)

    async def track_shipment(
        self,
        shipment_id: str,
        code: Optional[str] = None,
        code_type: Optional[str] = None,
        lang: Optional[str] = None,
    ) -> ShipmentWithEvents:
        """
        getCargoTrack; replaces the stored events and updates status in one
        transaction. Code priority: explicit, tracking number, order code, reference.
        `lang` (EN or CN) selects the language of the event descriptions.
        """
        if lang is not None and lang.upper() not in TRACK_LANGUAGES:
            raise ValueError(f"Unsupported tracking language: {lang}")
        record = await self._get_or_raise(shipment_id)
        code, code_type = resolve_code(
            [
                ("tracking_number", record.tracking_number),
                ("order_code", record.order_code),
                ("reference_no", record.reference_no),
            ],
            code,
            code_type,
        )
        params = {"code": code, "type": code_type}
        if lang is not None:
            params["lang"] = lang.upper()
        response = await self._call(
            "getCargoTrack", self.client.get_cargo_track, params, "retrieve tracking information"
        )

        data = response.get("data") if isinstance(response, dict) else None
        events = normalize_events(data if data is not None else response)
        status = _top_level_status(response, TRACK_STATUS_KEYS)
        if status is None:
            newest = latest_event(events)
            status = newest.status_code if newest and newest.status_code else None

        def update(current: ShipmentRecord) -> dict:
            return {"status": status_value(status) if status is not None else current.status}

        # An empty event list leaves the stored events untouched
        saved = await self._merge(
            shipment_id, "getCargoTrack", params, response, update, events=events or None
        )
        logger.info("Tracked shipment %s: %s events, status=%s", shipment_id, len(events), saved.status)
        stored = await self._store_call(self.store.list_events, shipment_id)
        return ShipmentWithEvents(shipment=saved, events=stored)

    async def cancel_shipment(
        self,
        shipment_id: str,
        code: Optional[str] = None,
        code_type: Optional[str] = None,
    ) -> ShipmentRecord:
        """cancelOrder. Code priority: explicit, order code, tracking number, reference."""
        record = await self._get_or_raise(shipment_id)
        code, code_type = resolve_code(
            [
                ("order_code", record.order_code),
                ("tracking_number", record.tracking_number),
                ("reference_no", record.reference_no),
            ],
            code,
            code_type,
        )
        params = {"code": code, "type": code_type}
        response = await self._call("cancelOrder", self.client.cancel_order, params, "cancel shipment")

        if self.poller is not None:
            self.poller.disarm(shipment_id)
        saved = await self._merge(
            shipment_id,
            "cancelOrder",
            params,
            response,
            lambda current: {"status": ShipmentStatus.CANCELLED.value},
        )
        logger.info("Cancelled shipment %s (%s=%s)", shipment_id, code_type, code)
        return saved

    async def get_shipment(self, shipment_id: str) -> ShipmentWithEvents:
        record = await self._get_or_raise(shipment_id)
        events = await self._store_call(self.store.list_events, shipment_id)
        return ShipmentWithEvents(shipment=record, events=events)

    async def update_shipment(self, shipment_id: str, changes: ShipmentUpdate) -> ShipmentRecord:
        """Manual field update; no provider call and no audit entry."""
        record = await self._get_or_raise(shipment_id)
        values = changes.model_dump(exclude_unset=True, exclude_none=True)
        if "status" in values:
            values["status"] = status_value(normalize_status(values["status"]))
        return await self._store_call(self.store.upsert_shipment, record.copy(**values))

    async def receiving_fees(
        self,
        reference_numbers: list[str],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> float:
        """Total receiving expense for the given references; 0.0 when unavailable."""
        if not reference_numbers:
            return 0.0
        params = {"start_date": start_date, "end_date": end_date, "reference_no": list(reference_numbers)}
        try:
            response = await self._call(
                "getReceivingExpense", self.client.get_receiving_expense, params, "retrieve receiving expense"
            )
        except (ProviderUnavailable, ProviderRejected) as e:
            logger.warning("Failed to retrieve ECCANG receiving expense: %s", e.message)
            return 0.0
        data = response.get("data") if isinstance(response, dict) else None
        total = find_number(data, FEE_KEYS)
        if total is None:
            total = find_number(response, FEE_KEYS)
        return float(total or 0.0)

    async def shipment_report(
        self,
        records: Iterable[ShipmentRecord],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> dict:
        """summarize_shipments plus provider receiving fees."""
        records = list(records)
        report = summarize_shipments(records)
        report["total_fees"] = await self.receiving_fees(
            [r.reference_no for r in records], start_date, end_date
        )
        return report

    async def estimate_fee(
        self,
        country_code: str,
        weight_kg: float,
        shipping_method: Optional[str] = None,
        **extra: Any,
    ) -> list:
        """feeTrail quote rows for a destination and weight."""
        params = {"country_code": country_code, "weight": weight_kg, **extra}
        if shipping_method:
            params["shipping_method"] = shipping_method
        response = await self._call("feeTrail", self.client.fee_trail, params, "estimate fee")
        return find_array(response)

    async def reference_data(self, kind: str, params: Optional[dict] = None) -> list:
        """Provider lookup lists: shipping_methods, extra_services, field_rules, countries, goods_types."""
        entry = REFERENCE_DATA_SERVICES.get(kind)
        if entry is None:
            raise ValueError(f"Unknown reference data kind: {kind}")
        service, method_name = entry
        method = getattr(self.client, method_name)
        response = await self._call(service, method, params or {}, f"retrieve {kind.replace('_', ' ')}")
        return find_array(response)
