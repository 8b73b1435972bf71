"""
ECCANG order-management client (SOAP callService with JSON params).
- Endpoint: POST {base}/default/svc/web-service, Content-Type text/xml, SOAPAction http://tempuri.org/callService
- Auth: appToken + appKey inside every envelope
- Operations: createOrder, getTrackNumber, getLabelUrl, getCargoTrack, cancelOrder, plus lookup services
Returns the decoded JSON payload; acknowledgement checks belong to the caller.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from shipsync.config import settings
from shipsync.exceptions import ProviderNotConfigured
from shipsync.services.http_client import post_no_retry, post_with_retry
from shipsync.services.soap_envelope import SOAP_HEADERS, build_envelope, parse_envelope

logger = logging.getLogger(__name__)

SERVICE_PATH = "/default/svc/web-service"

# Services that change provider state; sent exactly once
NON_IDEMPOTENT_SERVICES = frozenset({"createOrder", "cancelOrder"})

# send(url, body, headers, retry) -> response body
SendFn = Callable[[str, str, dict, bool], Awaitable[str]]


def build_endpoint(base_url: str) -> str:
    """Accept either the host base URL or the full web-service URL."""
    url = (base_url or "").strip().rstrip("/")
    if not url or url.endswith(SERVICE_PATH):
        return url
    return f"{url}{SERVICE_PATH}"


def _party_fields(prefix: str, party: Any) -> dict:
    return {
        f"{prefix}_name": party.name,
        f"{prefix}_company": party.company or "",
        f"{prefix}_phone": party.phone or "",
        f"{prefix}_email": party.email or "",
        f"{prefix}_countrycode": party.country or "",
        f"{prefix}_province": party.province or "",
        f"{prefix}_city": party.city or "",
        f"{prefix}_street": party.address_line1,
        f"{prefix}_street2": party.address_line2 or "",
        f"{prefix}_postcode": party.postal_code or "",
    }


def build_create_order_payload(request: Any) -> dict:
    """
    Build createOrder params from a CreateShipmentRequest.
    additional_payload keys override the generated ones.
    """
    payload = {
        "reference_no": request.reference_no,
        "shipping_method": request.shipping_method,
        "country_code": request.country_code,
        "order_weight": request.weight_kg,
        "order_pieces": request.pieces,
        "order_info": request.remarks or "",
        "Consignee": _party_fields("consignee", request.consignee),
        "Shipper": _party_fields("shipper", request.shipper),
        "ItemArr": [
            {
                "invoice_enname": item.name,
                "sku": item.sku or "",
                "hs_code": item.hs_code or "",
                "invoice_quantity": item.quantity,
                "invoice_weight": item.unit_weight_kg,
                "invoice_unitcharge": item.declared_value,
                "origin_country": item.origin_country or "",
            }
            for item in (request.items or [])
        ],
    }
    if request.extra_services:
        payload["ExtraService"] = [
            {"extra_servicecode": s.code, "extra_servicevalue": s.value or ""}
            for s in request.extra_services
        ]
    if request.label_type:
        payload["label_type"] = request.label_type
    if request.additional_payload:
        payload.update(request.additional_payload)
    # reference_no always reflects the caller's reference
    payload["reference_no"] = request.reference_no
    return payload


def get_eccang_client(
    service_url: Optional[str] = None,
    app_token: Optional[str] = None,
    app_key: Optional[str] = None,
    send: Optional[SendFn] = None,
) -> "EccangClient":
    """Return an ECCANG client; missing arguments fall back to settings."""
    return EccangClient(
        service_url=(service_url or getattr(settings, "ECCANG_SERVICE_URL", "") or "").strip(),
        app_token=(app_token or getattr(settings, "ECCANG_APP_TOKEN", "") or "").strip(),
        app_key=(app_key or getattr(settings, "ECCANG_APP_KEY", "") or "").strip(),
        timeout=getattr(settings, "ECCANG_TIMEOUT", 15.0),
        max_retries=getattr(settings, "ECCANG_MAX_RETRIES", 2),
        send=send,
    )


class EccangClient:
    """
    ECCANG SOAP client. One remote call per method; each returns the decoded
    JSON payload of the callService response.
    Raises ProviderNotConfigured before any I/O when URL/token/key is missing,
    ProtocolError for unreadable envelopes and httpx errors for transport failures.
    """

    def __init__(
        self,
        service_url: str,
        app_token: str,
        app_key: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        send: Optional[SendFn] = None,
    ):
        self.endpoint = build_endpoint(service_url)
        self.app_token = (app_token or "").strip()
        self.app_key = (app_key or "").strip()
        self.timeout = timeout
        self.max_retries = max_retries
        self._send = send or self._http_send
        if not self.is_configured:
            logger.warning("ECCANG credentials are missing; provider calls are disabled")

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.app_token and self.app_key)

    async def _http_send(self, url: str, body: str, headers: dict, retry: bool) -> str:
        if retry:
            return await post_with_retry(
                url, content=body, headers=headers, timeout=self.timeout, max_retries=self.max_retries
            )
        return await post_no_retry(url, content=body, headers=headers, timeout=self.timeout)

    async def call_service(self, service: str, params: Any = None) -> Any:
        """Send callService(service, params) and return the decoded payload."""
        if not self.is_configured:
            raise ProviderNotConfigured()
        envelope = build_envelope(service, params if params is not None else {}, self.app_token, self.app_key)
        retry = service not in NON_IDEMPOTENT_SERVICES
        logger.debug("ECCANG call %s", service)
        body = await self._send(self.endpoint, envelope, dict(SOAP_HEADERS), retry)
        return parse_envelope(body)

    async def create_order(self, params: dict) -> Any:
        return await self.call_service("createOrder", params)

    async def get_track_number(self, params: dict) -> Any:
        return await self.call_service("getTrackNumber", params)

    async def get_label_url(self, params: dict) -> Any:
        return await self.call_service("getLabelUrl", params)

    async def get_cargo_track(self, params: dict) -> Any:
        return await self.call_service("getCargoTrack", params)

    async def cancel_order(self, params: dict) -> Any:
        return await self.call_service("cancelOrder", params)

    async def fee_trail(self, params: dict) -> Any:
        """Shipping fee estimate."""
        return await self.call_service("feeTrail", params)

    async def get_shipping_method(self, params: Optional[dict] = None) -> Any:
        return await self.call_service("getShippingMethod", params)

    async def get_extra_service(self, params: Optional[dict] = None) -> Any:
        return await self.call_service("getExtraService", params)

    async def get_field_rule(self, params: Optional[dict] = None) -> Any:
        return await self.call_service("getFieldRule", params)

    async def get_country(self, params: Optional[dict] = None) -> Any:
        return await self.call_service("getCountry", params)

    async def get_goods_type(self, params: Optional[dict] = None) -> Any:
        return await self.call_service("getGoodstype", params)

    async def get_receiving_expense(self, params: dict) -> Any:
        return await self.call_service("getReceivingExpense", params)
