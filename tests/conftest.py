"""
Shared fixtures: in-memory SQLite store and a fake ECCANG SOAP endpoint.
"""
import json
import xml.etree.ElementTree as ET

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shipsync.database import Base
from shipsync.schemas import CreateShipmentRequest
from shipsync.services.eccang_service import EccangClient
from shipsync.services.shipment_store import SqlShipmentStore
from shipsync.services.soap_envelope import escape_xml, local_name

SOAP_RESPONSE_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/" '
    'xmlns:ns1="http://tempuri.org/">'
    "<SOAP-ENV:Body><ns1:callServiceResponse><response>{payload}</response>"
    "</ns1:callServiceResponse></SOAP-ENV:Body></SOAP-ENV:Envelope>"
)


def soap_response(payload) -> str:
    """Wrap a JSON-able payload the way ECCANG returns callService results."""
    return SOAP_RESPONSE_TEMPLATE.format(payload=escape_xml(json.dumps(payload)))


def read_request(body: str) -> dict:
    """Pull appToken/appKey/service/paramsJson out of a callService request."""
    root = ET.fromstring(body)
    fields = {local_name(el.tag): el.text or "" for el in root.iter()}
    return {
        "app_token": fields.get("appToken"),
        "app_key": fields.get("appKey"),
        "service": fields.get("service"),
        "params": json.loads(fields.get("paramsJson") or "{}"),
    }


class FakeEccang:
    """
    Scripted ECCANG endpoint. Responses are queued per service; the last one
    repeats. A queued exception is raised instead of answering.
    """

    def __init__(self):
        self.responses = {}
        self.calls = []

    def respond(self, service: str, *payloads):
        self.responses[service] = list(payloads)
        return self

    def calls_to(self, service: str) -> list:
        return [c for c in self.calls if c["service"] == service]

    async def send(self, url: str, body: str, headers: dict, retry: bool) -> str:
        request = read_request(body)
        request.update(url=url, headers=headers, retry=retry)
        self.calls.append(request)
        queue = self.responses.get(request["service"])
        if not queue:
            raise AssertionError(f"Unexpected ECCANG call: {request['service']}")
        payload = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, str):
            return payload
        return soap_response(payload)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlShipmentStore(session_factory)


@pytest.fixture
def fake_eccang():
    return FakeEccang()


@pytest.fixture
def client(fake_eccang):
    return EccangClient(
        service_url="http://eccang.test",
        app_token="token-1",
        app_key="key-1",
        send=fake_eccang.send,
    )


def make_request(reference_no: str = "REF-1", **overrides) -> CreateShipmentRequest:
    data = {
        "reference_no": reference_no,
        "shipping_method": "PK0001",
        "country_code": "US",
        "weight_kg": 1.25,
        "pieces": 1,
        "consignee": {
            "name": "Jane Doe",
            "phone": "5551234",
            "country": "US",
            "city": "Los Angeles",
            "address_line1": "1 Main St",
            "postal_code": "90001",
        },
        "shipper": {
            "name": "Warehouse A",
            "country": "CN",
            "city": "Shenzhen",
            "address_line1": "88 Industrial Rd",
        },
        "items": [
            {
                "name": "T-shirt",
                "sku": "TS-01",
                "quantity": 2,
                "unit_weight_kg": 0.5,
                "declared_value": 9.99,
            }
        ],
    }
    data.update(overrides)
    return CreateShipmentRequest(**data)


@pytest.fixture
def create_request():
    return make_request()
