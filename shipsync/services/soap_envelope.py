"""
ECCANG SOAP envelope codec.

The provider exposes a single SOAP operation, callService, whose real payload is
a JSON string:
- Request: <callService> with appToken, appKey, service (operation name) and
  paramsJson (JSON-encoded params), all XML-escaped.
- Response: Envelope > Body > callServiceResponse > return, where "return" holds
  a JSON string. Deployments differ in prefixes (soap:, SOAP-ENV:, ns1:, ns2:)
  and in node names (CallServiceResult, response), so lookups go by local name.
Decoding is two-stage: XML -> string -> JSON.
"""
import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, Optional
from xml.sax.saxutils import escape

from shipsync.exceptions import ProtocolError

logger = logging.getLogger(__name__)

SOAP_NAMESPACE = "http://tempuri.org/"
SOAP_ACTION = f"{SOAP_NAMESPACE}callService"
SOAP_HEADERS = {
    "Content-Type": "text/xml; charset=utf-8",
    "SOAPAction": SOAP_ACTION,
}

RESPONSE_NODE_NAMES = ("callServiceResponse", "response")
RESULT_NODE_NAMES = ("return", "CallServiceResult", "response")

_ENVELOPE_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <callService xmlns="{namespace}">
      <appToken>{app_token}</appToken>
      <appKey>{app_key}</appKey>
      <service>{service}</service>
      <paramsJson>{params_json}</paramsJson>
    </callService>
  </soap:Body>
</soap:Envelope>"""

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(value: str) -> str:
    """Escape &, <, >, " and ' for interpolation into the envelope."""
    return escape(value, _XML_ENTITIES)


def build_envelope(service: str, params: Any, app_token: str, app_key: str) -> str:
    """Build the callService request body for one remote operation."""
    params_json = json.dumps(params if params is not None else {}, ensure_ascii=False, default=str)
    return _ENVELOPE_TEMPLATE.format(
        namespace=SOAP_NAMESPACE,
        app_token=escape_xml(app_token or ""),
        app_key=escape_xml(app_key or ""),
        service=escape_xml(service),
        params_json=escape_xml(params_json),
    )


def local_name(tag: str) -> str:
    """'{ns}callServiceResponse' or 'ns1:callServiceResponse' -> 'callServiceResponse'."""
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    return tag.rsplit(":", 1)[-1]


def _child(element: ET.Element, names: tuple[str, ...]) -> Optional[ET.Element]:
    # Alias order wins over document order
    children = list(element)
    for name in names:
        for child in children:
            if local_name(child.tag) == name:
                return child
    return None


def element_to_value(element: ET.Element) -> Any:
    """
    Convert an element to plain Python data: text for leaves, dict for nodes.
    Attributes become '@name' keys, repeated children become lists.
    """
    children = list(element)
    text = (element.text or "").strip()
    if not children and not element.attrib:
        return text
    value: dict[str, Any] = {f"@{local_name(k)}": v for k, v in element.attrib.items()}
    if not children:
        value["#text"] = text
        return value
    for child in children:
        key = local_name(child.tag)
        child_value = element_to_value(child)
        if key in value:
            existing = value[key]
            if isinstance(existing, list):
                existing.append(child_value)
            else:
                value[key] = [existing, child_value]
        else:
            value[key] = child_value
    return value


def parse_envelope(xml: str | bytes) -> Any:
    """
    Parse a callService response and return the decoded business payload.
    Raises ProtocolError when the XML is broken, no Envelope/Body/response node
    is found, or the returned string is not JSON.
    """
    if not xml:
        raise ProtocolError("Empty ECCANG response")
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise ProtocolError(f"Invalid XML from ECCANG: {e}") from e

    if local_name(root.tag) != "Envelope":
        raise ProtocolError("No SOAP Envelope in ECCANG response")
    body = _child(root, ("Body",))
    if body is None:
        raise ProtocolError("No SOAP Body in ECCANG response")
    response_node = _child(body, RESPONSE_NODE_NAMES)
    if response_node is None:
        raise ProtocolError("No callServiceResponse in ECCANG response")

    result_node = _child(response_node, RESULT_NODE_NAMES)
    result = element_to_value(result_node if result_node is not None else response_node)
    # <return xsi:type="xsd:string">{...}</return>
    if isinstance(result, dict) and "#text" in result and all(k.startswith("@") for k in result if k != "#text"):
        result = result["#text"]

    if isinstance(result, str):
        try:
            return json.loads(result)
        except ValueError as e:
            raise ProtocolError("ECCANG returned a non-JSON result string") from e
    if isinstance(result, dict) and result:
        return result
    raise ProtocolError("Unexpected ECCANG response payload")
