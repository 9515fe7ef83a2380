"""SOAP 1.1 over httpx with bounded reads and fault mapping."""

import ssl
import xml.etree.ElementTree as ET

import httpx
import structlog

from arca.core.errors import (
    CommunicationFault,
    EmptyResponse,
    GenericProtocolFault,
    MalformedResponse,
)
from arca.core.settings import ArcaSettings

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
MINIMUM_TLS_VERSION = ssl.TLSVersion.TLSv1_2

_BODY_TAG = f"{{{SOAP_ENV_NS}}}Body"
_FAULT_TAG = f"{{{SOAP_ENV_NS}}}Fault"

logger = structlog.get_logger(__name__)


def build_tls_context() -> ssl.SSLContext:
    """Default verifying context that refuses anything below TLS 1.2."""
    context = ssl.create_default_context()
    context.minimum_version = MINIMUM_TLS_VERSION
    return context


def build_http_client(settings: ArcaSettings) -> httpx.AsyncClient:
    """Create the shared client used for every ARCA web service call."""
    return httpx.AsyncClient(
        verify=build_tls_context(),
        timeout=httpx.Timeout(settings.request_timeout_seconds),
    )


def build_envelope(body: str, namespaces: dict[str, str]) -> bytes:
    """Wrap an already-serialized body element in a SOAP 1.1 envelope."""
    declarations = "".join(
        f' xmlns:{prefix}="{uri}"' for prefix, uri in sorted(namespaces.items())
    )
    return (
        f'<soapenv:Envelope xmlns:soapenv="{SOAP_ENV_NS}"{declarations}>'
        "<soapenv:Header/>"
        f"<soapenv:Body>{body}</soapenv:Body>"
        "</soapenv:Envelope>"
    ).encode("utf-8")


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def find_local(element: ET.Element, name: str) -> ET.Element | None:
    """First descendant (or self) whose tag ignoring namespace is ``name``."""
    for child in element.iter():
        if local_name(child.tag) == name:
            return child
    return None


def find_text(element: ET.Element, name: str) -> str:
    """Structural lookup that yields an empty string for absent nodes."""
    found = find_local(element, name)
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def _fault_from(body: ET.Element) -> GenericProtocolFault | None:
    fault = body.find(_FAULT_TAG)
    if fault is None:
        return None
    return GenericProtocolFault(
        fault_code=find_text(fault, "faultcode"),
        fault_reason=find_text(fault, "faultstring"),
    )


class SoapTransport:
    """Posts SOAP envelopes and returns the parsed ``Body`` element."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def call(self, url: str, envelope: bytes, *, max_bytes: int) -> ET.Element:
        status, payload = await self._post(url, envelope, max_bytes)
        ok = httpx.codes.is_success(status)

        if not payload.strip():
            if ok:
                raise EmptyResponse(f"Empty response from {url}")
            raise CommunicationFault(f"HTTP {status} with empty body from {url}")

        try:
            root = ET.fromstring(payload)
        except ET.ParseError as exc:
            if ok:
                raise MalformedResponse(f"Unparseable SOAP envelope: {exc}") from exc
            raise CommunicationFault(f"HTTP {status} from {url}") from exc

        body = root.find(_BODY_TAG)
        if body is None:
            raise MalformedResponse(f"SOAP envelope from {url} has no Body")

        fault = _fault_from(body)
        if fault is not None:
            logger.warning(
                "soap_fault",
                url=url,
                fault_code=fault.fault_code,
                fault_reason=fault.fault_reason,
            )
            raise fault
        if not ok:
            raise CommunicationFault(f"HTTP {status} from {url}")
        return body

    async def _post(
        self, url: str, envelope: bytes, max_bytes: int
    ) -> tuple[int, bytes]:
        headers = {"Content-Type": "text/xml; charset=utf-8", "SOAPAction": '""'}
        payload = bytearray()
        try:
            async with self._client.stream(
                "POST", url, content=envelope, headers=headers
            ) as response:
                async for chunk in response.aiter_bytes():
                    payload.extend(chunk)
                    if len(payload) > max_bytes:
                        raise CommunicationFault(
                            f"Response from {url} exceeds {max_bytes} bytes"
                        )
                return response.status_code, bytes(payload)
        except httpx.TimeoutException as exc:
            raise CommunicationFault(f"Timed out calling {url}") from exc
        except httpx.TransportError as exc:
            raise CommunicationFault(f"Cannot reach {url}: {exc}") from exc
