"""Padron A13 ``getPersona`` client."""

import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

import structlog

from arca.core.errors import (
    ArcaError,
    GenericProtocolFault,
    PersonaNotFound,
    UnclassifiedFault,
)
from arca.padron.types import PersonaRecord
from arca.soap.transport import SoapTransport, build_envelope, find_local, local_name
from arca.wsaa.types import CredentialPair

PADRON_NS = "http://a13.soap.ws.server.puc.sr/"
FISCAL_ADDRESS_TYPE = "1"
NOT_FOUND_MARKER = "No existe persona"

logger = structlog.get_logger(__name__)


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if local_name(child.tag) == name]


def _child_text(element: ET.Element, name: str) -> str:
    for child in _children(element, name):
        return (child.text or "").strip()
    return ""


def _format_address(persona: ET.Element) -> str:
    """Fiscal address (type 1) or the first one listed, as a single line."""
    addresses = _children(persona, "domicilio")
    if not addresses:
        return ""
    chosen = next(
        (
            a
            for a in addresses
            if _child_text(a, "tipoDomicilio") == FISCAL_ADDRESS_TYPE
        ),
        addresses[0],
    )
    parts = [
        _child_text(chosen, "direccion"),
        _child_text(chosen, "localidad"),
        _child_text(chosen, "descripcionProvincia"),
    ]
    return " ".join(part for part in parts if part)


def shape_persona(persona: ET.Element) -> PersonaRecord:
    """Reduce a ``persona`` element to company name, address and status."""
    razon_social = _child_text(persona, "razonSocial")
    if not razon_social:
        full_name = f"{_child_text(persona, 'nombre')} {_child_text(persona, 'apellido')}"
        razon_social = full_name.strip() or "Sin datos"

    if _child_text(persona, "fechaFallecimiento"):
        estado = "FALLECIDO"
    else:
        estado = _child_text(persona, "estadoClave") or "ACTIVO"

    return PersonaRecord(
        razon_social=razon_social,
        domicilio=_format_address(persona),
        estado=estado,
    )


class PadronClient:
    """Looks up taxpayers with WSAA credentials for the represented CUIT."""

    def __init__(
        self, transport: SoapTransport, url: str, *, max_response_bytes: int
    ) -> None:
        self._transport = transport
        self._url = url
        self._max_response_bytes = max_response_bytes

    async def get_persona(
        self, credentials: CredentialPair, represented_id: str, subject_id: str
    ) -> PersonaRecord:
        request = build_envelope(
            "<a13:getPersona>"
            f"<token>{escape(credentials.token)}</token>"
            f"<sign>{escape(credentials.sign)}</sign>"
            f"<cuitRepresentada>{int(represented_id)}</cuitRepresentada>"
            f"<idPersona>{int(subject_id)}</idPersona>"
            "</a13:getPersona>",
            {"a13": PADRON_NS},
        )
        logger.info("padron_request", subject_id=subject_id)
        try:
            body = await self._transport.call(
                self._url, request, max_bytes=self._max_response_bytes
            )
        except GenericProtocolFault as exc:
            if NOT_FOUND_MARKER in exc.fault_reason:
                raise PersonaNotFound(f"No record for {subject_id}") from exc
            raise
        except ArcaError:
            raise
        except Exception as exc:
            raise UnclassifiedFault(f"Error calling getPersona: {exc}") from exc

        persona_return = find_local(body, "personaReturn")
        persona = None
        if persona_return is not None:
            persona = next(iter(_children(persona_return, "persona")), None)
        if persona is None:
            logger.warning("padron_not_found", subject_id=subject_id)
            raise PersonaNotFound(f"No record for {subject_id}")

        record = shape_persona(persona)
        logger.info("padron_success", subject_id=subject_id, estado=record.estado)
        return record
