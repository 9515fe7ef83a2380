"""Login ticket request (TRA) construction and serialization."""

from datetime import datetime, timedelta
from xml.sax.saxutils import escape

from arca.wsaa.types import TicketRequest

CLOCK_SKEW = timedelta(minutes=2)
TICKET_TTL = timedelta(minutes=10)
CIVIL_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

# The signature covers these exact bytes, declaration included.
_TRA_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<loginTicketRequest version="1.0">\n'
    "  <header>\n"
    "    <uniqueId>{unique_id}</uniqueId>\n"
    "    <generationTime>{generation_time}</generationTime>\n"
    "    <expirationTime>{expiration_time}</expirationTime>\n"
    "  </header>\n"
    "  <service>{service}</service>\n"
    "</loginTicketRequest>"
)


def build_ticket_request(now: datetime, service: str) -> TicketRequest:
    """Build a ticket valid from two minutes before ``now`` to ten after.

    ``unique_id`` is whole Unix seconds so it fits the schema's int field.
    """
    return TicketRequest(
        unique_id=int(now.timestamp()),
        generation_time=now - CLOCK_SKEW,
        expiration_time=now + TICKET_TTL,
        service=service,
    )


def format_civil_time(moment: datetime) -> str:
    """Local wall-clock time without a UTC offset suffix."""
    return moment.astimezone().strftime(CIVIL_TIME_FORMAT)


def serialize_ticket_request(ticket: TicketRequest) -> bytes:
    """Render the TRA document as the UTF-8 bytes that get signed."""
    document = _TRA_TEMPLATE.format(
        unique_id=ticket.unique_id,
        generation_time=format_civil_time(ticket.generation_time),
        expiration_time=format_civil_time(ticket.expiration_time),
        service=escape(ticket.service),
    )
    return document.encode("utf-8")
