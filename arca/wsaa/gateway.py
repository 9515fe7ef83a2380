"""WSAA LoginCms exchange: signed TRA in, token and sign out."""

import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from arca.core.errors import (
    ArcaError,
    ConflictFault,
    EmptyResponse,
    GenericProtocolFault,
    IncompleteCredentials,
    MalformedResponse,
    UnclassifiedFault,
)
from arca.soap.transport import SoapTransport, build_envelope, find_local, find_text
from arca.wsaa.types import CredentialPair, utc_now

WSAA_NS = "http://wsaa.view.sua.dvadac.desein.afip.gov"
DEFAULT_EXPIRATION = timedelta(minutes=10)
CONFLICT_MARKERS = ("El CEE ya posee un TA valido", "alreadyAuthenticated")

logger = structlog.get_logger(__name__)


def is_conflict_fault(fault: GenericProtocolFault) -> bool:
    """True when the fault says an active ticket already exists."""
    text = f"{fault.fault_code} {fault.fault_reason}"
    return any(marker in text for marker in CONFLICT_MARKERS)


def parse_expiration(
    text: str, issued_at: datetime, default_ttl: timedelta = DEFAULT_EXPIRATION
) -> tuple[datetime, bool]:
    """Parse ``expirationTime``; returns ``(moment, defaulted)``.

    Unparseable values fall back to ``issued_at + default_ttl`` and report
    ``defaulted=True``. Naive timestamps are read as local time.
    """
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return issued_at + default_ttl, True
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment, False


def parse_login_ticket_response(
    fragment: str,
    issued_at: datetime,
    *,
    default_ttl: timedelta = DEFAULT_EXPIRATION,
    strict_expiration: bool = False,
) -> CredentialPair:
    """Extract the credential pair from a loginTicketResponse document."""
    if not fragment or not fragment.strip():
        raise MalformedResponse("loginCmsReturn is empty")
    try:
        root = ET.fromstring(fragment.strip().encode("utf-8"))
    except ET.ParseError as exc:
        raise MalformedResponse(f"Cannot parse loginTicketResponse: {exc}") from exc

    token = find_text(root, "token")
    sign = find_text(root, "sign")
    if not token or not sign:
        raise IncompleteCredentials("loginTicketResponse lacks token or sign")

    raw_expiration = find_text(root, "expirationTime")
    expiration, defaulted = parse_expiration(raw_expiration, issued_at, default_ttl)
    if defaulted:
        if strict_expiration:
            raise MalformedResponse(f"Unparseable expirationTime {raw_expiration!r}")
        logger.warning(
            "expiration_defaulted",
            raw=raw_expiration,
            expiration=expiration.isoformat(),
        )
    return CredentialPair(token=token, sign=sign, expiration_time=expiration)


class AuthGateway:
    """Client for the WSAA ``loginCms`` operation."""

    def __init__(
        self,
        transport: SoapTransport,
        url: str,
        *,
        max_response_bytes: int,
        default_ttl: timedelta = DEFAULT_EXPIRATION,
        strict_expiration: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._transport = transport
        self._url = url
        self._max_response_bytes = max_response_bytes
        self._default_ttl = default_ttl
        self._strict_expiration = strict_expiration
        self._clock = clock

    async def exchange(self, envelope: str) -> CredentialPair:
        """Trade a Base64 CMS envelope for a fresh credential pair."""
        request = build_envelope(
            f"<wsaa:loginCms><wsaa:in0>{envelope}</wsaa:in0></wsaa:loginCms>",
            {"wsaa": WSAA_NS},
        )
        logger.info("login_cms_request", url=self._url, cms_length=len(envelope))
        issued_at = self._clock()
        try:
            body = await self._transport.call(
                self._url, request, max_bytes=self._max_response_bytes
            )
            returned = find_local(body, "loginCmsReturn")
            if returned is None:
                raise EmptyResponse("loginCms returned no loginCmsReturn")
            credentials = parse_login_ticket_response(
                returned.text or "",
                issued_at,
                default_ttl=self._default_ttl,
                strict_expiration=self._strict_expiration,
            )
        except GenericProtocolFault as exc:
            if is_conflict_fault(exc):
                raise ConflictFault(exc.fault_reason or exc.fault_code) from exc
            raise
        except ArcaError:
            raise
        except Exception as exc:
            raise UnclassifiedFault(f"Error calling loginCms: {exc}") from exc

        logger.info(
            "login_cms_success",
            token_length=len(credentials.token),
            sign_length=len(credentials.sign),
            expiration=credentials.expiration_time.isoformat(),
        )
        return credentials
