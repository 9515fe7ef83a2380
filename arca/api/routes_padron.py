"""Padron lookup and credential health endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from arca.api.deps import get_credential_manager, get_padron_client, get_principal
from arca.api.schemas import ErrorResponse, HealthResponse
from arca.core.errors import (
    ArcaError,
    AuthorityError,
    IdentityUnavailable,
    OrphanedRemoteTicket,
    PersonaNotFound,
    SigningFailure,
)
from arca.crypto.types import PrincipalResolution
from arca.padron.client import PadronClient
from arca.padron.types import PersonaRecord
from arca.wsaa.manager import CredentialManager
from arca.wsaa.types import utc_now

router = APIRouter(prefix="/api/padron", tags=["padron"])

HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404
HTTP_INTERNAL_ERROR = 500
HTTP_BAD_GATEWAY = 502
HTTP_SERVICE_UNAVAILABLE = 503
PRINCIPAL_ID_LENGTH = 11

Manager = Annotated[CredentialManager, Depends(get_credential_manager)]
Padron = Annotated[PadronClient, Depends(get_padron_client)]
Principal = Annotated[PrincipalResolution, Depends(get_principal)]

logger = structlog.get_logger(__name__)


def _status_for(exc: ArcaError) -> int:
    if isinstance(exc, PersonaNotFound):
        return HTTP_NOT_FOUND
    if isinstance(exc, IdentityUnavailable | SigningFailure):
        return HTTP_INTERNAL_ERROR
    if isinstance(exc, OrphanedRemoteTicket) or exc.retryable:
        return HTTP_SERVICE_UNAVAILABLE
    if isinstance(exc, AuthorityError):
        return HTTP_BAD_GATEWAY
    return HTTP_INTERNAL_ERROR


def _error_response(exc: ArcaError) -> JSONResponse:
    body = ErrorResponse.from_error(exc)
    return JSONResponse(body.model_dump(), status_code=_status_for(exc))


@router.get("/health", response_model=None)
async def health_check(
    manager: Manager, principal: Principal
) -> HealthResponse | JSONResponse:
    """GET /api/padron/health -- authenticate against WSAA and report expiry."""
    try:
        credentials = await manager.get_credentials()
    except ArcaError as exc:
        logger.error("health_check_failed", error_kind=exc.kind, error=str(exc))
        return _error_response(exc)

    remaining = credentials.expiration_time - utc_now()
    return HealthResponse(
        principal_id=principal.value,
        principal_degraded=principal.degraded,
        token_length=len(credentials.token),
        sign_length=len(credentials.sign),
        expiration_time=credentials.expiration_time,
        minutes_until_expiration=round(remaining.total_seconds() / 60, 2),
    )


@router.get("/{cuit}", response_model=None)
async def lookup_persona(
    cuit: str, manager: Manager, padron: Padron, principal: Principal
) -> PersonaRecord | JSONResponse:
    """GET /api/padron/{cuit} -- company name, address and status."""
    if len(cuit) != PRINCIPAL_ID_LENGTH or not (cuit.isascii() and cuit.isdigit()):
        return JSONResponse(
            {"error": "invalid_cuit", "message": "CUIT must be 11 digits"},
            status_code=HTTP_BAD_REQUEST,
        )

    try:
        credentials = await manager.get_credentials()
        return await padron.get_persona(credentials, principal.value, cuit)
    except ArcaError as exc:
        logger.error("lookup_failed", cuit=cuit, error_kind=exc.kind, error=str(exc))
        return _error_response(exc)
