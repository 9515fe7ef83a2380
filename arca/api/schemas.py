"""Pydantic schemas for the Padron HTTP API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from arca.core.errors import ArcaError, OrphanedRemoteTicket
from arca.wsaa.types import to_camel


class HealthResponse(BaseModel):
    """Credential health as reported by GET /api/padron/health."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = "OK"
    principal_id: str
    principal_degraded: bool
    token_length: int
    sign_length: int
    expiration_time: datetime
    minutes_until_expiration: float


class ErrorResponse(BaseModel):
    """Error body shared by all endpoints."""

    error: str
    message: str
    retryable: bool = False
    remediation: str | None = None

    @classmethod
    def from_error(cls, exc: ArcaError) -> "ErrorResponse":
        remediation = exc.remediation if isinstance(exc, OrphanedRemoteTicket) else None
        return cls(
            error=exc.kind,
            message=str(exc),
            retryable=exc.retryable,
            remediation=remediation,
        )
