"""Type definitions for WSAA tickets and the credentials they yield."""

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def to_camel(name: str) -> str:
    """Convert snake_case to camelCase for JSON serialization."""
    parts = name.split("_")
    return parts[0] + "".join(p.capitalize() for p in parts[1:])


def utc_now() -> datetime:
    return datetime.now(UTC)


class TicketRequest(BaseModel):
    """A loginTicketRequest (TRA) for one target service."""

    model_config = ConfigDict(frozen=True)

    unique_id: int
    generation_time: datetime
    expiration_time: datetime
    service: str

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "TicketRequest":
        if self.generation_time >= self.expiration_time:
            raise ValueError("generation_time must precede expiration_time")
        return self


class CredentialPair(BaseModel):
    """Token and sign issued by WSAA, valid until ``expiration_time``."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    token: str = Field(min_length=1)
    sign: str = Field(min_length=1)
    expiration_time: datetime

    @field_validator("expiration_time")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.astimezone()
        return value.astimezone(UTC)

    def is_valid_at(self, now: datetime, margin: timedelta = timedelta(0)) -> bool:
        """True while ``expiration_time`` is later than ``now + margin``."""
        return self.expiration_time > now + margin


class RenewalPolicy(BaseModel):
    """Timing constants applied by the credential manager."""

    model_config = ConfigDict(frozen=True)

    target_service: str
    renewal_margin: timedelta = timedelta(minutes=2)
    conflict_extension: timedelta = timedelta(minutes=8)
    exchange_timeout: float = 30.0


class CredentialStatus(BaseModel):
    """Snapshot of the cached credentials for health reporting."""

    has_credentials: bool
    token_length: int = 0
    sign_length: int = 0
    expiration_time: datetime | None = None
    seconds_until_expiration: float | None = None
