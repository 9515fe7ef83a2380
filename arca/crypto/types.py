"""Type definitions for the signing identity and the principal it asserts."""

from enum import StrEnum

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from pydantic import BaseModel, ConfigDict


class Identity(BaseModel):
    """Private key plus certificate loaded from a PKCS#12 container."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    private_key: RSAPrivateKey | EllipticCurvePrivateKey
    certificate: x509.Certificate

    @property
    def certificate_der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def subject(self) -> str:
        return self.certificate.subject.rfc4514_string()


class PrincipalSource(StrEnum):
    """Where the principal identifier was found."""

    SUBJECT = "subject"
    SERIAL = "serial"
    FALLBACK = "fallback"


class PrincipalResolution(BaseModel):
    """The 11-digit principal identifier and how it was obtained."""

    model_config = ConfigDict(frozen=True)

    value: str
    source: PrincipalSource

    @property
    def degraded(self) -> bool:
        """True when no identifier was found and the placeholder is in use."""
        return self.source is PrincipalSource.FALLBACK
