"""PKCS#12 identity loading and principal (CUIT) extraction."""

import re
from pathlib import Path

import structlog
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from arca.core.errors import IdentityUnavailable
from arca.crypto.types import Identity, PrincipalResolution, PrincipalSource

PRINCIPAL_ID_LENGTH = 11

_NON_DIGITS = re.compile(r"\D")
_PRINCIPAL_ATTRIBUTES = (NameOID.COMMON_NAME, NameOID.SERIAL_NUMBER)

logger = structlog.get_logger(__name__)


def load_identity(path: Path, password: str) -> Identity:
    """Load the private key and end-entity certificate from a PKCS#12 file."""
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise IdentityUnavailable(f"Cannot read certificate at {path}: {exc}") from exc

    try:
        key, certificate, _chain = pkcs12.load_key_and_certificates(
            data, password.encode() if password else None
        )
    except ValueError as exc:
        raise IdentityUnavailable(
            f"Cannot open certificate at {path}: wrong password or corrupt file"
        ) from exc

    if key is None or certificate is None:
        raise IdentityUnavailable(f"Certificate at {path} lacks a key or certificate")
    if not isinstance(key, RSAPrivateKey | EllipticCurvePrivateKey):
        raise IdentityUnavailable(
            f"Unsupported key type {type(key).__name__} in {path}"
        )
    return Identity(private_key=key, certificate=certificate)


def _digits(value: str) -> str:
    return _NON_DIGITS.sub("", value)


def extract_principal_id(identity: Identity, fallback: str) -> PrincipalResolution:
    """Find the 11-digit principal identifier in the certificate.

    Subject CN and serialNumber attributes are scanned in order and the first
    one holding exactly eleven digits wins. Otherwise the leading eleven
    digits of the certificate serial number (as upper-case hex) are used.
    When both fail, ``fallback`` is returned with a FALLBACK source.
    """
    for attribute in identity.certificate.subject:
        if attribute.oid not in _PRINCIPAL_ATTRIBUTES:
            continue
        candidate = _digits(str(attribute.value))
        if len(candidate) == PRINCIPAL_ID_LENGTH:
            logger.info("principal_from_subject", principal_id=candidate)
            return PrincipalResolution(value=candidate, source=PrincipalSource.SUBJECT)

    serial_digits = _digits(format(identity.certificate.serial_number, "X"))
    if len(serial_digits) >= PRINCIPAL_ID_LENGTH:
        candidate = serial_digits[:PRINCIPAL_ID_LENGTH]
        logger.info("principal_from_serial", principal_id=candidate)
        return PrincipalResolution(value=candidate, source=PrincipalSource.SERIAL)

    logger.warning(
        "principal_fallback",
        subject=identity.subject,
        principal_id=fallback,
        hint="set ARCA_FALLBACK_PRINCIPAL_ID to the represented CUIT",
    )
    return PrincipalResolution(value=fallback, source=PrincipalSource.FALLBACK)


class IdentityStore:
    """Owns the single process identity, loading it on first use."""

    def __init__(self, path: Path, password: str) -> None:
        self._path = path
        self._password = password
        self._identity: Identity | None = None

    @property
    def path(self) -> Path:
        return self._path

    def try_load(self) -> Identity | None:
        """Load at startup; a missing identity is only a warning here."""
        try:
            return self.get()
        except IdentityUnavailable as exc:
            logger.warning("identity_unavailable", path=str(self._path), error=str(exc))
            return None

    def get(self) -> Identity:
        if self._identity is None:
            self._identity = load_identity(self._path, self._password)
            logger.info(
                "identity_loaded",
                path=str(self._path),
                subject=self._identity.subject,
                not_after=self._identity.certificate.not_valid_after_utc.isoformat(),
            )
        return self._identity
