"""Shared test fixtures for the ARCA credential manager."""

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from httpx import ASGITransport, AsyncClient

from arca.crypto.types import Identity

PFX_PASSWORD = "1234"
TEST_CUIT = "20123456789"
T0 = datetime(2025, 3, 14, 15, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep settings away from the working directory during tests."""
    monkeypatch.setenv("ARCA_CERTIFICATE_PATH", str(tmp_path / "missing.pfx"))
    monkeypatch.setenv("ARCA_CREDENTIALS_CACHE_PATH", str(tmp_path / "cache.json"))


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def make_identity(
    rsa_key: rsa.RSAPrivateKey,
) -> Callable[..., Identity]:
    """Build a self-signed identity with the given subject and serial."""

    def _make(
        attributes: list[x509.NameAttribute] | None = None,
        serial_number: int = 0x5A5A5A,
    ) -> Identity:
        if attributes is None:
            attributes = [
                x509.NameAttribute(NameOID.COMMON_NAME, "arca-test"),
                x509.NameAttribute(NameOID.SERIAL_NUMBER, f"CUIT {TEST_CUIT}"),
            ]
        name = x509.Name(attributes)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(rsa_key.public_key())
            .serial_number(serial_number)
            .not_valid_before(datetime.now(UTC) - timedelta(days=1))
            .not_valid_after(datetime.now(UTC) + timedelta(days=365))
            .sign(rsa_key, hashes.SHA256())
        )
        return Identity(private_key=rsa_key, certificate=certificate)

    return _make


@pytest.fixture(scope="session")
def identity(make_identity: Callable[..., Identity]) -> Identity:
    return make_identity()


@pytest.fixture
def pfx_path(tmp_path: Path, identity: Identity) -> Path:
    """Write the identity to a password-protected PKCS#12 file."""
    data = pkcs12.serialize_key_and_certificates(
        name=b"arca-test",
        key=identity.private_key,
        cert=identity.certificate,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(
            PFX_PASSWORD.encode()
        ),
    )
    path = tmp_path / "certificado_arca.pfx"
    path.write_bytes(data)
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def api_client() -> AsyncIterator[Callable[..., AsyncClient]]:
    """Factory for an httpx client against the app with injected services."""
    from arca.api.deps import (
        get_credential_manager,
        get_padron_client,
        get_principal,
    )
    from arca.core.app import create_app

    clients: list[AsyncClient] = []

    def _build(*, manager, padron, principal) -> AsyncClient:
        app = create_app()
        app.dependency_overrides[get_credential_manager] = lambda: manager
        app.dependency_overrides[get_padron_client] = lambda: padron
        app.dependency_overrides[get_principal] = lambda: principal
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _build

    for client in clients:
        await client.aclose()
