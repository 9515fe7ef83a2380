"""FastAPI application factory for the Padron lookup service."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from arca.api.routes_padron import router as padron_router
from arca.core.logging import configure_logging
from arca.core.settings import ArcaSettings
from arca.crypto.identity import IdentityStore, extract_principal_id
from arca.crypto.types import PrincipalResolution, PrincipalSource
from arca.padron.client import PadronClient
from arca.soap.transport import SoapTransport, build_http_client
from arca.wsaa.cache import CredentialCache
from arca.wsaa.gateway import AuthGateway
from arca.wsaa.manager import CredentialManager
from arca.wsaa.types import RenewalPolicy

SERVICE_NAME = "arca-padron"

logger = structlog.get_logger(__name__)


def build_credential_manager(
    settings: ArcaSettings, transport: SoapTransport, identities: IdentityStore
) -> CredentialManager:
    """Wire cache, gateway and policy into the single credential manager."""
    cache = CredentialCache(settings.credentials_cache_path)
    cache.load()
    gateway = AuthGateway(
        transport,
        settings.wsaa_url,
        max_response_bytes=settings.auth_max_response_bytes,
        default_ttl=timedelta(seconds=settings.default_expiration_seconds),
        strict_expiration=settings.strict_expiration_parsing,
    )
    policy = RenewalPolicy(
        target_service=settings.target_service,
        renewal_margin=timedelta(seconds=settings.renewal_margin_seconds),
        conflict_extension=timedelta(seconds=settings.conflict_extension_seconds),
        exchange_timeout=settings.request_timeout_seconds,
    )
    return CredentialManager(
        identities=identities, gateway=gateway, cache=cache, policy=policy
    )


def resolve_principal(
    settings: ArcaSettings, identities: IdentityStore
) -> PrincipalResolution:
    """Extract the represented CUIT once; missing identity means fallback."""
    identity = identities.try_load()
    if identity is None:
        logger.warning(
            "principal_fallback",
            reason="identity unavailable",
            principal_id=settings.fallback_principal_id,
        )
        return PrincipalResolution(
            value=settings.fallback_principal_id, source=PrincipalSource.FALLBACK
        )
    return extract_principal_id(identity, settings.fallback_principal_id)


def create_app(settings: ArcaSettings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    settings = settings or ArcaSettings()
    configure_logging(service_name=SERVICE_NAME, level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        http_client = build_http_client(settings)
        transport = SoapTransport(http_client)
        identities = IdentityStore(
            settings.certificate_path, settings.certificate_password
        )
        app.state.principal = resolve_principal(settings, identities)
        app.state.credential_manager = build_credential_manager(
            settings, transport, identities
        )
        app.state.padron_client = PadronClient(
            transport,
            settings.padron_url,
            max_response_bytes=settings.padron_max_response_bytes,
        )
        logger.info(
            "service_started",
            principal_id=app.state.principal.value,
            principal_source=app.state.principal.source,
            wsaa_url=settings.wsaa_url,
        )
        try:
            yield
        finally:
            await http_client.aclose()

    app = FastAPI(
        title="ARCA Padron API",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = settings.get_cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.include_router(padron_router)

    return app
