"""FastAPI dependency injection for the services built at startup."""

from fastapi import Request

from arca.crypto.types import PrincipalResolution
from arca.padron.client import PadronClient
from arca.wsaa.manager import CredentialManager


def get_credential_manager(request: Request) -> CredentialManager:
    return request.app.state.credential_manager


def get_padron_client(request: Request) -> PadronClient:
    return request.app.state.padron_client


def get_principal(request: Request) -> PrincipalResolution:
    return request.app.state.principal
