"""Application settings loaded from environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

WSAA_HOMOLOGATION_URL = "https://wsaahomo.afip.gov.ar/ws/services/LoginCms"
PADRON_HOMOLOGATION_URL = (
    "https://awshomo.afip.gov.ar/sr-padron/webservices/personaServiceA13"
)
TARGET_SERVICE_DEFAULT = "ws_sr_padron_a13"
FALLBACK_PRINCIPAL_ID_DEFAULT = "20111111112"
RENEWAL_MARGIN_DEFAULT = 120
CONFLICT_EXTENSION_DEFAULT = 480
DEFAULT_EXPIRATION_DEFAULT = 600
REQUEST_TIMEOUT_DEFAULT = 30.0
AUTH_MAX_RESPONSE_BYTES_DEFAULT = 65_536
PADRON_MAX_RESPONSE_BYTES_DEFAULT = 655_360


class ArcaSettings(BaseSettings):
    """WSAA credential and Padron lookup settings."""

    model_config = SettingsConfigDict(env_prefix="ARCA_")

    certificate_path: Path = Path("certificado_arca.pfx")
    certificate_password: str = ""
    credentials_cache_path: Path = Path(".afip_credentials_cache.json")

    wsaa_url: str = WSAA_HOMOLOGATION_URL
    padron_url: str = PADRON_HOMOLOGATION_URL
    target_service: str = TARGET_SERVICE_DEFAULT
    fallback_principal_id: str = FALLBACK_PRINCIPAL_ID_DEFAULT

    renewal_margin_seconds: int = RENEWAL_MARGIN_DEFAULT
    conflict_extension_seconds: int = CONFLICT_EXTENSION_DEFAULT
    default_expiration_seconds: int = DEFAULT_EXPIRATION_DEFAULT
    strict_expiration_parsing: bool = False

    request_timeout_seconds: float = REQUEST_TIMEOUT_DEFAULT
    auth_max_response_bytes: int = AUTH_MAX_RESPONSE_BYTES_DEFAULT
    padron_max_response_bytes: int = PADRON_MAX_RESPONSE_BYTES_DEFAULT

    log_level: str = "info"
    cors_origins: str = ""

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if not self.cors_origins:
            return []
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
