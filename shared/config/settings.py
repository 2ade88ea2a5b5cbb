"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,https://gestaobancar.vercel.app"


class Settings(BaseSettings):
    """Application settings. Credentials have no defaults on purpose."""

    # Store (DSN carries the store credentials)
    database_url: str = ""

    # Mercado Pago
    mercado_pago_access_token: str = ""
    mercado_pago_api_url: str = "https://api.mercadopago.com"
    # Advertised to the gateway as notification_url when creating charges
    mp_webhook_url: str = ""

    # Gateway calls must not hang: fail closed after this many seconds
    gateway_timeout_seconds: float = 15.0
    gateway_failure_threshold: int = 5
    gateway_recovery_seconds: float = 30.0

    # Comma-separated list of allowed origins (empty uses the default list)
    allowed_origins: str = ""

    # slowapi limit string for POST /api/pix
    create_charge_rate_limit: str = "10/minute"

    # Server
    port: int = 3000
    environment: str = "development"
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def cors_origins(self) -> list[str]:
        raw = self.allowed_origins or DEFAULT_ALLOWED_ORIGINS
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def validate_required(self) -> list[str]:
        """
        Return the list of missing mandatory settings.

        Empty list means the service can start. Both the gateway token and the
        store DSN are startup-fatal when absent.
        """
        errors = []

        if not self.mercado_pago_access_token.strip():
            errors.append("MERCADO_PAGO_ACCESS_TOKEN must be set")

        if not self.database_url.strip():
            errors.append("DATABASE_URL must be set (store credentials)")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
