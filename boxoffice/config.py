"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Gateway calls always carry an explicit timeout (gateway_timeout_seconds)
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://boxoffice:boxoffice@db:5432/boxoffice"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # PayPal
    paypal_client_id: str = "paypal-client-placeholder"
    paypal_client_secret: str = "paypal-secret-placeholder"
    paypal_base_url: str = "https://api-m.sandbox.paypal.com"
    paypal_brand_name: str = "BoxOffice"

    # Gateway behaviour
    gateway_timeout_seconds: float = 15.0
    gateway_token_expiry_margin_seconds: int = 60

    # Settlement
    currency: str = "USD"
    default_return_url: str = "http://localhost:5173/checkout/success"
    default_cancel_url: str = "http://localhost:5173/checkout/cancel"
    restock_on_refund: bool = True
    max_tickets_per_line: int = 100

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
