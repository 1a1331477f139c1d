"""
Configuration management for the Storefront API.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() enforces strict CORS in production
    - JWT secret is mandatory outside development
"""
import logging
from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/storefront.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    app_name: str = "Storefront API"
    store_name: str = "Storefront"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "storefront-api"
    jwt_access_ttl_minutes: int = 60 * 24 * 7   # 7 days
    auth_cookie_name: str = "token"
    bcrypt_rounds: int = 12

    # ── Rate Limiting ───────────────────────────────────────────────
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100

    # ── Checkout Pricing ────────────────────────────────────────────
    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("500000")
    default_shipping_fee: Decimal = Decimal("25000")

    # ── Response Cache ──────────────────────────────────────────────
    cache_default_ttl_seconds: int = 600
    cache_max_entries: int = 1024
    product_cache_ttl_seconds: int = 300
    category_cache_ttl_seconds: int = 600

    # ── Notification Scheduler ──────────────────────────────────────
    scheduler_interval_seconds: int = 60
    scheduler_enabled: bool = True

    # ── Uploads ─────────────────────────────────────────────────────
    upload_dir: str = "uploads"
    upload_max_bytes: int = 5 * 1024 * 1024   # 5 MB
    upload_max_files: int = 5

    # ── Blocking Work (bcrypt, disk) ────────────────────────────────
    blocking_workers: int = 4

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Enforces strict CORS and a signing secret in production.
        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign customer and admin access tokens."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (auth endpoints will fail)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"{w}")


# Global settings instance
settings = Settings()
