"""
Platform Configuration Management

Centralizes all configuration for the ImobCRM platform.
Supports multiple environments (local, dev, prod) with secrets injected via environment.
"""

import logging
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_PAGE_SIZE, SUBSCRIPTION_PRICE_CENTS, TRIAL_DAYS


class Environment(str, Enum):
    """Supported deployment environments."""

    LOCAL = "local"
    DEV = "dev"
    PROD = "prod"


class CRMConfig(BaseSettings):
    """
    Platform-wide configuration settings.

    Loads from environment variables with .env file support.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(default=Environment.LOCAL)

    # Platform Database (tenants and subscriptions)
    platform_mongo_db_url: str = Field(default="mongodb://localhost:27017")
    platform_mongo_db_name: str = Field(default="imobcrm_platform")
    default_tenant_db_prefix: str = Field(default="imobcrm_tenant_")

    # Redis (tenant lookup cache, disabled when unset)
    redis_url: Optional[str] = Field(default=None)
    tenant_cache_ttl_seconds: int = Field(default=300, ge=0)

    # Security
    jwt_secret_key: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expiry_hours: int = Field(default=24)
    refresh_token_expiry_days: int = Field(default=30)
    platform_admin_api_key: Optional[str] = Field(default=None)

    # Mercado Pago
    mercado_pago_access_token: Optional[str] = Field(default=None)
    mercado_pago_webhook_secret: Optional[str] = Field(default=None)
    mercado_pago_api_base_url: str = Field(default="https://api.mercadopago.com")
    mercado_pago_timeout_seconds: float = Field(default=15.0)

    # Subscription plan
    subscription_plan_type: str = Field(default="BASE")
    subscription_plan_reason: str = Field(default="CRM Imobiliário - Plano Base")
    subscription_price_cents: int = Field(default=SUBSCRIPTION_PRICE_CENTS, ge=1)
    subscription_currency: str = Field(default="BRL")
    trial_days: int = Field(default=TRIAL_DAYS)

    # Platform URLs
    app_url: str = Field(default="http://localhost:3000")

    # Pagination
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    # Audit & Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    enable_audit_logging: bool = Field(default=True)

    # CORS Configuration
    allowed_origins: str = Field(default="http://localhost:3000")

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_secret_key(cls, v: str, info) -> str:
        """Ensure secret key is properly set in non-local environments."""
        env = info.data.get("environment", Environment.LOCAL)
        if env != Environment.LOCAL and v == "change-me-in-production":
            raise ValueError("jwt_secret_key must be set in non-local environments")
        return v

    @field_validator("trial_days")
    @classmethod
    def validate_trial_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError("trial_days must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level '{v}'")
        return level

    def get_allowed_origins_list(self) -> list[str]:
        """Parse CORS allowed origins into a list."""
        if self.environment == Environment.LOCAL:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def get_tenant_db_name(self, tenant_id: str) -> str:
        """Generate tenant-specific database name."""
        return f"{self.default_tenant_db_prefix}{tenant_id}"

    @property
    def subscription_price(self) -> float:
        """Monthly price in reais, as the payment provider expects it."""
        return self.subscription_price_cents / 100

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PROD

    @property
    def is_local(self) -> bool:
        return self.environment == Environment.LOCAL


@lru_cache()
def get_config() -> CRMConfig:
    """
    Get cached platform configuration.

    Uses lru_cache to ensure config is loaded only once.
    """
    return CRMConfig()
