"""
evdms_rules.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (e.g., JWT secret).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single settings object shared by the rules, persistence and HTTP layers.
    Defaults are safe for local dev.
    """

    model_config = SettingsConfigDict(env_prefix="EVDMS_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "evdms-rules"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "evdms-identity"
    jwt_audience: str = "evdms-api"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)
    auth_api_base_url: str = "http://localhost:3000"

    # Session mirrors (durable storage keys + cookie read by edge middleware)
    storage_key_prefix: str = "evdms_"
    cookie_max_age_days: int = 7
    cookie_same_site: Literal["Lax", "Strict", "None"] = "Lax"
    cookie_path: str = "/"

    # Routing
    login_path: str = "/login"
    unauthorized_path: str = "/unauthorized"
    protected_prefixes: list[str] = Field(default_factory=lambda: ["/dashboard"])
    login_only_prefixes: list[str] = Field(default_factory=lambda: ["/login", "/register"])
    route_table_path: Path | None = None

    # Finance
    currency: str = "VND"
    currency_minor_digits: int = 0
    installment_min_down_payment_percent: int = 20
    installment_min_months: int = 12
    installment_max_months: int = 48

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./evdms.db"

    @property
    def auth_token_key(self) -> str:
        return f"{self.storage_key_prefix}auth_token"

    @property
    def refresh_token_key(self) -> str:
        return f"{self.storage_key_prefix}refresh_token"

    @property
    def user_key(self) -> str:
        return f"{self.storage_key_prefix}user"

    @property
    def cookie_name(self) -> str:
        # The cookie mirrors the durable auth token entry under the same name.
        return self.auth_token_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Key names are derived from `storage_key_prefix` so the durable mirror, the cookie
# mirror and the cross-tab signal always agree on the auth-token key.
