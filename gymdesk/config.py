"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Authentication
    # ==========================================================================

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    staff_session_expire_hours: int = 24

    # Staff login lockout
    max_login_attempts: int = 5
    lockout_minutes: int = 15

    # PBKDF2 rounds for stored credentials
    password_hash_iterations: int = 100_000

    # ==========================================================================
    # Authorization
    # ==========================================================================

    # Upper bound for the identity/role lookups behind a single decision.
    # A lookup that does not finish in time is treated as unauthenticated.
    auth_lookup_timeout_seconds: float = 5.0

    # Which policy table seeds new staff members, and where the tables live
    # (empty path = the bundled gymdesk/resources/permission_policies.yaml)
    default_permission_policy: str = "standard"
    permission_policies_path: str = ""

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
