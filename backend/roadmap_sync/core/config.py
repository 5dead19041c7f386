"""
Ultra Roadmap Sync - Configuration
==================================

All application settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Ultra Roadmap Sync"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # ==========================================================================
    # API
    # ==========================================================================
    CORS_ORIGINS: list[str] = ["*"]
    MAX_REQUEST_BODY_BYTES: int = 50 * 1024 * 1024

    # Shared secret expected in the X-API-KEY header (API_KEY is accepted too)
    X_API_KEY: Optional[str] = None
    API_KEY: Optional[str] = None

    # ==========================================================================
    # Database (supports SQLite and PostgreSQL)
    # ==========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./roadmap_sync.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL

    # ==========================================================================
    # Identity provider (admin API)
    # ==========================================================================
    SERVICE_ROLE_KEY: Optional[str] = None
    PROFILE_TRIGGER_ENABLED: bool = True
    PROFILE_TRIGGER_DELAY_SECONDS: float = 0.5
    PASSWORD_HASH_ROUNDS: int = 12

    # Generated password requirements
    GENERATED_PASSWORD_LENGTH: int = 16
    PASSWORD_REQUIRE_UPPERCASE: bool = True
    PASSWORD_REQUIRE_LOWERCASE: bool = True
    PASSWORD_REQUIRE_DIGIT: bool = True
    PASSWORD_REQUIRE_SYMBOL: bool = True

    # ==========================================================================
    # Text completion (week titles)
    # ==========================================================================
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_URL: str = "https://api.openai.com/v1/chat/completions"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 600

    # ==========================================================================
    # Email (Resend)
    # ==========================================================================
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    FROM_EMAIL: str = "onboarding@app-ultra.com"
    RESEND_TEST_EMAIL: Optional[str] = None
    APP_URL: str = "https://ultra-copy.vercel.app"

    # ==========================================================================
    # External Services
    # ==========================================================================
    OUTBOUND_TIMEOUT_SECONDS: float = 30.0

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def expected_api_key(self) -> Optional[str]:
        key = (self.X_API_KEY or self.API_KEY or "").strip()
        return key or None

    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @computed_field  # type: ignore[misc]
    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
