"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )

    # ===================
    # ASSET UPLOAD
    # ===================
    upload_url: str = Field(
        default="http://localhost:5000/api/upload/public",
        description="Public asset upload endpoint (multipart POST)"
    )
    upload_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=120,
        description="Seconds before a hanging upload counts as failed"
    )
    upload_category: str = Field(
        default="products",
        description="Storage category sent with every product image"
    )
    max_image_slots: int = Field(
        default=4,
        ge=1,
        le=20,
        description="Maximum images per product"
    )
    max_image_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Per-image size ceiling in bytes"
    )

    # ===================
    # DRAFTS
    # ===================
    draft_debounce_ms: int = Field(
        default=1000,
        ge=0,
        le=60000,
        description="Autosave debounce window in milliseconds"
    )
    draft_ttl_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Days a saved draft stays restorable"
    )
    draft_storage_dir: str = Field(
        default=".drafts",
        description="Directory holding one JSON file per draft key"
    )

    # ===================
    # SESSIONS
    # ===================
    session_idle_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Minutes an untouched wizard session stays mounted"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def draft_debounce_seconds(self) -> float:
        """Debounce window as seconds, for the scheduler."""
        return self.draft_debounce_ms / 1000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
