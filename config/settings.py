"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


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
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # IMPORT ENGINE
    # ===================
    import_batch_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Rows per bulk insert request"
    )
    import_max_row_errors: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Row errors returned to the caller"
    )
    import_preview_rows: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Raw sample rows returned by preview"
    )
    import_validate_preview_rows: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Normalized rows returned by validate-mapping"
    )
    import_max_file_mb: int = Field(
        default=15,
        ge=1,
        le=100,
        description="Maximum accepted upload size in MB"
    )
    price_lookup_chunk_size: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="Product ids per current-price lookup request"
    )
    default_category_name: str = Field(
        default="כללי",
        min_length=1,
        description="Sentinel category for rows without a category"
    )
    overwrite_confirmation: str = Field(
        default="DELETE",
        min_length=1,
        description="Typed confirmation required for overwrite imports"
    )

    # ===================
    # TENANT DEFAULTS
    # ===================
    default_vat_percent: float = Field(
        default=18.0,
        ge=0,
        le=100,
        description="VAT used when a tenant has no settings row"
    )
    default_decimal_precision: int = Field(
        default=2,
        ge=0,
        le=8,
        description="Price precision used when a tenant has no settings row"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production|test)$",
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
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        description="Allowed browser origins"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def import_max_file_bytes(self) -> int:
        return self.import_max_file_mb * 1024 * 1024


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
