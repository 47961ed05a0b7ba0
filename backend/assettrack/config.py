"""
Configuration management for the AssetTrack backend.
Uses pydantic-settings for environment variable handling.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # API Configuration
    api_title: str = "AssetTrack API"
    api_version: str = "1.0.0"
    debug: bool = False

    # Database Configuration
    database_path: str | None = None  # defaults to backend/data/assettrack.db

    # Bulk Import Configuration
    import_chunk_size: int = 10  # rows processed concurrently per chunk
    import_error_cap: int = 50  # max errors/warnings returned in a summary
    default_asset_status: str = "Active"
    default_peripheral_condition: str = "Good"

    # Customer reference numbers generated for implicitly created customers
    customer_ref_prefix: str = "M"
    customer_ref_width: int = 4
    customer_ref_max_attempts: int = 3

    # Audit Configuration
    audit_enabled: bool = True
    system_user_id: int = 0
    system_username: str = "System"


# Global settings instance
settings = Settings()
