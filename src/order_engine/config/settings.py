"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./orders.db"
    database_echo: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    log_timezone: str = "UTC"
    environment: str = "development"

    # Display Configuration
    currency_symbol: str = "$"

    # History notes used when an admin edits an order without a note
    default_admin_price_note: str = "Item added by admin with custom price"
    default_admin_quantity_note: str = "Item quantity updated by admin"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
