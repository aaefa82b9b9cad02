"""
Backtester Application Settings
Configuration management using Pydantic Settings
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_prefix="BACKTESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Backtester"
    log_level: str = Field(default="INFO")

    # Candle database
    database_enabled: bool = Field(default=False)
    database_url: str = Field(default="sqlite:///./candles.db")

    # Reporting
    report_output_dir: Optional[str] = Field(default=None)

    # Live data: upper bound in seconds on a single wait between polls
    live_poll_timeout: float = Field(default=60.0)


# Global settings instance
settings = Settings()
