"""Configuration management for LedgerScan."""

from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Vision model API (OpenAI-compatible chat completions endpoint)
    vision_api_url: str = ""
    vision_api_key: str = ""
    vision_model: str = "qwen-vl-max"
    vision_max_tokens: int = 2000
    vision_timeout: float | None = None  # None = transport default

    # Storage is disabled when no database path is configured
    database_path: Path | None = None

    # Extraction policies
    unmarked_amount_type: Literal["unknown", "credit"] = "unknown"
    date_day_first: bool = True

    # Upload limits
    max_receipt_bytes: int = 5 * 1024 * 1024
    max_statement_bytes: int = 10 * 1024 * 1024
    pdf_render_resolution: int = 150

    # Development mode
    dev_mode: bool = True
    log_level: str = "INFO"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # VISION_API_URL and vision_api_url both work
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def api_configured(self) -> bool:
        """Whether both the endpoint and the credential are set."""
        return bool(self.vision_api_url and self.vision_api_key)

    @property
    def storage_enabled(self) -> bool:
        return self.database_path is not None

    @property
    def masked_api_key(self) -> str | None:
        """API key with everything but the first and last four characters hidden."""
        key = self.vision_api_key
        if not key:
            return None
        if len(key) <= 8:
            return "*" * len(key)
        return f"{key[:4]}...{key[-4:]}"

    @property
    def api_origin(self) -> str | None:
        """Scheme and host of the configured API URL, or None if it does not parse."""
        parsed = urlparse(self.vision_api_url)
        if not parsed.scheme or not parsed.netloc:
            return None
        return f"{parsed.scheme}://{parsed.netloc}"

    def log_config(self) -> None:
        """Log current configuration with sensitive values redacted."""
        print("\n" + "=" * 60)
        print("📋 CONFIGURATION LOADED")
        print("=" * 60)
        print(f"Vision API URL:      {self.vision_api_url or '✗ Not set'}")
        print(f"Vision API Key:      {'✓ Set (' + self.masked_api_key + ')' if self.masked_api_key else '✗ Not set'}")
        print(f"Vision Model:        {self.vision_model}")
        print(f"Max Tokens:          {self.vision_max_tokens}")
        print(f"Timeout:             {self.vision_timeout or 'transport default'}")
        print(f"Database:            {self.database_path or 'disabled'}")
        print(f"Unmarked Amounts:    {self.unmarked_amount_type}")
        print(f"Day-first Dates:     {self.date_day_first}")
        print(f"Dev Mode:            {self.dev_mode}")
        print(f"API Host:            {self.api_host}:{self.api_port}")
        print("=" * 60 + "\n")


# Global settings instance
settings = Settings()
