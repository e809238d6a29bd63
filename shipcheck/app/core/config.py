"""
Configuration management for the Shipping Order Comparator.

This module handles all application configuration using Pydantic settings.
Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError

PROVIDER_MODEL_DEFAULTS = {
    "openai": {
        "extraction_model": "gpt-4o-mini",
        "invoice_model": "gpt-4.1-mini",
        "comparison_model": "gpt-4o-mini",
    },
    "anthropic": {
        "extraction_model": "claude-sonnet-4-5-20250929",
        "invoice_model": "claude-haiku-4-5-20251001",
        "comparison_model": "claude-sonnet-4-5-20250929",
    },
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Credentials default to None; ``require_credentials`` decides whether the
    process may serve traffic.
    """

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")
    api_title: str = Field(default="Shipping Order Comparator", description="API title")
    api_version: str = Field(default="1.0.0", description="API version")
    debug: bool = Field(default=False, description="Debug mode")

    # LLM Configuration
    llm_provider: str = Field(
        default="openai",
        description="LLM provider (openai or anthropic)"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    # Unset models take the provider default from PROVIDER_MODEL_DEFAULTS
    extraction_model: Optional[str] = Field(
        default=None,
        description="Model used to extract shipping orders from page images"
    )
    invoice_model: Optional[str] = Field(
        default=None,
        description="Model used to extract invoices from raw text"
    )
    comparison_model: Optional[str] = Field(
        default=None,
        description="Model used to compare two extracted orders"
    )
    llm_temperature: float = Field(default=0.0, description="LLM temperature")
    extraction_max_tokens: int = Field(default=3000, description="Max tokens per extraction")
    comparison_max_tokens: int = Field(default=4000, description="Max tokens per comparison")
    llm_timeout: int = Field(default=120, description="LLM API timeout in seconds")

    # Conversion Configuration
    conversion_provider: str = Field(
        default="convertapi",
        description="Page rasterizer (convertapi or pymupdf)"
    )
    convertapi_secret: Optional[str] = Field(default=None, description="ConvertAPI bearer secret")
    convertapi_base_url: str = Field(
        default="https://v2.convertapi.com",
        description="ConvertAPI base URL"
    )
    conversion_timeout: int = Field(default=120, description="Conversion timeout in seconds")
    nominal_page_width: int = Field(default=800, description="Reported width when upstream gives none")
    nominal_page_height: int = Field(default=1000, description="Reported height when upstream gives none")

    # PDF Processing
    max_file_size_mb: int = Field(default=50, description="Maximum file size in MB")
    min_file_size_bytes: int = Field(default=100, description="Minimum file size in bytes")
    pdf_dpi: int = Field(default=150, description="DPI for local page rendering")
    pdf_max_pages: int = Field(default=100, description="Maximum PDF pages to process")

    # Comparison
    manual_review_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence below which a comparison needs manual review"
    )

    # Security
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins"
    )
    enable_cors: bool = Field(default=True, description="Enable CORS")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Validate LLM provider is supported."""
        allowed = ["openai", "anthropic"]
        if v.lower() not in allowed:
            raise ValueError(f"LLM provider must be one of {allowed}")
        return v.lower()

    @field_validator("conversion_provider")
    @classmethod
    def validate_conversion_provider(cls, v: str) -> str:
        """Validate conversion provider is supported."""
        allowed = ["convertapi", "pymupdf"]
        if v.lower() not in allowed:
            raise ValueError(f"Conversion provider must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v.upper()

    @model_validator(mode="after")
    def apply_provider_models(self) -> "Settings":
        """Fill every model left unset with the configured provider's default."""
        for field, model in PROVIDER_MODEL_DEFAULTS[self.llm_provider].items():
            if not getattr(self, field):
                setattr(self, field, model)
        return self

    @property
    def max_file_size_bytes(self) -> int:
        """Convert max file size from MB to bytes."""
        return self.max_file_size_mb * 1024 * 1024

    def get_llm_api_key(self) -> Optional[str]:
        """Get the appropriate LLM API key based on provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None

    def missing_credentials(self) -> List[str]:
        """Names of the secrets the configured providers need but lack."""
        missing = []
        if not self.get_llm_api_key():
            missing.append(f"{self.llm_provider}_api_key")
        if self.conversion_provider == "convertapi" and not self.convertapi_secret:
            missing.append("convertapi_secret")
        return missing

    def require_credentials(self) -> None:
        """
        Fail fast when a provider credential is absent.

        Raises:
            ConfigurationError: If any required secret is missing
        """
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing).upper()}"
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
