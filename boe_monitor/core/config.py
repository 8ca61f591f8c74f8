"""
Configuration management for the BOE monitoring system.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

SERVICE_GEMINI = "gemini"
SERVICE_OPENAI = "openai"
ANALYSIS_SERVICES = (SERVICE_GEMINI, SERVICE_OPENAI)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Deployment
    environment: str = Field("production", alias="APP_ENV")
    low_latency_mode: bool = Field(False, alias="LOW_LATENCY_MODE")

    # BOE open data API
    boe_api_base_url: str = Field(
        "https://www.boe.es/datosabiertos/api/boe/sumario", alias="BOE_API_BASE_URL"
    )
    boe_source_url: str = Field("https://www.boe.es", alias="BOE_SOURCE_URL")
    boe_user_agent: str = Field("BOE Parser Bot/1.0", alias="BOE_USER_AGENT")
    fetch_timeout_seconds: float = Field(15.0, alias="FETCH_TIMEOUT_SECONDS")
    fetch_max_attempts: int = Field(3, alias="FETCH_MAX_ATTEMPTS")
    fetch_base_delay_seconds: float = Field(1.0, alias="FETCH_BASE_DELAY_SECONDS")

    # Analysis backend: "gemini" or "openai"
    analysis_service: str = Field("gemini", alias="ANALYSIS_SERVICE")
    gemini_api_key: Optional[str] = Field(None, alias="GEMINI_API_KEY")
    gemini_model: str = Field("gemini-1.5-pro", alias="GEMINI_MODEL")
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(None, alias="OPENAI_BASE_URL")
    openai_model: str = Field("gpt-4o-mini", alias="OPENAI_MODEL")
    backend_timeout_seconds: float = Field(60.0, alias="BACKEND_TIMEOUT_SECONDS")
    backend_temperature: float = Field(0.2, alias="BACKEND_TEMPERATURE")
    backend_max_tokens: int = Field(4096, alias="BACKEND_MAX_TOKENS")

    # Chunking and dispatch
    chunk_max_items: int = Field(750, alias="CHUNK_MAX_ITEMS")
    chunk_max_tokens: Optional[int] = Field(None, alias="CHUNK_MAX_TOKENS")
    max_concurrent_requests: int = Field(2, alias="MAX_CONCURRENT_REQUESTS")
    wave_delay_seconds: float = Field(1.0, alias="WAVE_DELAY_SECONDS")
    max_batches: Optional[int] = Field(None, alias="MAX_BATCHES")

    # Relevance handling, per backend convention (0-1 or 0-100)
    relevance_fallback: float = Field(0.0, alias="RELEVANCE_FALLBACK")
    min_relevance: Optional[float] = Field(None, alias="MIN_RELEVANCE")

    # Notification publishing
    google_cloud_project: Optional[str] = Field(None, alias="GOOGLE_CLOUD_PROJECT")
    publish_topic: str = Field("processor-results", alias="PUBSUB_TOPIC_NAME")
    publish_dlq_topic: str = Field("processor-results-dlq", alias="PUBSUB_DLQ_TOPIC_NAME")
    publish_timeout_seconds: float = Field(10.0, alias="PUBLISH_TIMEOUT_SECONDS")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("json", alias="LOG_FORMAT")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def skip_wave_delay(self) -> bool:
        """Development and low-latency deployments dispatch waves back to back."""
        return self.low_latency_mode or self.is_development

    @property
    def effective_max_batches(self) -> Optional[int]:
        """Development deployments only analyze the first batch unless told otherwise."""
        if self.max_batches is not None:
            return self.max_batches
        return 1 if self.is_development else None

    @property
    def model_name(self) -> str:
        """Model of the selected analysis service."""
        if self.analysis_service == SERVICE_OPENAI:
            return self.openai_model
        return self.gemini_model

    def validate_backend(self) -> None:
        """Fail fast on settings the analysis backend cannot run without."""
        if self.analysis_service not in ANALYSIS_SERVICES:
            raise ConfigurationError(
                "Unknown analysis service",
                details={"setting": "ANALYSIS_SERVICE", "value": self.analysis_service,
                         "allowed": list(ANALYSIS_SERVICES)},
            )

        missing = []
        if self.analysis_service == SERVICE_OPENAI:
            if not self.openai_api_key:
                missing.append("OPENAI_API_KEY")
            if not self.openai_model:
                missing.append("OPENAI_MODEL")
        else:
            if not self.gemini_api_key:
                missing.append("GEMINI_API_KEY")
            if not self.gemini_model:
                missing.append("GEMINI_MODEL")
        if missing:
            raise ConfigurationError(
                "Missing required backend configuration",
                details={"service": self.analysis_service, "missing": missing},
            )

        limits = {
            "MAX_CONCURRENT_REQUESTS": self.max_concurrent_requests,
            "CHUNK_MAX_ITEMS": self.chunk_max_items,
            "CHUNK_MAX_TOKENS": self.chunk_max_tokens,
        }
        for name, value in limits.items():
            if value is not None and value < 1:
                raise ConfigurationError(
                    f"{name} must be at least 1",
                    details={"setting": name, "value": value},
                )


# Global settings instance
settings = Settings()
