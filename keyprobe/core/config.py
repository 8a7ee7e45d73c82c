from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_host: str = Field(default="0.0.0.0", description="Application host")
    app_port: int = Field(default=8000, ge=1, le=65535, description="Application port")
    app_debug: bool = Field(default=False, description="Debug mode")
    app_worker: int = Field(default=1, ge=1, le=1, description="Application workers")

    # Main scheduler
    default_concurrency: int = Field(
        default=5, ge=1, description="Concurrent key tests when a run does not say"
    )
    max_concurrency: int = Field(
        default=50, ge=1, description="Upper bound accepted for a run's concurrency"
    )
    default_max_retries: int = Field(
        default=2, ge=0, description="Retries per key when a run does not say"
    )
    max_retries_limit: int = Field(
        default=10, ge=0, description="Upper bound accepted for a run's retries"
    )
    retry_jitter_min_ms: int = Field(
        default=300, ge=0, description="Lower bound of the pre-retry jitter delay"
    )
    retry_jitter_max_ms: int = Field(
        default=800, ge=0, description="Upper bound of the pre-retry jitter delay"
    )
    probe_timeout: int = Field(
        default=20, ge=1, description="Provider request timeout in seconds"
    )

    # Provider endpoints
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="OpenAI-compatible API base URL"
    )
    claude_base_url: str = Field(
        default="https://api.anthropic.com/v1", description="Claude API base URL"
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL",
    )
    claude_api_version: str = Field(
        default="2023-06-01", description="Value of the anthropic-version header"
    )

    # Gemini paid tier detection
    paid_detection_enabled: bool = Field(
        default=True, description="Probe Gemini keys for paid tier after validation"
    )
    paid_detection_max_concurrency: int = Field(
        default=5, ge=1, description="Maximum concurrent paid tier probes"
    )
    paid_detection_backoff_base_ms: int = Field(
        default=500, ge=0, description="First backoff delay after a rate limited probe"
    )
    paid_detection_backoff_factor: float = Field(
        default=2.0, ge=1.0, description="Backoff growth factor"
    )
    paid_detection_backoff_max_ms: int = Field(
        default=8000, ge=0, description="Backoff delay cap"
    )
    paid_detection_retries: int = Field(
        default=2, ge=0, description="Retries of a rate limited paid tier probe"
    )
    paid_detection_min_text_len: int = Field(
        default=8000, ge=1, description="Characters sent by the paid tier probe"
    )
    paid_detection_model: str = Field(
        default="models/gemini-2.5-flash", description="Model used by the paid tier probe"
    )

    # Logging format
    log_format: str = Field(
        default="\033[38;5;240m%(asctime)s\033[0m %(levelname)s: \033[1000D\033[26C\033[K %(message)s",
        description="Logging format string",
    )

    @model_validator(mode="after")
    def validate_bounds(self) -> "Settings":
        """Validate that paired lower/upper bounds are ordered."""
        if self.retry_jitter_max_ms < self.retry_jitter_min_ms:
            raise ValueError(
                f"retry_jitter_max_ms ({self.retry_jitter_max_ms}) must be >= "
                f"retry_jitter_min_ms ({self.retry_jitter_min_ms})"
            )
        if self.default_concurrency > self.max_concurrency:
            raise ValueError(
                f"default_concurrency ({self.default_concurrency}) must be <= "
                f"max_concurrency ({self.max_concurrency})"
            )
        return self


settings = Settings()
