import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

load_dotenv()


class Settings(BaseModel):
    # Remote service
    api_base_url: str = Field(
        default="https://app.bragbookgallery.com", alias="GALLERY_API_BASE_URL"
    )
    api_tokens: list[str] = Field(default_factory=list, alias="GALLERY_API_TOKENS")
    website_property_ids: list[str] = Field(
        default_factory=list, alias="GALLERY_WEBSITE_PROPERTY_IDS"
    )
    api_timeout: float = Field(default=30.0, alias="GALLERY_API_TIMEOUT")
    max_redirects: int = Field(default=5, alias="GALLERY_API_MAX_REDIRECTS")

    # Rate limiting
    rate_limit_requests: int = Field(default=30, alias="GALLERY_RATE_LIMIT_REQUESTS")
    rate_limit_window: int = Field(default=60, alias="GALLERY_RATE_LIMIT_WINDOW")

    # Circuit breaker and retries
    circuit_breaker_threshold: int = Field(
        default=5, alias="GALLERY_CIRCUIT_BREAKER_THRESHOLD"
    )
    circuit_breaker_timeout: int = Field(
        default=300, alias="GALLERY_CIRCUIT_BREAKER_TIMEOUT"
    )
    max_retry_attempts: int = Field(default=3, alias="GALLERY_MAX_RETRY_ATTEMPTS")
    batch_delay_ms: int = Field(default=100, alias="GALLERY_BATCH_DELAY_MS")

    # Caching
    caching_enabled: bool = Field(default=True, alias="GALLERY_CACHING_ENABLED")
    cache_max_size: int = Field(default=500, alias="GALLERY_CACHE_MAX_SIZE")

    # Persistent store
    database_url: str = Field(
        default="sqlite+aiosqlite:///./gallery_api.db", alias="GALLERY_DATABASE_URL"
    )
    database_echo: bool = Field(default=False, alias="GALLERY_DATABASE_ECHO")

    debug: bool = Field(default=False, alias="GALLERY_DEBUG")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("api_tokens", "website_property_ids", mode="before")
    @classmethod
    def split_csv(cls, value):
        """Accept comma separated strings from the environment."""
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        return [str(value)]

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after .env is loaded)."""
        env = {
            name: value
            for name, value in os.environ.items()
            if name.startswith("GALLERY_")
        }
        return cls.model_validate(env)


global_settings = Settings.from_env()
