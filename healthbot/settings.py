"""
Application settings using pydantic-settings.

Centralizes configuration for the chatbot service and its connection to the
remote healthcare API. Values come from the environment or a local .env file.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field


PLACEHOLDER_TOKEN = "your_bearer_token_here"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App Configuration
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")
    DEBUG: bool = Field(default=True, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="info", description="Logging level")

    # Server Configuration
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=3000, description="Server port")

    # Remote Healthcare API
    HEALTH_API_URL: str = Field(default="http://localhost:5000/api", description="Base URL of the healthcare API")
    HEALTH_API_KEY: Optional[str] = Field(default=None, description="Static API key sent as X-API-Key")
    HEALTH_API_TOKEN: Optional[str] = Field(default=None, description="Service bearer token")
    REQUEST_TIMEOUT_SECONDS: float = Field(default=10.0, description="Outbound request timeout")

    # Sessions
    EXTERNAL_SESSION_MAX_AGE_HOURS: int = Field(default=24, description="Lifetime of a bound external session")
    SESSION_TTL_MINUTES: int = Field(default=120, description="Idle lifetime of a conversation session")
    SESSION_MAX_ENTRIES: int = Field(default=10000, description="Maximum conversation sessions kept in memory")
    ALLOW_GUEST_DRAFTS: bool = Field(
        default=False,
        description="Create placeholder drafts when a booking step arrives without a selected doctor",
    )

    # CORS Configuration
    CORS_ORIGINS_STR: str = Field(default="http://localhost:3000", description="Comma-separated CORS origins")

    @computed_field
    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from string to list."""
        if self.CORS_ORIGINS_STR == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(",") if origin.strip()]

    # Rate Limiting
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, description="Sliding window for chat rate limiting")
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=60, description="Chat requests allowed per user per window")

    # Static content
    HOSPITAL_CONTACT_NUMBER: str = Field(default="+91-1234567890", description="Hospital phone shown in replies")

    # Manual login helper
    TEST_PATIENT_EMAIL: Optional[str] = Field(default=None, description="Default e-mail for /test-login")
    TEST_PATIENT_PASSWORD: Optional[str] = Field(default=None, description="Default password for /test-login")

    @property
    def service_token(self) -> Optional[str]:
        """Configured bearer token, ignoring the sample placeholder."""
        if self.HEALTH_API_TOKEN and self.HEALTH_API_TOKEN != PLACEHOLDER_TOKEN:
            return self.HEALTH_API_TOKEN
        return None

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
