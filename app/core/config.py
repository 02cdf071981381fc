# app/core/config.py
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRET_KEY = "fixrx-dev-secret-change-me"


class Settings(BaseSettings):
    """
    Application settings, read from the environment (and `.env` if present).
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API
    PROJECT_NAME: str = "FixRx API"
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str = "sqlite:///./fixrx.db"
    DB_ECHO: bool = False

    # Security
    SECRET_KEY: str = DEFAULT_SECRET_KEY
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Domain
    MIN_REQUEST_MESSAGE_LENGTH: int = 10

    # Rate limiting (requests per client per minute, 0 disables)
    RATE_LIMIT_PER_MINUTE: int = 120
    REDIS_URL: str = "redis://localhost:6379/0"
    # only behind a proxy that overwrites X-Forwarded-For
    TRUST_FORWARDED_FOR: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    @model_validator(mode="after")
    def check_production_secret(self):
        if self.ENVIRONMENT == "production" and self.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("SECRET_KEY must be set in production")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
