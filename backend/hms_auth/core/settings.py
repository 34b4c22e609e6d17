from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# HS256 keys must be at least as long as the SHA-256 digest
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    PROJECT_NAME: str = "HMS Auth"
    ENVIRONMENT: Literal["development", "production"] = "development"
    DATABASE_URL: str = "sqlite:///./data/hms_auth.db"

    # Auth Config
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_SECRET: str = Field(min_length=MIN_SECRET_LENGTH)
    REFRESH_TOKEN_SECRET: str = Field(min_length=MIN_SECRET_LENGTH)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    PASSWORD_RESET_EXPIRE_MINUTES: int = 30

    # Security
    PASSWORD_PEPPER: str = ""

    # Refresh cookie
    REFRESH_COOKIE_NAME: str = "refreshToken"
    COOKIE_SECURE: bool | None = None
    COOKIE_SAMESITE: Literal["lax", "strict", "none"] | None = None
    COOKIE_PATH: str = "/"

    # Seeded administrator (skipped when either is empty)
    ADMIN_EMAIL: str = ""
    ADMIN_PASSWORD: str = ""
    ADMIN_NAME: str = "Administrator"

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def check_distinct_secrets(self) -> "Settings":
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def cookie_secure(self) -> bool:
        if self.COOKIE_SECURE is None:
            return self.is_production
        return self.COOKIE_SECURE

    @property
    def cookie_samesite(self) -> str:
        if self.COOKIE_SAMESITE is None:
            return "strict" if self.is_production else "lax"
        return self.COOKIE_SAMESITE


@lru_cache()
def get_settings() -> Settings:
    """
    Settings for the process entrypoint. Everything below the app factory
    receives the instance explicitly.
    """
    return Settings()
