from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "KinderReport Sync API"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Remote store database
    DATABASE_URL: str = "sqlite+aiosqlite:///./kinderreport.db"
    DATABASE_ECHO: bool = False

    # Local (offline) store
    LOCAL_STORE_DIR: str = "./.kinderreport"
    LOCAL_STORE_MAX_BYTES: int = 5 * 1024 * 1024
    LOCAL_KEY_PREFIX: str = "kinderReport"
    GUEST_IDENTITY_ID: str = "guest-user"

    # Sync policy
    SYNC_DEBOUNCE_SECONDS: float = 1.5

    # HTTP remote store client
    REMOTE_API_URL: str = "http://localhost:8000"
    REMOTE_TIMEOUT_SECONDS: float = 10.0

    # Remark generation
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        return v

    @field_validator("SYNC_DEBOUNCE_SECONDS")
    @classmethod
    def validate_debounce(cls, v):
        if v <= 0:
            raise ValueError("SYNC_DEBOUNCE_SECONDS must be positive")
        return v


settings = Settings()
