import os
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CARDAPI_DB_USER: str       = os.getenv("CARDAPI_DB_USER", "")
    CARDAPI_DB_PASSWORD: str   = os.getenv("CARDAPI_DB_PASSWORD", "")
    CARDAPI_DB_NAME: str       = os.getenv("CARDAPI_DB_NAME", "")
    CARDAPI_DB_HOST: str       = os.getenv("CARDAPI_DB_HOST", "")
    CARDAPI_DB_PORT: int       = int(os.getenv("CARDAPI_DB_PORT", "5432"))

    # full URL wins over the individual parts, e.g. sqlite+aiosqlite:///./cardapi.db
    CARDAPI_DATABASE_URL: str  = os.getenv("CARDAPI_DATABASE_URL", "")
    DB_ECHO: bool              = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

    CACHE_MAX_AGE: int         = int(os.getenv("CACHE_MAX_AGE", "0"))

    RELEASE: str               = os.getenv("RELEASE", "dev")
    BRANCH: str                = os.getenv("BRANCH", "")
    COMMIT: str                = os.getenv("COMMIT", "")

    @property
    def database_url(self) -> str:
        if self.CARDAPI_DATABASE_URL:
            return self.CARDAPI_DATABASE_URL
        return (
            f"postgresql+asyncpg://"
            f"{self.CARDAPI_DB_USER}:"
            f"{self.CARDAPI_DB_PASSWORD}"
            f"@{self.CARDAPI_DB_HOST}:"
            f"{self.CARDAPI_DB_PORT}/"
            f"{self.CARDAPI_DB_NAME}"
        )

settings = Settings()
