from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_ENV: str = "local"
    APP_NAME: str = "service-log-portal"
    LOG_LEVEL: str = "INFO"

    JWT_SECRET: str = "change_me_portal"

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    DATABASE_URL: str
    REDIS_URL: str

    # Drafts of the service-log form (recoverable store)
    DRAFT_KEY_PREFIX: str = "draft:service-log"
    DRAFT_TTL_SECONDS: int = 7 * 24 * 3600
    DRAFT_AUTOSAVE_INTERVAL_SECONDS: float = 30.0

    MAX_PATIENT_COUNT: int = 100
    TEXT_VALUE_MAX_LENGTH: int = 1000

    # Compose/infra vars that may exist in shared .env
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "servicelog"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

settings = Settings()
