from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# project root (where .env lives)
BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Ankisho Billing API"
    app_env: str = "dev"

    # security / JWT / DB
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    database_url: str = f"sqlite:///{BASE_DIR / 'billing.db'}"

    # first admin account, created at startup when both are set
    bootstrap_admin_email: str | None = None
    bootstrap_admin_password: str | None = None

    # marketplace sync
    marketplace_request_timeout: float = 30.0
    sync_default_days: int = 7

    log_level: str = "INFO"
    cors_allow_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
