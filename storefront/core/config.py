from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SF_", extra="ignore")

    app_name: str = "Marketplace Storefront"
    env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./storefront.db"
    # Seconds before a store call gives up instead of hanging.
    database_timeout_seconds: int = Field(default=10, ge=1)

    orders_page_size: int = Field(default=8, ge=1)
    currency: str = "FCFA"
    notification_title: str = "📦 Mise à jour commande"

    bootstrap_demo_on_startup: bool = False

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return
        if self.database_url.startswith("sqlite"):
            raise ValueError("sqlite database_url is only allowed in dev mode; set SF_DATABASE_URL")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
