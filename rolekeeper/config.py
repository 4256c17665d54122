# config.py – Settings loaded through pydantic-settings (.env + environment)

import datetime as dt
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ── Tokens ──
    DISCORD_TOKEN: str

    # ── Database ──
    DB_URL: str = "sqlite:///data/rolekeeper.db"

    # ── Discord IDs ──
    HOME_GUILD_ID: Optional[int] = None   # guild whose badge roles are synced on a loop
    DEBUG_GUILD_ID: Optional[int] = None  # slash-commands synced instantly here in dev

    # ── Board caches ──
    CACHE_PERSIST_MINUTES: int = 15
    SRCOM_API_BASE: str = "https://www.speedrun.com/api/v1"
    SRCOM_RATE_LIMIT: int = 100   # requests …
    SRCOM_RATE_WINDOW: int = 60   # … per seconds
    CM_API_BASE: str = "https://board.portal2.sr"
    CM_RATE_LIMIT: int = 100
    CM_RATE_WINDOW: int = 60
    CM_REFRESH_MINUTES: int = 15  # background refresh of the CM aggregates

    # ── Role sync ──
    ROLE_SYNC_SECONDS: int = 60
    SERVER_CONFIG_DIR: str = "server_configs"
    SERVER_DEFINITION_DIR: str = "server_definitions"
    MAX_DEFINITION_BYTES: int = 1_000_000

    # ── Ops ──
    HEALTH_PORT: Optional[int] = None
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def cache_persist_time(self) -> dt.timedelta:
        return dt.timedelta(minutes=self.CACHE_PERSIST_MINUTES)

    @property
    def cm_refresh_interval(self) -> dt.timedelta:
        return dt.timedelta(minutes=self.CM_REFRESH_MINUTES)


settings = Settings()
