from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings, read from LINGO_* environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LINGO_",
        env_file=".env",
        extra="ignore",
    )

    # Storage
    data_dir: Path = Path("data")
    cards_file: str = "flashcards.csv"
    activity_file: str = "activity.csv"
    review_log_file: str = "review_log.csv"

    # Scheduling / dashboard
    cache_ttl_seconds: int = Field(default=300, ge=0)
    retention_window: int = Field(default=20, ge=1)
    forecast_days: int = Field(default=7, ge=0)

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    @property
    def cards_path(self) -> Path:
        return self.data_dir / self.cards_file

    @property
    def activity_path(self) -> Path:
        return self.data_dir / self.activity_file

    @property
    def review_log_path(self) -> Path:
        return self.data_dir / self.review_log_file


@lru_cache
def get_settings() -> Settings:
    return Settings()
