"""
Booking Service: 設定

環境変数（と .env ファイル）から pydantic-settings で読み込む。
"""

from pathlib import Path
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    database_url: str = "sqlite+aiosqlite:///./afterschool.db"
    redis_url: str | None = None
    host: str = "0.0.0.0"
    port: int = 3001
    # カンマ区切り ("http://a, http://b")
    cors_origins: Annotated[list[str], NoDecode] = ["*"]
    images_dir: Path = Path("images")
    lock_timeout: float = 5.0
    seed_on_startup: bool = False
    log_level: str = "info"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v
