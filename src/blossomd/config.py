"""Configuration settings for blossomd.

Values come from the environment first, then a ``.env`` file, then the
defaults below.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .db import sqlite_url

MAX_UPLOAD_SIZE = 600 * 1024 * 1024  # 600 MiB
DEFAULT_ACCEPT_URL = "https://relay.zapstore.dev/api/v1/accept"


class AuthMode(str, Enum):
    ALLOWLIST = "allowlist"
    REMOTE = "remote"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    working_dir: str = "./data"
    host: str = "0.0.0.0"
    port: int = 3334
    # Public base URL used in blob descriptors; defaults to http://localhost:<port>
    server_url: Optional[str] = None
    max_upload_size: int = Field(MAX_UPLOAD_SIZE, gt=0)

    auth_mode: AuthMode = AuthMode.REMOTE
    accept_url: str = DEFAULT_ACCEPT_URL
    # Comma separated hex or npub keys added to the allow-list at startup
    allowed_pubkeys: str = ""

    database_url: Optional[str] = None
    database_echo: bool = False
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        return (self.server_url or f"http://localhost:{self.port}").rstrip("/")

    @property
    def blobs_dir(self) -> Path:
        return Path(self.working_dir) / "blobs"

    @property
    def resolved_database_url(self) -> str:
        return self.database_url or sqlite_url(self.working_dir)

    @property
    def allowed_pubkey_list(self) -> List[str]:
        return [entry.strip() for entry in self.allowed_pubkeys.split(",") if entry.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
