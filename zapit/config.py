from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DOTENV = Path(__file__).parent / ".env"


class Settings(BaseSettings):
    DB_URL: str = "sqlite:///./db.sqlite"
    DOMAIN: str = "http://localhost:3000"
    LISTEN_IFACE: str = "0.0.0.0"
    LISTEN_PORT: int = 3000
    FEED_TITLE: str = "ZapIt ⚡"
    FEED_DESCRIPTION: str = "Web link to an RSS feed."
    FEED_ITEMS: int = 50
    FEED_IMAGE_URL: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(DOTENV) if DOTENV.exists() else None,
        env_file_encoding="utf-8",
        frozen=True,
    )

    @field_validator("DOMAIN")
    @classmethod
    def domain_has_scheme(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("DOMAIN must include the scheme, e.g. https://example.com")
        return value.rstrip("/")

    @field_validator("FEED_ITEMS")
    @classmethod
    def feed_items_in_range(cls, value: int) -> int:
        if not 1 <= value <= 1000:
            raise ValueError("FEED_ITEMS must be between 1 and 1000")
        return value

    @property
    def listen_addr(self) -> str:
        return f"{self.LISTEN_IFACE}:{self.LISTEN_PORT}"

    @property
    def feed_url(self) -> str:
        return f"{self.DOMAIN}/feed.xml"
