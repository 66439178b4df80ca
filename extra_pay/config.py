"""Configuration management for the extra pay service."""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    log_level: str
    default_page_size: int
    max_page_size: int
    cors_origins: Tuple[str, ...]
    pool_size: int = 5
    max_overflow: int = 10

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables (and .env if present)."""
        load_dotenv()

        database_url = os.getenv("DATABASE_URL", "sqlite:///./extra_pay.db")
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        origins = os.getenv("CORS_ORIGINS", "*")

        return cls(
            database_url=database_url,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            default_page_size=int(os.getenv("DEFAULT_PAGE_SIZE", "50")),
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", "200")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
        )

    def page_size(self, requested=None) -> int:
        """Clamp a caller-supplied limit to the configured bounds."""
        if requested is None:
            return self.default_page_size
        return max(1, min(int(requested), self.max_page_size))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
