"""Configuration for the dagens pipeline using pydantic-settings.

All settings are driven by environment variables with the DAGENS_ prefix.
See .env.example for the full list of configurable options.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _default_presets() -> Dict[str, List[str]]:
    return {
        "angelholm": [
            "https://torstens.se/angelholm/",
            "https://torstens.se/angelholm/boka-bord/",
        ],
        "vala": [
            "https://torstens.se/vala/",
            "https://torstens.se/vala/boka-bord/",
        ],
        "bastad": [
            "https://torstens.se/bastad/",
            "https://torstens.se/bastad/boka-bord/",
        ],
    }


class Settings(BaseSettings):
    """Pipeline configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DAGENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_root: Path = Path(".")
    restaurants_dir: Path = Path("restaurants")
    raw_html_dir: Path = Path("raw_html")
    customers_file: Path = Path("customers.json")

    user_agent: str = "dagens-pipeline/0.1 (contact: your-email@example.com)"
    accept_language: str = "sv-SE,sv;q=0.9,en;q=0.8"

    timeout_seconds: float = 15.0
    crawl_delay_seconds: float = 2.0

    max_retries: int = 2
    backoff_unit_seconds: float = 5.0
    max_redirects: int = 10

    scraper_service_url: str = "http://localhost:4001"
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_api_key: Optional[str] = None
    cron_secret: Optional[str] = None

    presets: Dict[str, List[str]] = Field(default_factory=_default_presets)

    @property
    def restaurants_path(self) -> Path:
        return self.project_root / self.restaurants_dir

    @property
    def raw_html_path(self) -> Path:
        return self.project_root / self.raw_html_dir

    @property
    def customers_path(self) -> Path:
        return self.project_root / self.customers_file

    def ensure_dirs(self) -> None:
        """Create output directories if they don't exist."""
        for path in (self.restaurants_path, self.raw_html_path):
            path.mkdir(parents=True, exist_ok=True)
            logger.debug("Ensured directory: %s", path)


def get_settings() -> Settings:
    """Load settings from environment and ensure output directories exist."""
    s = Settings()
    s.ensure_dirs()
    return s
