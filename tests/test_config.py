"""Unit tests for configuration."""

import os
from pathlib import Path
from unittest.mock import patch

from dagens_pipeline.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        s = Settings()
        assert s.project_root == Path(".")
        assert s.restaurants_dir == Path("restaurants")
        assert s.raw_html_dir == Path("raw_html")
        assert s.timeout_seconds == 15.0
        assert s.crawl_delay_seconds == 2.0
        assert s.max_retries == 2
        assert s.backoff_unit_seconds == 5.0
        assert s.max_redirects == 10
        assert s.scraper_service_url == "http://localhost:4001"

    def test_env_prefix(self) -> None:
        with patch.dict(os.environ, {"DAGENS_MAX_RETRIES": "4", "DAGENS_CRON_SECRET": "s"}):
            s = Settings()
            assert s.max_retries == 4
            assert s.cron_secret == "s"

    def test_presets_present(self) -> None:
        s = Settings()
        assert set(s.presets) == {"angelholm", "vala", "bastad"}
        assert all("torstens.se" in url for url in s.presets["vala"])

    def test_paths(self, tmp_path: Path) -> None:
        s = Settings(project_root=tmp_path, customers_file=Path("data/customers.json"))
        assert s.restaurants_path == tmp_path / "restaurants"
        assert s.customers_path == tmp_path / "data" / "customers.json"

    def test_ensure_dirs(self, tmp_path: Path) -> None:
        s = Settings(
            project_root=tmp_path,
            restaurants_dir=Path("test_restaurants"),
            raw_html_dir=Path("test_raw"),
        )
        s.ensure_dirs()
        assert (tmp_path / "test_restaurants").is_dir()
        assert (tmp_path / "test_raw").is_dir()

    def test_user_agent_default(self) -> None:
        s = Settings()
        assert "dagens-pipeline" in s.user_agent
