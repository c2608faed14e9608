from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Storage
    database_url: str = "sqlite+aiosqlite:///./data/stockview.db"

    # Scraping
    scrape_mode: str = "mock"  # 'mock' or 'live'
    browser_ws_endpoint: str = ""  # remote CDP endpoint, empty launches a local Chromium
    browser_headless: bool = True
    browser_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    navigation_timeout_seconds: float = 20.0
    navigation_max_attempts: int = 3
    navigation_backoff_seconds: float = 1.0
    login_step_timeout_seconds: float = 10.0
    manual_login_timeout_seconds: float = 300.0
    extraction_timeout_seconds: float = 35.0
    network_capture_wait_seconds: float = 2.0
    max_scroll_passes: int = 20
    screenshot_dir: str = "screenshots"

    # OTP handoff
    otp_timeout_seconds: float = 60.0
    otp_retention_seconds: float = 600.0

    # Housekeeping
    session_retention_hours: int = 24 * 7
    housekeeping_interval_seconds: int = 300

    # Sector enrichment
    sector_map_path: Optional[str] = None

    # CLI
    api_base_url: str = "http://localhost:8000"

    # Logging
    log_level: str = "INFO"

    @property
    def is_live(self) -> bool:
        return self.scrape_mode.lower() == "live"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
