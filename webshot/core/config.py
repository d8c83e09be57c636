"""Application configuration using pydantic-settings."""
from pathlib import Path
from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


# Get the package directory path
PACKAGE_DIR = Path(__file__).parent.parent
ENV_FILE = PACKAGE_DIR / ".env"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "info"
    cors_origins: List[str] = []

    # Browser
    browser_engine: Literal["playwright", "selenium"] = "playwright"
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    launch_args: List[str] = []
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1920
    viewport_height: int = 1080

    # Navigation
    navigation_timeout: int = 30000  # milliseconds
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"
    wait_for_network_idle: bool = False
    fail_on_error_status: bool = True

    # Resource blocking (only applied when optimize_load is on)
    optimize_load: bool = False
    block_images: bool = True
    block_css: bool = False
    block_fonts: bool = False

    # Screenshot
    screenshot_full_page: bool = False
    screenshot_type: Literal["png", "jpeg"] = "png"
    screenshot_quality: Optional[int] = None

    # Session lifecycle
    session_policy: Literal["per_request", "pool"] = "per_request"
    pool_size: int = 2

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


# Global settings instance
settings = Settings()
