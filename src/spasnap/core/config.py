"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

import logfire
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spasnap.crawler.models import CrawlConfig, CrawlMode


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Target
    site_url: str = "https://example.com"
    output_dir: str = "./static-output"
    crawl_mode: CrawlMode = CrawlMode.INTERACTIVE

    # Budgets
    max_pages: int = Field(default=100, ge=1)
    max_depth: int = Field(default=4, ge=0)
    max_duration: float = Field(default=1800.0, gt=0, description="Wall-clock seconds")
    view_budget: float = Field(default=120.0, gt=0, description="Seconds per origin view")
    workers: int = Field(default=4, ge=1)

    # Browser
    wait_for_network: bool = False
    page_timeout: int = Field(default=30000, ge=1, description="Milliseconds")
    render_delay: int = Field(default=3000, ge=0, description="Milliseconds")
    settle_delay: int = Field(default=1500, ge=0, description="Milliseconds")
    headless: bool = True

    # Output
    download_assets: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.lower()
        if level not in ("trace", "debug", "info", "notice", "warn", "warning", "error", "fatal"):
            raise ValueError(f"Unknown log level: {value}")
        return "warn" if level == "warning" else level

    def to_crawl_config(self, base_url: str | None = None) -> CrawlConfig:
        """Build the crawler configuration from these settings."""
        return CrawlConfig(
            base_url=base_url or self.site_url,
            max_pages=self.max_pages,
            max_depth=self.max_depth,
            wait_until="networkidle" if self.wait_for_network else "domcontentloaded",
            page_timeout_ms=self.page_timeout,
            render_delay_ms=self.render_delay,
            settle_ms=self.settle_delay,
            view_budget_seconds=self.view_budget,
            max_duration_seconds=self.max_duration,
            workers=self.workers,
            headless=self.headless,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings, console_output: bool = True) -> None:
    """Configure Logfire for a CLI run.

    Spans and logs are only exported when a Logfire token is present; the
    console shows records at ``settings.log_level`` and above.
    """
    logfire.configure(
        service_name="spasnap",
        environment=settings.environment,
        send_to_logfire="if-token-present",
        console=(
            logfire.ConsoleOptions(min_log_level=settings.log_level) if console_output else False
        ),
    )
