"""Unit tests for settings and site configuration parsing."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from spasnap.cli.commands.crawl import build_crawl_config
from spasnap.config import SiteConfig, load_site_config, parse_site_config
from spasnap.config.site_config import NavigationConfig, ScopeConfig
from spasnap.core.config import Settings
from spasnap.crawler.models import DEFAULT_DENIED_LABELS, CrawlConfig, CrawlMode


def settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSiteConfig:
    """Tests for SiteConfig model."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        config = SiteConfig()

        assert config.url is None
        assert config.max_pages is None
        assert isinstance(config.scope, ScopeConfig)
        assert isinstance(config.navigation, NavigationConfig)

    def test_apply_extends_defaults(self) -> None:
        """File settings add to the built-in lists rather than replacing them."""
        site = SiteConfig(
            max_pages=20,
            scope=ScopeConfig(exclude=["/admin/*"]),
            navigation=NavigationConfig(denied_labels=["logout"], keywords=["tokens"]),
        )
        config = site.apply(CrawlConfig(base_url="https://site.example/"))

        assert config.max_pages == 20
        assert config.max_depth == 4
        assert config.exclude_patterns == ["/admin/*"]
        assert config.denied_labels == [*DEFAULT_DENIED_LABELS, "logout"]
        assert config.nav_keywords[-1] == "tokens"

    def test_rejects_invalid_budget(self) -> None:
        """Test validation of page budget."""
        with pytest.raises(ValidationError):
            SiteConfig(max_pages=0)


class TestParseSiteConfig:
    """Tests for parse_site_config function."""

    def test_parse_empty(self) -> None:
        """Test parsing empty YAML."""
        assert parse_site_config("") == SiteConfig()

    def test_parse_full(self) -> None:
        """Test parsing every section."""
        yaml_content = """
url: https://app.example.com
output_dir: site
max_pages: 50
max_depth: 2
scope:
  include:
    - /docs/*
  exclude:
    - /docs/internal/*
navigation:
  denied_labels:
    - sign out
  keywords:
    - tokens
"""
        config = parse_site_config(yaml_content)

        assert config.url == "https://app.example.com"
        assert config.output_dir == "site"
        assert config.max_pages == 50
        assert config.max_depth == 2
        assert config.scope.include == ["/docs/*"]
        assert config.scope.exclude == ["/docs/internal/*"]
        assert config.navigation.denied_labels == ["sign out"]
        assert config.navigation.keywords == ["tokens"]

    def test_parse_invalid_yaml(self) -> None:
        """Test parsing invalid YAML raises error."""
        with pytest.raises(ValueError, match="Invalid YAML"):
            parse_site_config("scope: [unclosed")

    def test_parse_non_mapping(self) -> None:
        """Test that a top-level list is rejected."""
        with pytest.raises(ValueError, match="YAML mapping"):
            parse_site_config("- a\n- b\n")


class TestLoadSiteConfig:
    """Tests for load_site_config function."""

    def test_load_found(self, tmp_path: Path) -> None:
        """Test loading config from the first matching file."""
        (tmp_path / ".spasnap.yml").write_text("max_pages: 7\n")

        assert load_site_config(tmp_path).max_pages == 7

    def test_load_alternate_name(self, tmp_path: Path) -> None:
        """Test loading from spasnap.yaml."""
        (tmp_path / "spasnap.yaml").write_text("max_depth: 1\n")

        assert load_site_config(tmp_path).max_depth == 1

    def test_load_not_found(self, tmp_path: Path) -> None:
        """Test defaults when no file exists."""
        assert load_site_config(tmp_path) == SiteConfig()


class TestSettings:
    """Tests for environment settings."""

    def test_defaults(self) -> None:
        """Test default settings values."""
        s = settings()

        assert s.site_url == "https://example.com"
        assert s.output_dir == "./static-output"
        assert s.crawl_mode == CrawlMode.INTERACTIVE
        assert s.download_assets is True

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test settings read from environment variables."""
        monkeypatch.setenv("SITE_URL", "https://app.example.com")
        monkeypatch.setenv("OUTPUT_DIR", "/tmp/out")
        monkeypatch.setenv("CRAWL_MODE", "links")
        monkeypatch.setenv("MAX_PAGES", "12")

        s = settings()

        assert s.site_url == "https://app.example.com"
        assert s.output_dir == "/tmp/out"
        assert s.crawl_mode == CrawlMode.LINKS
        assert s.max_pages == 12

    def test_log_level_normalized(self) -> None:
        """Test log level is lowercased and aliased."""
        assert settings(log_level="WARNING").log_level == "warn"
        assert settings(log_level="Debug").log_level == "debug"
        with pytest.raises(ValidationError):
            settings(log_level="loud")

    def test_to_crawl_config(self) -> None:
        """Test conversion to a crawl config."""
        config = settings(
            max_pages=10, wait_for_network=True, render_delay=500, workers=2
        ).to_crawl_config()

        assert config.base_url == "https://example.com"
        assert config.max_pages == 10
        assert config.wait_until == "networkidle"
        assert config.render_delay_ms == 500
        assert config.workers == 2


class TestBuildCrawlConfig:
    """Tests for layering settings, site config and flags."""

    def test_file_overrides_environment(self) -> None:
        """Test the site config file wins over environment settings."""
        site = SiteConfig(url="https://file.example/", max_pages=20)

        config = build_crawl_config(settings(max_pages=50), site)

        assert config.base_url == "https://file.example/"
        assert config.max_pages == 20

    def test_flags_override_file(self) -> None:
        """Test command-line flags win over everything."""
        site = SiteConfig(url="https://file.example/", max_pages=20, max_depth=3)

        config = build_crawl_config(
            settings(),
            site,
            url="https://flag.example/",
            max_pages=5,
            max_depth=1,
            wait_for_network=False,
            headed=True,
        )

        assert config.base_url == "https://flag.example/"
        assert config.max_pages == 5
        assert config.max_depth == 1
        assert config.wait_until == "domcontentloaded"
        assert config.headless is False

    def test_patterns_accumulate(self) -> None:
        """Test include and exclude patterns from all layers are combined."""
        site = SiteConfig(scope=ScopeConfig(exclude=["/admin/*"]))

        config = build_crawl_config(settings(), site, include=["/docs/*"], exclude=["/blog/*"])

        assert config.include_patterns == ["/docs/*"]
        assert config.exclude_patterns == ["/admin/*", "/blog/*"]
