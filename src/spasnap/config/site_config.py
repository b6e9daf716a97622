"""Site configuration parsing for .spasnap.yml files."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from spasnap.crawler.models import CrawlConfig

# Default config file names to look for
CONFIG_FILE_NAMES = [".spasnap.yml", ".spasnap.yaml", "spasnap.yml", "spasnap.yaml"]


class ScopeConfig(BaseModel):
    """Which routes of the site to explore."""

    include: list[str] = Field(
        default_factory=list,
        description="Glob patterns of route paths to capture, e.g. '/docs/*'",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns of route paths never to capture",
    )


class NavigationConfig(BaseModel):
    """Tuning for navigation-control inference."""

    denied_labels: list[str] = Field(
        default_factory=list,
        description="Extra labels of controls that are never activated",
    )
    keywords: list[str] = Field(
        default_factory=list,
        description="Extra words that mark a control as navigation",
    )


class SiteConfig(BaseModel):
    """Per-site crawl configuration.

    Parsed from a .spasnap.yml file in the working directory. Values here
    extend the built-in defaults and are overridden by command-line flags.
    """

    url: str | None = Field(default=None, description="Site to crawl")
    output_dir: str | None = Field(default=None, description="Output directory")
    max_pages: int | None = Field(default=None, ge=1)
    max_depth: int | None = Field(default=None, ge=0)
    scope: ScopeConfig = Field(default_factory=ScopeConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)

    def apply(self, config: CrawlConfig) -> CrawlConfig:
        """Merge this file's settings into a crawl config, in place."""
        if self.max_pages is not None:
            config.max_pages = self.max_pages
        if self.max_depth is not None:
            config.max_depth = self.max_depth
        config.include_patterns = [*config.include_patterns, *self.scope.include]
        config.exclude_patterns = [*config.exclude_patterns, *self.scope.exclude]
        config.denied_labels = [*config.denied_labels, *self.navigation.denied_labels]
        config.nav_keywords = [*config.nav_keywords, *self.navigation.keywords]
        return config


def parse_site_config(yaml_content: str) -> SiteConfig:
    """Parse site configuration from YAML content.

    Args:
        yaml_content: Raw YAML string from a .spasnap.yml file.

    Returns:
        Parsed SiteConfig object with defaults for missing fields.

    Raises:
        ValueError: If YAML is invalid.
    """
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML: {e}") from e

    if data is None:
        return SiteConfig()

    if not isinstance(data, dict):
        raise ValueError("Config must be a YAML mapping")

    return SiteConfig.model_validate(data)


def load_site_config(directory: Path | None = None) -> SiteConfig:
    """Load the first site config file found in ``directory`` (default: cwd).

    Returns:
        Parsed SiteConfig, or default config if no file found.
    """
    base = directory or Path.cwd()
    for filename in CONFIG_FILE_NAMES:
        path = base / filename
        if path.is_file():
            return parse_site_config(path.read_text(encoding="utf-8"))
    return SiteConfig()
