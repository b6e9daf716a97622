"""Configuration module for spasnap."""

from spasnap.config.site_config import (
    SiteConfig,
    load_site_config,
    parse_site_config,
)

__all__ = [
    "SiteConfig",
    "load_site_config",
    "parse_site_config",
]
