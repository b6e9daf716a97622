"""Crawler error taxonomy.

Only ``SeedLoadError`` ends a run. Everything else is recorded against the
view that produced it and exploration moves on to the next frontier entry.
"""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for crawler errors."""


class InvalidAddress(CrawlError, ValueError):
    """Raised when an address cannot be normalized into a route key."""

    def __init__(self, address: str, reason: str = "not a navigable address") -> None:
        super().__init__(f"Invalid address {address!r}: {reason}")
        self.address = address
        self.reason = reason


class NavigationError(CrawlError):
    """Raised when loading an address fails."""

    def __init__(self, address: str, message: str) -> None:
        super().__init__(f"Failed to load {address}: {message}")
        self.address = address


class NavigationTimeout(NavigationError):
    """Raised when loading an address exceeds the page timeout."""


class ActionNotFound(CrawlError):
    """Raised when a control label no longer resolves on the live DOM."""

    def __init__(self, label: str) -> None:
        super().__init__(f"No control labeled {label!r} on the current view")
        self.label = label


class CaptureExtractionError(CrawlError):
    """Raised when DOM, stylesheet or reference extraction fails for a view."""


class SeedLoadError(CrawlError):
    """Raised when the seed address cannot be loaded or captured."""
