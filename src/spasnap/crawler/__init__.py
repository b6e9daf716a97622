"""SPA crawler — route discovery and view capture over a Playwright browser."""

from spasnap.crawler.errors import (
    ActionNotFound,
    CaptureExtractionError,
    CrawlError,
    InvalidAddress,
    NavigationError,
    NavigationTimeout,
    SeedLoadError,
)
from spasnap.crawler.models import (
    ActionKind,
    CaptureError,
    CrawlConfig,
    CrawlMode,
    CrawlResult,
    Fingerprint,
    InsertOutcome,
    NavigationAction,
    RouteKey,
    TransitionKind,
    ViewRecord,
)
from spasnap.crawler.parallel import ParallelDiscovery
from spasnap.crawler.scheduler import ExplorationScheduler, ExplorationState
from spasnap.crawler.store import CaptureStore

__all__ = [
    "ActionKind",
    "ActionNotFound",
    "CaptureError",
    "CaptureExtractionError",
    "CaptureStore",
    "CrawlConfig",
    "CrawlError",
    "CrawlMode",
    "CrawlResult",
    "ExplorationScheduler",
    "ExplorationState",
    "Fingerprint",
    "InsertOutcome",
    "InvalidAddress",
    "NavigationAction",
    "NavigationError",
    "NavigationTimeout",
    "ParallelDiscovery",
    "RouteKey",
    "SeedLoadError",
    "TransitionKind",
    "ViewRecord",
]
