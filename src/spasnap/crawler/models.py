"""Data models for route discovery and capture."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

# Canonical identity of one rendered view, e.g. "/", "/about", "#/colors"
RouteKey = str

ROOT_KEY: RouteKey = "/"

DEFAULT_DENIED_LABELS = (
    "search",
    "collapse",
    "expand",
    "close",
    "toggle",
    "menu",
    "hamburger",
    "settings",
    "copy",
)

DEFAULT_NAV_KEYWORDS = (
    "overview",
    "colors",
    "typography",
    "spacing",
    "components",
    "iconography",
    "navigation",
    "home",
    "about",
    "docs",
    "guide",
    "api",
)


class ActionKind(StrEnum):
    """How a navigation action is executed."""

    ADDRESS = "address"  # load a known address
    CONTROL = "control"  # activate a control by its visible label


class TransitionKind(StrEnum):
    """Classification of what a navigation attempt did to the view."""

    SEED = "seed"
    ADDRESS_CHANGED = "address_changed"
    CONTENT_CHANGED = "content_changed"
    NO_OP = "no_op"


class InsertOutcome(StrEnum):
    """Result of offering a view record to the capture store."""

    INSERTED = "inserted"
    DUPLICATE_KEY = "duplicate_key"
    DUPLICATE_FINGERPRINT = "duplicate_fingerprint"


class ErrorKind(StrEnum):
    """Per-view failure categories recorded on a crawl result."""

    NAVIGATION_ERROR = "navigation_error"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    CAPTURE_EXTRACTION = "capture_extraction"


class CrawlMode(StrEnum):
    """Which exploration branch drives the crawl."""

    INTERACTIVE = "interactive"  # click-driven, single shared surface
    LINKS = "links"  # href-only, parallel independent surfaces


@dataclass
class CrawlConfig:
    """Configuration for one exploration run."""

    base_url: str
    max_pages: int = 100
    max_depth: int = 4
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = "Mozilla/5.0 (compatible; StaticSiteCrawler/1.0)"
    wait_until: Literal["domcontentloaded", "load", "networkidle"] = "domcontentloaded"
    page_timeout_ms: int = 30000
    render_delay_ms: int = 3000  # after every address load
    settle_ms: int = 1500  # after every control activation
    action_timeout_ms: int = 10000
    view_budget_seconds: float = 120.0
    max_duration_seconds: float = 1800.0
    workers: int = 4
    headless: bool = True
    denied_labels: list[str] = field(default_factory=lambda: list(DEFAULT_DENIED_LABELS))
    nav_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_NAV_KEYWORDS))
    include_patterns: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Fingerprint:
    """Content signature of the primary region of a rendered view.

    Built from heading text (primary signal) and leading descriptive text
    (secondary signal) outside navigation chrome. Equal fingerprints mean
    duplicate content.
    """

    headings: tuple[str, ...] = ()
    lead_text: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.headings and not self.lead_text

    @property
    def digest(self) -> str:
        """Short stable hash, for logs and manifests."""
        raw = "|".join(self.headings) + "|||" + "|".join(self.lead_text)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True)
class NavigationAction:
    """A candidate exploration step.

    Control actions hold identity data only (label and origin); the element is
    re-resolved against the live DOM when the action executes.
    """

    kind: ActionKind
    label: str
    address: str | None = None
    origin_key: RouteKey | None = None
    key_hint: RouteKey | None = None  # predicted, the observed outcome wins
    short_label: str | None = None  # heading text of card-like controls
    in_chrome: bool = False

    @property
    def key_label(self) -> str:
        """Label used for synthetic key derivation and breadcrumbs."""
        return self.short_label or self.label


@dataclass(frozen=True)
class ViewRecord:
    """One captured view. Immutable once inserted into the capture store."""

    key: RouteKey
    source_address: str
    title: str
    body_markup: str
    fingerprint: Fingerprint
    breadcrumb_label: str
    style_rules: tuple[str, ...] = ()
    outbound_references: tuple[str, ...] = ()
    asset_references: tuple[str, ...] = ()
    transition: TransitionKind = TransitionKind.ADDRESS_CHANGED
    origin_key: RouteKey | None = None
    replay_labels: tuple[str, ...] = ()  # controls to activate after loading source_address
    depth: int = 0


@dataclass
class CaptureError:
    """A per-view failure recorded during exploration."""

    key: RouteKey | None
    address: str | None
    kind: ErrorKind
    message: str


@dataclass
class Rejection:
    """A view that was reached but not stored."""

    key: RouteKey
    outcome: InsertOutcome
    source: str  # address or control label that produced it


@dataclass
class CrawlResult:
    """Outcome of an exploration run. Always returned, even on fatal errors."""

    base_url: str
    records: list[ViewRecord] = field(default_factory=list)
    errors: list[CaptureError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)
    fatal_error: str | None = None
    duration_seconds: float = 0.0

    @property
    def view_count(self) -> int:
        return len(self.records)

    @property
    def duplicate_count(self) -> int:
        return len(self.rejections)

    @property
    def ok(self) -> bool:
        return self.fatal_error is None
