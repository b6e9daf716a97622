"""In-memory single-page application used in place of a real browser."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import pytest

from spasnap.crawler.dom_extractor import (
    EXTRACT_ASSETS_SCRIPT,
    EXTRACT_MARKUP_SCRIPT,
    EXTRACT_STYLES_SCRIPT,
)
from spasnap.crawler.errors import NavigationError, NavigationTimeout
from spasnap.crawler.fingerprint import FINGERPRINT_SCRIPT
from spasnap.crawler.models import ROOT_KEY, CrawlConfig
from spasnap.crawler.navigation import COLLECT_CONTROLS_SCRIPT, COLLECT_REFERENCES_SCRIPT
from spasnap.crawler.routes import normalize

BASE_URL = "https://site.example/"


@dataclass
class FakeControl:
    label: str
    target: str
    address: str | None = None  # set when activation changes the address
    tag: str = "button"
    role: str | None = None
    in_chrome: bool = False
    card_like: bool = False
    heading: str | None = None


@dataclass
class FakeView:
    title: str
    headings: list[str]
    paragraphs: list[str] = field(default_factory=list)
    links: list[tuple[str, str]] = field(default_factory=list)  # (href, text)
    controls: list[FakeControl] = field(default_factory=list)
    styles: list[str] = field(default_factory=list)
    assets: list[str] = field(default_factory=list)

    @property
    def markup(self) -> str:
        parts = [f"<h1>{h}</h1>" for h in self.headings]
        parts += [f"<p>{p}</p>" for p in self.paragraphs]
        parts += [f'<a href="{href}">{text}</a>' for href, text in self.links]
        return "\n".join(parts)


@dataclass
class FakeSite:
    """Views by id, and which route key loads which view."""

    views: dict[str, FakeView]
    routes: dict[str, str]
    base_url: str = BASE_URL
    timeouts: set[str] = field(default_factory=set)
    broken: set[str] = field(default_factory=set)  # views whose extraction fails
    ignore_fragment_loads: bool = False  # fragment loads render the landing view


class FakeSurface:
    """BrowserSurface over a FakeSite. Records every load and activation."""

    def __init__(self, site: FakeSite) -> None:
        self.site = site
        self.address = "about:blank"
        self.view_id: str | None = None
        self.loads: list[str] = []
        self.activations: list[str] = []
        self.closed = False

    @property
    def view(self) -> FakeView:
        assert self.view_id is not None, "nothing loaded"
        return self.site.views[self.view_id]

    async def load_address(self, address: str) -> None:
        self.loads.append(address)
        key = normalize(address)
        if key in self.site.timeouts:
            raise NavigationTimeout(address, "timed out after 30000ms")
        view_id = self.site.routes.get(key)
        if view_id is None:
            raise NavigationError(address, "HTTP 404")
        if self.site.ignore_fragment_loads and key.startswith("#"):
            view_id = self.site.routes[ROOT_KEY]
        self.address = address
        self.view_id = view_id

    def current_address(self) -> str:
        return self.address

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        view = self.view
        if script == FINGERPRINT_SCRIPT:
            return {"headings": list(view.headings), "paragraphs": list(view.paragraphs)}
        if script == EXTRACT_MARKUP_SCRIPT:
            if self.view_id in self.site.broken:
                raise RuntimeError("Execution context was destroyed")
            return view.markup
        if script == EXTRACT_STYLES_SCRIPT:
            return list(view.styles)
        if script == EXTRACT_ASSETS_SCRIPT:
            return list(view.assets)
        if script == COLLECT_REFERENCES_SCRIPT:
            return [
                {"href": urljoin(self.address, href), "raw": href, "text": text}
                for href, text in view.links
            ]
        if script == COLLECT_CONTROLS_SCRIPT:
            return [
                {
                    "text": c.label,
                    "tag": c.tag,
                    "role": c.role,
                    "href": None,
                    "inChrome": c.in_chrome,
                    "cardLike": c.card_like,
                    "heading": c.heading,
                }
                for c in view.controls
            ]
        raise AssertionError(f"unexpected script: {script[:40]!r}")

    async def activate_control(self, label: str) -> bool:
        for control in self.view.controls:
            if control.label == label:
                self.activations.append(label)
                self.view_id = control.target
                if control.address:
                    self.address = urljoin(self.address, control.address)
                return True
        return False

    async def wait(self, milliseconds: int) -> None:
        return None

    async def title(self) -> str:
        return self.view.title

    async def close(self) -> None:
        self.closed = True


def make_config(**overrides: Any) -> CrawlConfig:
    """Crawl config with no render delays."""
    values: dict[str, Any] = {
        "base_url": BASE_URL,
        "render_delay_ms": 0,
        "settle_ms": 0,
    }
    values.update(overrides)
    return CrawlConfig(**values)


@pytest.fixture
def hash_site() -> FakeSite:
    """Landing view plus two fragment-routed views, all linked to each other."""
    nav = [("#/", "Home"), ("#/colors", "Colors"), ("#/about", "About")]
    return FakeSite(
        views={
            "home": FakeView("Home", ["Design System"], ["Welcome to the design system."], nav),
            "colors": FakeView("Colors", ["Colors"], ["Primary and secondary palettes."], nav),
            "about": FakeView("About", ["About"], ["Who maintains this system."], nav),
        },
        routes={"/": "home", "#/colors": "colors", "#/about": "about"},
    )
