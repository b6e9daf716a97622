"""Navigation action enumeration — hyperlinks and inferred navigation controls.

Enumeration runs fresh on every view. Actions carry labels and addresses,
never element handles, so they survive re-renders.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urljoin

from spasnap.crawler.browser import CLICKABLE_QUERY, BrowserSurface
from spasnap.crawler.errors import InvalidAddress
from spasnap.crawler.fingerprint import CHROME_SELECTOR
from spasnap.crawler.models import ActionKind, CrawlConfig, NavigationAction, RouteKey
from spasnap.crawler.routes import (
    clean_label,
    derive_child_key,
    is_allowed,
    is_same_origin,
    normalize,
)

MAX_LABEL_LENGTH = 200
NON_NAVIGABLE_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "blob:")

COLLECT_REFERENCES_SCRIPT = """
() => Array.from(document.querySelectorAll("a[href]")).map((a) => ({
    href: a.href,
    raw: a.getAttribute("href"),
    text: (a.textContent || "").trim().replace(/\\s+/g, " "),
}))
"""

# Clickable elements plus card-like blocks (a div holding exactly one h3 that
# looks clickable). Structural hints are reported, classification is done in
# Python.
COLLECT_CONTROLS_SCRIPT = """
({ clickableQuery, chromeSelector }) => {
    const results = [];
    const seen = new Set();
    const textOf = (el) => (el.textContent || "").trim().replace(/\\s+/g, " ");
    document.querySelectorAll(clickableQuery).forEach((el) => {
        const text = textOf(el);
        if (!text || text.length > 200 || seen.has(text)) return;
        seen.add(text);
        const heading = el.querySelector("h1, h2, h3, h4");
        results.push({
            text,
            tag: el.tagName.toLowerCase(),
            role: el.getAttribute("role"),
            href: el.getAttribute("href"),
            inChrome: el.closest(chromeSelector) !== null,
            cardLike: false,
            heading: heading ? textOf(heading) : null,
        });
    });
    document.querySelectorAll("div").forEach((el) => {
        const h3s = el.querySelectorAll("h3");
        if (h3s.length !== 1) return;
        const text = textOf(el);
        if (!text || text.length > 200 || seen.has(text)) return;
        const style = window.getComputedStyle(el);
        const hasBorder = style.borderWidth !== "0px" && style.borderStyle !== "none";
        const hasRounded = style.borderRadius !== "0px";
        const hasArrow = el.querySelector("svg, [class*='arrow'], [class*='chevron']") !== null;
        const hasCursor = style.cursor === "pointer";
        if (!hasBorder && !hasRounded && !hasArrow && !hasCursor) return;
        seen.add(text);
        results.push({
            text,
            tag: "div",
            role: el.getAttribute("role"),
            href: null,
            inChrome: el.closest(chromeSelector) !== null,
            cardLike: true,
            heading: textOf(h3s[0]) || null,
        });
    });
    return results;
}
"""


@dataclass
class ReferenceCandidate:
    """A hyperlink found on the page."""

    href: str
    raw: str | None = None
    text: str = ""


@dataclass
class ControlCandidate:
    """An interactive element that might trigger navigation."""

    text: str
    tag: str = "button"
    role: str | None = None
    href: str | None = None
    in_chrome: bool = False
    card_like: bool = False
    heading: str | None = None


@dataclass
class PageInventory:
    """Raw navigation candidates read from one rendered view."""

    references: list[ReferenceCandidate] = field(default_factory=list)
    controls: list[ControlCandidate] = field(default_factory=list)


class NavigationClassifier(Protocol):
    """Decides whether an interactive element is plausibly navigation."""

    def is_likely_navigation_control(self, candidate: ControlCandidate) -> bool: ...


class DefaultNavigationClassifier:
    """Accepts native controls, chrome landmarks, card-like blocks and known labels."""

    NATIVE_TAGS = frozenset({"a", "button"})
    NATIVE_ROLES = frozenset({"button", "tab", "link", "menuitem"})

    def __init__(self, nav_keywords: Iterable[str] = ()) -> None:
        self._keywords = tuple(k.lower() for k in nav_keywords)

    def is_likely_navigation_control(self, candidate: ControlCandidate) -> bool:
        if candidate.tag in self.NATIVE_TAGS or candidate.role in self.NATIVE_ROLES:
            return True
        if candidate.in_chrome or candidate.card_like:
            return True
        label = clean_label(candidate.heading or candidate.text).lower()
        return any(keyword in label for keyword in self._keywords)


class ActionEnumerator:
    """Lists the navigation actions available on the current view."""

    def __init__(
        self, config: CrawlConfig, classifier: NavigationClassifier | None = None
    ) -> None:
        self._config = config
        self._classifier = classifier or DefaultNavigationClassifier(config.nav_keywords)
        self._denied = (
            re.compile(
                r"\b(?:" + "|".join(re.escape(d) for d in config.denied_labels) + r")\b",
                re.IGNORECASE,
            )
            if config.denied_labels
            else None
        )

    async def inventory(self, surface: BrowserSurface) -> PageInventory:
        """Read raw hyperlink and control candidates from the live DOM."""
        raw_refs: list[dict[str, Any]] = await surface.evaluate(COLLECT_REFERENCES_SCRIPT) or []
        raw_controls: list[dict[str, Any]] = (
            await surface.evaluate(
                COLLECT_CONTROLS_SCRIPT,
                {"clickableQuery": CLICKABLE_QUERY, "chromeSelector": CHROME_SELECTOR},
            )
            or []
        )
        return PageInventory(
            references=[
                ReferenceCandidate(
                    href=r.get("href") or "", raw=r.get("raw"), text=r.get("text") or ""
                )
                for r in raw_refs
            ],
            controls=[
                ControlCandidate(
                    text=c.get("text") or "",
                    tag=(c.get("tag") or "").lower(),
                    role=c.get("role"),
                    href=c.get("href"),
                    in_chrome=bool(c.get("inChrome")),
                    card_like=bool(c.get("cardLike")),
                    heading=c.get("heading"),
                )
                for c in raw_controls
            ],
        )

    def enumerate(
        self,
        inventory: PageInventory,
        current_address: str,
        origin_key: RouteKey | None,
        exclude_labels: Iterable[str] = (),
        include_controls: bool = True,
    ) -> list[NavigationAction]:
        """All actions for a view: address actions first, then controls."""
        actions = self.reference_actions(inventory.references, current_address, origin_key)
        if include_controls:
            actions += self.control_actions(inventory.controls, origin_key, exclude_labels)
        return actions

    def resolve_reference(self, raw: str, current_address: str) -> tuple[str, RouteKey] | None:
        """Resolve a reference to (absolute address, key) if it is a same-site route."""
        raw = raw.strip()
        if not raw or raw.lower().startswith(NON_NAVIGABLE_PREFIXES):
            return None
        target = urljoin(current_address, raw)
        if not is_same_origin(target, self._config.base_url):
            return None
        try:
            key = normalize(target)
        except InvalidAddress:
            return None
        if not is_allowed(key, self._config.include_patterns, self._config.exclude_patterns):
            return None
        return target, key

    def reference_actions(
        self,
        references: list[ReferenceCandidate],
        current_address: str,
        origin_key: RouteKey | None,
    ) -> list[NavigationAction]:
        """Direct-address actions from hyperlinks, one per distinct key."""
        actions: list[NavigationAction] = []
        seen: set[RouteKey] = set()
        for ref in references:
            resolved = self.resolve_reference(ref.raw or ref.href, current_address)
            if resolved is None:
                continue
            target, key = resolved
            if key in seen:
                continue
            seen.add(key)
            actions.append(
                NavigationAction(
                    kind=ActionKind.ADDRESS,
                    label=" ".join(ref.text.split()),
                    address=target,
                    origin_key=origin_key,
                    key_hint=key,
                )
            )
        return actions

    def control_actions(
        self,
        controls: list[ControlCandidate],
        origin_key: RouteKey | None,
        exclude_labels: Iterable[str] = (),
    ) -> list[NavigationAction]:
        """Label-addressed actions for inferred navigation controls."""
        excluded = set(exclude_labels)
        actions: list[NavigationAction] = []
        seen: set[str] = set()
        for control in controls:
            label = " ".join(control.text.split())
            if not label or len(label) > MAX_LABEL_LENGTH or label in seen:
                continue
            seen.add(label)
            if label in excluded or self.is_denied(label):
                continue
            # Anchors with a real target are handled by reference_actions
            href = (control.href or "").strip()
            if href and href != "#" and not href.lower().startswith("javascript:"):
                continue
            if not self._classifier.is_likely_navigation_control(control):
                continue
            short_label = " ".join(control.heading.split()) if control.heading else None
            actions.append(
                NavigationAction(
                    kind=ActionKind.CONTROL,
                    label=label,
                    origin_key=origin_key,
                    key_hint=derive_child_key(origin_key, short_label or label),
                    short_label=short_label or None,
                    in_chrome=control.in_chrome,
                )
            )
        return actions

    def is_denied(self, label: str) -> bool:
        """True for non-navigational affordances like "Search" or "Close"."""
        return bool(self._denied and self._denied.search(label))
