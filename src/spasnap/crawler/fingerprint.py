"""View fingerprinting — the oracle for "did this action change the view?"."""

from __future__ import annotations

from typing import Any

from spasnap.crawler.browser import BrowserSurface
from spasnap.crawler.models import Fingerprint

CHROME_SELECTOR = (
    "nav, aside, [role='navigation'], [role='menu'], [role='tablist'], "
    "[class*='sidebar'], [class*='Sidebar']"
)

# Returns heading and lead-paragraph text outside navigation chrome.
FINGERPRINT_SCRIPT = """
(chromeSelector) => {
    const outsideChrome = (el) => !el.closest(chromeSelector);
    const clean = (el) => (el.textContent || "").trim().replace(/\\s+/g, " ");
    const headings = Array.from(document.querySelectorAll("h1, h2, h3"))
        .filter(outsideChrome)
        .map(clean)
        .filter(Boolean);
    const paragraphs = Array.from(document.querySelectorAll("p, [class*='description']"))
        .filter(outsideChrome)
        .map(clean)
        .filter(Boolean);
    return { headings, paragraphs };
}
"""


class Fingerprinter:
    """Computes content fingerprints for the currently rendered view."""

    def __init__(
        self, max_headings: int = 8, max_paragraphs: int = 3, lead_chars: int = 50
    ) -> None:
        self._max_headings = max_headings
        self._max_paragraphs = max_paragraphs
        self._lead_chars = lead_chars

    def compute(self, inputs: dict[str, Any]) -> Fingerprint:
        """Build a fingerprint from raw heading/paragraph text."""
        headings = [" ".join(str(h).split()) for h in inputs.get("headings") or []]
        paragraphs = [" ".join(str(p).split()) for p in inputs.get("paragraphs") or []]
        return Fingerprint(
            headings=tuple(h for h in headings if h)[: self._max_headings],
            lead_text=tuple(p[: self._lead_chars] for p in paragraphs if p)[
                : self._max_paragraphs
            ],
        )

    async def capture(self, surface: BrowserSurface) -> Fingerprint:
        """Fingerprint the live view."""
        inputs = await surface.evaluate(FINGERPRINT_SCRIPT, CHROME_SELECTOR)
        return self.compute(inputs or {})
