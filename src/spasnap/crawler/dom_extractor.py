"""DOM extractor — sanitized markup, stylesheets and asset references of the live view."""

from __future__ import annotations

from dataclasses import dataclass, field

import logfire

from spasnap.crawler.browser import BrowserSurface
from spasnap.crawler.errors import CaptureExtractionError

RUNTIME_ONLY_SELECTOR = (
    "script, noscript, style, link[rel='stylesheet'], link[rel='preload'], "
    "link[rel='prefetch'], link[rel='modulepreload']"
)
FRAMEWORK_ATTR_PREFIXES = ["data-rh", "data-react", "data-next", "data-v-", "data-testid"]
FRAMEWORK_ATTRS = ["data-n-head", "data-server-rendered", "data-reactroot", "data-reactid"]

# Works on a clone so the live application keeps running untouched.
EXTRACT_MARKUP_SCRIPT = """
({ runtimeSelector, prefixes, exact }) => {
    const clone = document.body.cloneNode(true);
    clone.querySelectorAll(runtimeSelector).forEach((el) => el.remove());
    clone.querySelectorAll("*").forEach((el) => {
        const doomed = [];
        for (const attr of el.attributes) {
            if (exact.includes(attr.name) || prefixes.some((p) => attr.name.startsWith(p))) {
                doomed.push(attr.name);
            }
        }
        doomed.forEach((name) => el.removeAttribute(name));
    });
    return clone.innerHTML;
}
"""

EXTRACT_STYLES_SCRIPT = """
async () => {
    const blocks = [];
    for (const sheet of document.styleSheets) {
        try {
            let css = "";
            for (const rule of (sheet.cssRules || sheet.rules)) {
                css += rule.cssText + "\\n";
            }
            if (css.trim()) blocks.push(css);
        } catch {
            // Cross-origin sheets hide their rules; fetch the text instead
            if (sheet.href) {
                try {
                    const response = await fetch(sheet.href);
                    blocks.push(await response.text());
                } catch {}
            }
        }
    }
    return blocks;
}
"""

EXTRACT_ASSETS_SCRIPT = """
() => {
    const urls = new Set();
    document.querySelectorAll("img[src], source[src], video[src], video[poster]").forEach((el) => {
        if (el.src) urls.add(el.src);
        if (el.poster) urls.add(el.poster);
    });
    document.querySelectorAll("[srcset]").forEach((el) => {
        el.srcset.split(",").forEach((entry) => {
            const u = entry.trim().split(/\\s+/)[0];
            if (u) urls.add(new URL(u, document.baseURI).href);
        });
    });
    document.querySelectorAll("[style]").forEach((el) => {
        const matches = el.style.cssText.match(/url\\(["']?([^"')]+)["']?\\)/g) || [];
        matches.forEach((m) => {
            const u = m.replace(/url\\(["']?/, "").replace(/["']?\\)/, "");
            if (!u.startsWith("data:")) urls.add(new URL(u, document.baseURI).href);
        });
    });
    return [...urls];
}
"""


@dataclass
class DOMContent:
    """Everything pulled from a view at capture time."""

    title: str = ""
    markup: str = ""
    style_rules: list[str] = field(default_factory=list)
    asset_references: list[str] = field(default_factory=list)


class DOMExtractor:
    """Pulls capture content out of the live view through ``evaluate``."""

    async def extract(self, surface: BrowserSurface) -> DOMContent:
        """Extract title, sanitized body markup, stylesheet text and asset URLs.

        Raises:
            CaptureExtractionError: If any extraction step fails.
        """
        address = surface.current_address()
        try:
            markup = await surface.evaluate(
                EXTRACT_MARKUP_SCRIPT,
                {
                    "runtimeSelector": RUNTIME_ONLY_SELECTOR,
                    "prefixes": FRAMEWORK_ATTR_PREFIXES,
                    "exact": FRAMEWORK_ATTRS,
                },
            )
            style_rules = await surface.evaluate(EXTRACT_STYLES_SCRIPT)
            asset_references = await surface.evaluate(EXTRACT_ASSETS_SCRIPT)
            title = await surface.title()
        except Exception as e:
            raise CaptureExtractionError(f"Extraction failed for {address}: {e}") from e

        if not isinstance(markup, str):
            raise CaptureExtractionError(f"No body markup extracted for {address}")

        content = DOMContent(
            title=title or "",
            markup=markup,
            style_rules=[s for s in style_rules or [] if isinstance(s, str) and s.strip()],
            asset_references=[u for u in asset_references or [] if isinstance(u, str) and u],
        )
        logfire.debug(
            "Extracted view content",
            url=address,
            markup_chars=len(content.markup),
            stylesheets=len(content.style_rules),
            assets=len(content.asset_references),
        )
        return content
