"""Browser surface — the capability contract the crawler drives, and its Playwright backing."""

from __future__ import annotations

from typing import Any, Protocol

import logfire
from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from spasnap.crawler.errors import NavigationError, NavigationTimeout
from spasnap.crawler.models import CrawlConfig

CLICKABLE_QUERY = (
    "button, a[href], [role='button'], [role='tab'], [role='menuitem'], "
    "[tabindex='0'], [class*='cursor-pointer']"
)

# Re-resolves an element by its whitespace-normalized text and clicks it.
# Never reuses a handle from an earlier render.
ACTIVATE_CONTROL_SCRIPT = """
({ label, clickableQuery }) => {
    const textOf = (el) => (el.textContent || "").trim().replace(/\\s+/g, " ");
    for (const el of document.querySelectorAll(clickableQuery)) {
        if (textOf(el) === label) {
            el.click();
            return true;
        }
    }
    for (const el of document.querySelectorAll("div")) {
        if (!el.querySelector("h3")) continue;
        if (textOf(el) === label) {
            el.click();
            return true;
        }
    }
    return false;
}
"""


class BrowserSurface(Protocol):
    """One stateful rendered page the crawler can navigate and inspect."""

    async def load_address(self, address: str) -> None:
        """Navigate to an address.

        Raises:
            NavigationTimeout: If the load exceeds the page timeout.
            NavigationError: If the load fails or returns an HTTP error.
        """
        ...

    def current_address(self) -> str: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def activate_control(self, label: str) -> bool:
        """Click the control whose visible text equals ``label``. False if absent."""
        ...

    async def wait(self, milliseconds: int) -> None: ...

    async def title(self) -> str: ...

    async def close(self) -> None: ...


class PlaywrightSurface:
    """BrowserSurface backed by a Playwright page."""

    def __init__(self, page: Page, config: CrawlConfig) -> None:
        self._page = page
        self._config = config

    async def load_address(self, address: str) -> None:
        try:
            response = await self._page.goto(
                address,
                wait_until=self._config.wait_until,
                timeout=self._config.page_timeout_ms,
            )
        except PlaywrightTimeout as e:
            raise NavigationTimeout(
                address, f"timed out after {self._config.page_timeout_ms}ms"
            ) from e
        except PlaywrightError as e:
            raise NavigationError(address, e.message) from e

        # Same-document (fragment) navigations have no response
        if response is not None and response.status >= 400:
            raise NavigationError(address, f"HTTP {response.status}")

    def current_address(self) -> str:
        return self._page.url

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def activate_control(self, label: str) -> bool:
        return bool(
            await self._page.evaluate(
                ACTIVATE_CONTROL_SCRIPT, {"label": label, "clickableQuery": CLICKABLE_QUERY}
            )
        )

    async def wait(self, milliseconds: int) -> None:
        await self._page.wait_for_timeout(milliseconds)

    async def title(self) -> str:
        return await self._page.title()

    async def close(self) -> None:
        await self._page.close()


class BrowserManager:
    """Manages Playwright browser lifecycle and hands out surfaces."""

    def __init__(self, config: CrawlConfig) -> None:
        self._config = config
        self._playwright: object | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    async def start(self) -> BrowserContext:
        """Launch browser and create the shared context."""
        logfire.info("Starting Playwright browser", headless=self._config.headless)

        pw = await async_playwright().start()
        self._playwright = pw

        self._browser = await pw.chromium.launch(
            headless=self._config.headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        self._context = await self._browser.new_context(
            user_agent=self._config.user_agent,
            viewport={
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            },
        )
        self._context.set_default_navigation_timeout(self._config.page_timeout_ms)

        logfire.info("Browser context created")
        return self._context

    async def new_surface(self) -> PlaywrightSurface:
        """Open a new page in the shared context."""
        if not self._context:
            raise RuntimeError("Browser context not initialized. Call start() first.")
        page = await self._context.new_page()
        return PlaywrightSurface(page, self._config)

    async def close(self) -> None:
        """Close browser and cleanup."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()  # type: ignore[attr-defined]
            self._playwright = None
        logfire.info("Browser closed")

    async def __aenter__(self) -> BrowserManager:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
