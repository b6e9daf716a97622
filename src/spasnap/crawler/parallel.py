"""Parallel link discovery — href-only exploration over independent surfaces.

No control activation happens here, so there is no shared view state to
restore; each worker owns one surface and loads addresses directly. Workers
share the capture store and the frontier, both insert-if-absent.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import logfire

from spasnap.crawler.browser import BrowserSurface
from spasnap.crawler.dom_extractor import DOMExtractor
from spasnap.crawler.errors import (
    InvalidAddress,
    NavigationError,
    NavigationTimeout,
)
from spasnap.crawler.fingerprint import Fingerprinter
from spasnap.crawler.frontier import Frontier
from spasnap.crawler.models import (
    ActionKind,
    CaptureError,
    CrawlConfig,
    CrawlResult,
    ErrorKind,
    InsertOutcome,
    NavigationAction,
    Rejection,
    TransitionKind,
    ViewRecord,
)
from spasnap.crawler.navigation import ActionEnumerator
from spasnap.crawler.routes import clean_label, default_label, is_same_origin, normalize
from spasnap.crawler.store import CaptureStore

SurfaceFactory = Callable[[], Awaitable[BrowserSurface]]


class ParallelDiscovery:
    """Breadth-first href crawl with a bounded pool of workers."""

    def __init__(
        self,
        config: CrawlConfig,
        surface_factory: SurfaceFactory,
        *,
        store: CaptureStore | None = None,
        frontier: Frontier | None = None,
        fingerprinter: Fingerprinter | None = None,
        enumerator: ActionEnumerator | None = None,
        extractor: DOMExtractor | None = None,
    ) -> None:
        self._config = config
        self._surface_factory = surface_factory
        self._store = store or CaptureStore()
        self._frontier = frontier or Frontier()
        self._fingerprinter = fingerprinter or Fingerprinter()
        self._enumerator = enumerator or ActionEnumerator(config)
        self._extractor = extractor or DOMExtractor()

        self._result = CrawlResult(base_url=config.base_url)
        self._depths: dict[str, int] = {}
        self._in_flight = 0
        self._wakeup = asyncio.Event()
        self._deadline = 0.0

    @property
    def store(self) -> CaptureStore:
        return self._store

    async def run(self) -> CrawlResult:
        """Crawl until the frontier drains, the page budget fills or time runs out."""
        start = time.monotonic()
        self._deadline = start + self._config.max_duration_seconds

        try:
            seed_key = normalize(self._config.base_url)
        except InvalidAddress as e:
            self._result.fatal_error = str(e)
            return self._result

        self._frontier.push(
            NavigationAction(
                kind=ActionKind.ADDRESS,
                label="",
                address=self._config.base_url,
                key_hint=seed_key,
            )
        )
        self._depths[seed_key] = 0

        workers = max(1, self._config.workers)
        with logfire.span(
            "Parallel link discovery", base_url=self._config.base_url, workers=workers
        ):
            await asyncio.gather(*(self._worker(i) for i in range(workers)))

        if not self._store and self._result.fatal_error is None:
            self._result.fatal_error = (
                f"Seed address {self._config.base_url} could not be captured"
            )
        elif time.monotonic() > self._deadline and self._frontier:
            self._result.fatal_error = (
                f"Exploration exceeded its {self._config.max_duration_seconds}s "
                "wall-clock budget"
            )

        self._result.records = self._store.records()
        self._result.duration_seconds = round(time.monotonic() - start, 1)
        logfire.info(
            "Parallel discovery complete",
            views=self._result.view_count,
            duplicates=self._result.duplicate_count,
            errors=len(self._result.errors),
            duration_seconds=self._result.duration_seconds,
        )
        return self._result

    async def _worker(self, index: int) -> None:
        surface: BrowserSurface | None = None
        try:
            while not self._budget_spent():
                action = self._frontier.pop()
                if action is None:
                    if self._in_flight == 0:
                        self._wakeup.set()
                        return
                    self._wakeup.clear()
                    await self._wakeup.wait()
                    continue

                if surface is None:
                    surface = await self._surface_factory()
                self._in_flight += 1
                try:
                    await self._visit(surface, action)
                finally:
                    self._in_flight -= 1
                    self._wakeup.set()
        finally:
            if surface is not None:
                await surface.close()
            logfire.debug("Worker finished", worker=index)

    def _budget_spent(self) -> bool:
        return (
            len(self._store) >= self._config.max_pages or time.monotonic() > self._deadline
        )

    async def _visit(self, surface: BrowserSurface, action: NavigationAction) -> None:
        if action.address is None:
            logfire.warn("Address action without an address; skipped", label=action.label)
            return
        if action.key_hint and action.key_hint in self._store:
            return

        try:
            await surface.load_address(action.address)
        except NavigationError as e:
            kind = (
                ErrorKind.NAVIGATION_TIMEOUT
                if isinstance(e, NavigationTimeout)
                else ErrorKind.NAVIGATION_ERROR
            )
            self._record_error(action.key_hint, action.address, kind, str(e))
            return
        await surface.wait(self._config.render_delay_ms)

        address = surface.current_address()
        if not is_same_origin(address, self._config.base_url):
            logfire.warn("Address load left the site", address=action.address, landed_on=address)
            return
        key = normalize(address)
        depth = self._depths.get(action.key_hint or key, 0)

        try:
            fingerprint = await self._fingerprinter.capture(surface)
            content = await self._extractor.extract(surface)
            inventory = await self._enumerator.inventory(surface)
        except Exception as e:
            self._record_error(key, address, ErrorKind.CAPTURE_EXTRACTION, str(e))
            return

        actions = self._enumerator.reference_actions(inventory.references, address, key)
        is_seed = action.origin_key is None
        record = ViewRecord(
            key=key,
            source_address=address,
            title=content.title,
            body_markup=content.markup,
            fingerprint=fingerprint,
            breadcrumb_label=(
                "Overview"
                if is_seed
                else clean_label(action.label) if action.label else default_label(key)
            ),
            style_rules=tuple(content.style_rules),
            outbound_references=tuple(a.address for a in actions if a.address),
            asset_references=tuple(content.asset_references),
            transition=TransitionKind.SEED if is_seed else TransitionKind.ADDRESS_CHANGED,
            origin_key=action.origin_key,
            depth=depth,
        )

        # No await between the budget check and the insert
        if len(self._store) >= self._config.max_pages:
            return
        outcome = self._store.try_insert(record)
        if outcome != InsertOutcome.INSERTED:
            self._result.rejections.append(
                Rejection(key=key, outcome=outcome, source=action.address)
            )
            logfire.info("Skipping view", key=key, reason=outcome.value)
            return

        logfire.info("Captured view", key=key, depth=depth, total=len(self._store))
        if depth >= self._config.max_depth:
            return
        for next_action in actions:
            if next_action.key_hint in self._store:
                continue
            if self._frontier.push(next_action) and next_action.key_hint:
                self._depths.setdefault(next_action.key_hint, depth + 1)

    def _record_error(
        self, key: str | None, address: str, kind: ErrorKind, message: str
    ) -> None:
        self._result.errors.append(
            CaptureError(key=key, address=address, kind=kind, message=message)
        )
        logfire.warn("Capture error", key=key, address=address, kind=kind.value, error=message)
