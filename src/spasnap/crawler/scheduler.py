"""Exploration scheduler — click-driven route discovery over one shared browser surface.

State machine:

    IDLE → LOADING_SEED → ENUMERATING → EXECUTING → OBSERVING
         → {CAPTURING | SKIPPING | BACKTRACKING} → ENUMERATING … → DONE

Every action is attempted from the view it was discovered on. Views reached
by address are restored with a reload; views reached by content-changed
navigation are restored by reloading their source address and replaying the
control labels that led to them.
"""

from __future__ import annotations

import asyncio
import time
from enum import StrEnum

import logfire

from spasnap.crawler.browser import BrowserSurface
from spasnap.crawler.dom_extractor import DOMContent, DOMExtractor
from spasnap.crawler.errors import (
    ActionNotFound,
    CaptureExtractionError,
    InvalidAddress,
    NavigationError,
    NavigationTimeout,
    SeedLoadError,
)
from spasnap.crawler.fingerprint import Fingerprinter
from spasnap.crawler.frontier import Frontier
from spasnap.crawler.models import (
    ROOT_KEY,
    ActionKind,
    CaptureError,
    CrawlConfig,
    CrawlResult,
    ErrorKind,
    Fingerprint,
    InsertOutcome,
    NavigationAction,
    Rejection,
    RouteKey,
    TransitionKind,
    ViewRecord,
)
from spasnap.crawler.navigation import ActionEnumerator
from spasnap.crawler.routes import (
    clean_label,
    default_label,
    derive_child_key,
    is_allowed,
    is_same_origin,
    normalize,
    slugify,
)
from spasnap.crawler.store import CaptureStore

LANDING_LABEL = "Overview"


class ExplorationState(StrEnum):
    """Scheduler states."""

    IDLE = "idle"
    LOADING_SEED = "loading_seed"
    ENUMERATING = "enumerating"
    EXECUTING = "executing"
    OBSERVING = "observing"
    CAPTURING = "capturing"
    SKIPPING = "skipping"
    BACKTRACKING = "backtracking"
    DONE = "done"


def classify_transition(
    before_address: str,
    after_address: str,
    before: Fingerprint,
    after: Fingerprint,
) -> TransitionKind:
    """Compare pre- and post-action observations.

    Address identity is compared through route keys so that query noise does
    not count as navigation.
    """
    if _route_of(before_address) != _route_of(after_address):
        return TransitionKind.ADDRESS_CHANGED
    if before != after:
        return TransitionKind.CONTENT_CHANGED
    return TransitionKind.NO_OP


def _route_of(address: str) -> str:
    try:
        return normalize(address)
    except InvalidAddress:
        return address


class ExplorationScheduler:
    """Drives one exploration run. Owns its capture store and frontier."""

    def __init__(
        self,
        config: CrawlConfig,
        surface: BrowserSurface,
        *,
        store: CaptureStore | None = None,
        frontier: Frontier | None = None,
        fingerprinter: Fingerprinter | None = None,
        enumerator: ActionEnumerator | None = None,
        extractor: DOMExtractor | None = None,
    ) -> None:
        self._config = config
        self._surface = surface
        self._store = store or CaptureStore()
        self._frontier = frontier or Frontier()
        self._fingerprinter = fingerprinter or Fingerprinter()
        self._enumerator = enumerator or ActionEnumerator(config)
        self._extractor = extractor or DOMExtractor()

        self.state = ExplorationState.IDLE
        self._result = CrawlResult(base_url=config.base_url)
        self._landing: ViewRecord | None = None
        self._current_key: RouteKey | None = None
        self._chrome_labels: frozenset[str] = frozenset()
        self._origin_started: dict[RouteKey, float] = {}
        self._closed_origins: set[RouteKey] = set()

    @property
    def store(self) -> CaptureStore:
        return self._store

    @property
    def frontier(self) -> Frontier:
        return self._frontier

    async def run(self) -> CrawlResult:
        """Explore from the seed until the page budget or the frontier runs out.

        Always returns a result; a seed failure or wall-clock exhaustion is
        reported in ``fatal_error`` alongside whatever was captured.
        """
        start = time.monotonic()
        deadline = start + self._config.max_duration_seconds

        with logfire.span("Exploring site", base_url=self._config.base_url):
            try:
                await self._load_seed()
            except SeedLoadError as e:
                logfire.error("Seed address could not be captured", error=str(e))
                self._result.fatal_error = str(e)
            else:
                await self._explore(deadline)

        self.state = ExplorationState.DONE
        self._result.records = self._store.records()
        self._result.duration_seconds = round(time.monotonic() - start, 1)

        logfire.info(
            "Exploration complete",
            views=self._result.view_count,
            duplicates=self._result.duplicate_count,
            errors=len(self._result.errors),
            pending_actions=len(self._frontier),
            duration_seconds=self._result.duration_seconds,
        )
        return self._result

    async def _explore(self, deadline: float) -> None:
        while len(self._store) < self._config.max_pages:
            if time.monotonic() > deadline:
                message = (
                    f"Exploration exceeded its {self._config.max_duration_seconds}s "
                    "wall-clock budget"
                )
                logfire.error(message, views=len(self._store))
                self._result.fatal_error = message
                return

            action = self._frontier.pop()
            if action is None:
                return
            await self._attempt(action)

        logfire.info("Page budget reached", max_pages=self._config.max_pages)

    # -- LoadingSeed ----------------------------------------------------

    async def _load_seed(self) -> None:
        self.state = ExplorationState.LOADING_SEED
        seed = self._config.base_url
        try:
            await self._surface.load_address(seed)
        except NavigationError as e:
            self._record_error(None, seed, e)
            raise SeedLoadError(str(e)) from e
        await self._surface.wait(self._config.render_delay_ms)

        address = self._surface.current_address()
        try:
            key = normalize(address)
        except InvalidAddress:
            key = ROOT_KEY

        try:
            fingerprint = await self._fingerprinter.capture(self._surface)
            content, actions = await self._pull(key, depth=0, is_landing=True)
        except Exception as e:
            raise SeedLoadError(f"Failed to capture seed view {seed}: {e}") from e

        record = self._make_record(
            key=key,
            address=address,
            content=content,
            actions=actions,
            fingerprint=fingerprint,
            breadcrumb=LANDING_LABEL,
            transition=TransitionKind.SEED,
            origin_key=None,
            replay=(),
            depth=0,
        )
        self._store.try_insert(record)
        self._landing = record
        self._current_key = key
        self._chrome_labels = frozenset(
            a.label for a in actions if a.kind == ActionKind.CONTROL and a.in_chrome
        )
        logfire.info("Captured landing view", key=key, fingerprint=fingerprint.digest)
        self._extend_frontier(record, actions)

    # -- Enumerating ----------------------------------------------------

    async def _pull(
        self, key: RouteKey, depth: int, is_landing: bool = False
    ) -> tuple[DOMContent, list[NavigationAction]]:
        """Extract the current view and enumerate its outgoing actions."""
        content = await self._extractor.extract(self._surface)
        try:
            inventory = await self._enumerator.inventory(self._surface)
        except Exception as e:
            raise CaptureExtractionError(f"Navigation inventory failed for {key}: {e}") from e

        actions = self._enumerator.enumerate(
            inventory,
            current_address=self._surface.current_address(),
            origin_key=key,
            exclude_labels=() if is_landing else self._chrome_labels,
            include_controls=depth < self._config.max_depth,
        )
        return content, actions

    def _extend_frontier(self, record: ViewRecord, actions: list[NavigationAction]) -> None:
        self.state = ExplorationState.ENUMERATING
        admitted = self._frontier.extend(
            a for a in actions if not self._already_captured(a)
        )
        logfire.debug(
            "Frontier extended",
            key=record.key,
            references=len(record.outbound_references),
            actions=len(actions),
            admitted=admitted,
            frontier=len(self._frontier),
        )

    # -- Executing / Observing -------------------------------------------

    def _already_captured(self, action: NavigationAction) -> bool:
        """Whether the predicted key of an action is already stored.

        A control predicting the landing key is still executed so that a
        different view claiming that key is observed and reported.
        """
        hint = action.key_hint
        if not hint or hint not in self._store:
            return False
        landing = self._landing
        return not (
            action.kind == ActionKind.CONTROL and landing is not None and hint == landing.key
        )

    async def _attempt(self, action: NavigationAction) -> None:
        if self._already_captured(action):
            return

        if action.kind == ActionKind.ADDRESS:
            await self._execute_address(action)
            return

        origin = action.origin_key
        if origin is None or origin in self._closed_origins:
            return
        if self._view_budget_spent(origin):
            return
        if self._current_key != origin and not await self._backtrack(origin):
            return
        await self._execute_control(action)

    async def _execute_address(self, action: NavigationAction) -> None:
        if action.address is None:
            self._warn("Address action without an address; skipped", label=action.label)
            return
        self.state = ExplorationState.EXECUTING
        try:
            await self._surface.load_address(action.address)
        except NavigationError as e:
            self._record_error(action.key_hint, action.address, e)
            self._current_key = None
            self.state = ExplorationState.SKIPPING
            return
        await self._surface.wait(self._config.render_delay_ms)

        self.state = ExplorationState.OBSERVING
        observed = await self._observe()
        if observed is None:
            return
        address, fingerprint = observed
        if not is_same_origin(address, self._config.base_url):
            self._warn("Address load left the site", address=action.address, landed_on=address)
            self._current_key = None
            return
        key = _route_of(address)

        replay: tuple[str, ...] = ()
        landing = self._landing
        if (
            landing is not None
            and key != landing.key
            and key.startswith("#")
            and fingerprint == landing.fingerprint
        ):
            # The app ignored the fragment on load; try its own navigation control
            label = await self._activate_matching_control(key)
            if label is not None:
                refreshed = await self._observe()
                if refreshed is None:
                    return
                fingerprint = refreshed[1]
                replay = (label,)

        self._current_key = self._store.key_for_fingerprint(fingerprint)
        origin = self._store.get(action.origin_key) if action.origin_key else None
        await self._capture(
            key=key,
            fingerprint=fingerprint,
            source=action.address,
            address=address,
            transition=TransitionKind.ADDRESS_CHANGED,
            origin_key=action.origin_key,
            replay=replay,
            depth=origin.depth + 1 if origin else 1,
            breadcrumb=clean_label(action.label) if action.label else default_label(key),
        )

    async def _execute_control(self, action: NavigationAction) -> None:
        origin = self._store.get(action.origin_key) if action.origin_key else None
        if origin is None:
            return

        before = await self._observe()
        if before is None:
            return
        before_address, before_fingerprint = before

        self.state = ExplorationState.EXECUTING
        if not await self._activate(action.label):
            logfire.debug("Control not activated", label=action.label, origin=origin.key)
            return
        await self._surface.wait(self._config.settle_ms)

        self.state = ExplorationState.OBSERVING
        after = await self._observe()
        if after is None:
            return
        after_address, after_fingerprint = after

        transition = classify_transition(
            before_address, after_address, before_fingerprint, after_fingerprint
        )
        if transition == TransitionKind.NO_OP:
            logfire.debug("Control changed nothing", label=action.label, origin=origin.key)
            self.state = ExplorationState.SKIPPING
            return

        self._current_key = self._store.key_for_fingerprint(after_fingerprint)

        if transition == TransitionKind.ADDRESS_CHANGED:
            if not is_same_origin(after_address, self._config.base_url):
                self._warn("Control navigated off-site", label=action.label, address=after_address)
                self._current_key = None
                return
            key: RouteKey | None = _route_of(after_address)
            address, replay = after_address, ()
        else:
            key = derive_child_key(origin.key, action.key_label)
            address, replay = origin.source_address, (*origin.replay_labels, action.label)

        if key is None:
            self._warn("No route key derivable from label", label=action.label, origin=origin.key)
            return

        display = clean_label(action.key_label)
        breadcrumb = (
            display
            if self._landing is None or origin.key == self._landing.key
            else f"{origin.breadcrumb_label}/{display}"
        )
        logfire.info(
            "Navigation observed",
            label=action.label,
            key=key,
            transition=transition.value,
            breadcrumb=breadcrumb,
        )
        await self._capture(
            key=key,
            fingerprint=after_fingerprint,
            source=action.label,
            address=address,
            transition=transition,
            origin_key=origin.key,
            replay=replay,
            depth=origin.depth + 1,
            breadcrumb=breadcrumb,
        )

    async def _observe(self) -> tuple[str, Fingerprint] | None:
        """Current address and fingerprint, or None when the page cannot be read."""
        try:
            address = self._surface.current_address()
            fingerprint = await self._fingerprinter.capture(self._surface)
        except Exception as e:
            self._warn("Could not observe the current view", error=str(e))
            self._current_key = None
            return None
        return address, fingerprint

    async def _activate(self, label: str) -> bool:
        """Activate a control by label within the action timeout."""
        try:
            async with asyncio.timeout(self._config.action_timeout_ms / 1000):
                return await self._surface.activate_control(label)
        except TimeoutError:
            logfire.warn("Control activation timed out", label=label)
            self._current_key = None
            return False

    async def _activate_matching_control(self, key: RouteKey) -> str | None:
        segment = key.rstrip("/").rsplit("/", 1)[-1]
        try:
            inventory = await self._enumerator.inventory(self._surface)
        except Exception as e:
            logfire.warn("Navigation inventory failed", key=key, error=str(e))
            return None

        for control in inventory.controls:
            label = " ".join(control.text.split())
            if not label or self._enumerator.is_denied(label):
                continue
            if slugify(clean_label(control.heading or label)) != segment:
                continue
            if await self._activate(label):
                await self._surface.wait(self._config.render_delay_ms)
                logfire.info("Fragment route reached through control", key=key, label=label)
                return label
        return None

    # -- Capturing / Skipping --------------------------------------------

    async def _capture(
        self,
        *,
        key: RouteKey,
        fingerprint: Fingerprint,
        source: str,
        address: str,
        transition: TransitionKind,
        origin_key: RouteKey | None,
        replay: tuple[str, ...],
        depth: int,
        breadcrumb: str,
    ) -> None:
        self.state = ExplorationState.CAPTURING
        landing = self._landing

        if (
            transition == TransitionKind.CONTENT_CHANGED
            and landing is not None
            and key == landing.key
            and fingerprint != landing.fingerprint
        ):
            self._warn(
                "Derived key collides with the landing view; dropped", key=key, source=source
            )
            self.state = ExplorationState.SKIPPING
            return

        if not is_allowed(key, self._config.include_patterns, self._config.exclude_patterns):
            logfire.debug("Skipping excluded route", key=key)
            self.state = ExplorationState.SKIPPING
            return

        outcome = self._store.classify(key, fingerprint)
        if outcome != InsertOutcome.INSERTED:
            self._reject(key, outcome, source)
            return

        try:
            content, actions = await self._pull(key, depth)
        except CaptureExtractionError as e:
            self._record_error(key, address, e)
            self._warn("View dropped after extraction failure", key=key, error=str(e))
            self.state = ExplorationState.SKIPPING
            return

        record = self._make_record(
            key=key,
            address=address,
            content=content,
            actions=actions,
            fingerprint=fingerprint,
            breadcrumb=breadcrumb,
            transition=transition,
            origin_key=origin_key,
            replay=replay,
            depth=depth,
        )
        outcome = self._store.try_insert(record)
        if outcome != InsertOutcome.INSERTED:
            self._reject(key, outcome, source)
            return

        self._current_key = key
        logfire.info(
            "Captured view",
            key=key,
            transition=transition.value,
            breadcrumb=breadcrumb,
            fingerprint=fingerprint.digest,
            total=len(self._store),
        )
        self._extend_frontier(record, actions)

    def _make_record(
        self,
        *,
        key: RouteKey,
        address: str,
        content: DOMContent,
        actions: list[NavigationAction],
        fingerprint: Fingerprint,
        breadcrumb: str,
        transition: TransitionKind,
        origin_key: RouteKey | None,
        replay: tuple[str, ...],
        depth: int,
    ) -> ViewRecord:
        return ViewRecord(
            key=key,
            source_address=address,
            title=content.title,
            body_markup=content.markup,
            fingerprint=fingerprint,
            breadcrumb_label=breadcrumb,
            style_rules=tuple(content.style_rules),
            outbound_references=tuple(
                a.address for a in actions if a.kind == ActionKind.ADDRESS and a.address
            ),
            asset_references=tuple(content.asset_references),
            transition=transition,
            origin_key=origin_key,
            replay_labels=replay,
            depth=depth,
        )

    def _reject(self, key: RouteKey, outcome: InsertOutcome, source: str) -> None:
        self.state = ExplorationState.SKIPPING
        self._result.rejections.append(Rejection(key=key, outcome=outcome, source=source))
        logfire.info("Skipping view", key=key, reason=outcome.value, source=source)

    # -- Backtracking ----------------------------------------------------

    async def _backtrack(self, origin_key: RouteKey) -> bool:
        """Restore ``origin_key`` as the current view. False if it cannot be restored."""
        self.state = ExplorationState.BACKTRACKING
        record = self._store.get(origin_key)
        if record is None:
            return False

        try:
            await self._surface.load_address(record.source_address)
        except NavigationError as e:
            self._record_error(origin_key, record.source_address, e)
            self._close_origin(origin_key, "reload failed")
            return False
        await self._surface.wait(self._config.render_delay_ms)

        try:
            for label in record.replay_labels:
                await self._replay(label)
        except ActionNotFound as e:
            self._close_origin(origin_key, str(e))
            return False

        observed = await self._observe()
        if observed is None:
            self._close_origin(origin_key, "view unreadable after restore")
            return False
        self._current_key = self._store.key_for_fingerprint(observed[1])
        if self._current_key != origin_key:
            self._close_origin(origin_key, "restored content does not match")
            return False
        return True

    async def _replay(self, label: str) -> None:
        if not await self._activate(label):
            raise ActionNotFound(label)
        await self._surface.wait(self._config.settle_ms)

    def _close_origin(self, origin_key: RouteKey, reason: str) -> None:
        dropped = self._frontier.discard_origin(origin_key)
        self._closed_origins.add(origin_key)
        self._current_key = None
        self._warn("Cannot return to view", key=origin_key, reason=reason, dropped_actions=dropped)

    def _view_budget_spent(self, origin_key: RouteKey) -> bool:
        started = self._origin_started.setdefault(origin_key, time.monotonic())
        if time.monotonic() - started <= self._config.view_budget_seconds:
            return False
        self._close_origin(
            origin_key, f"exploration budget of {self._config.view_budget_seconds}s spent"
        )
        return True

    # -- Bookkeeping -----------------------------------------------------

    def _record_error(self, key: RouteKey | None, address: str | None, error: Exception) -> None:
        if isinstance(error, NavigationTimeout):
            kind = ErrorKind.NAVIGATION_TIMEOUT
        elif isinstance(error, NavigationError):
            kind = ErrorKind.NAVIGATION_ERROR
        else:
            kind = ErrorKind.CAPTURE_EXTRACTION
        self._result.errors.append(
            CaptureError(key=key, address=address, kind=kind, message=str(error))
        )
        logfire.warn("Capture error", key=key, address=address, kind=kind.value, error=str(error))

    def _warn(self, message: str, **attributes: object) -> None:
        details = ", ".join(f"{k}={v}" for k, v in attributes.items())
        self._result.warnings.append(f"{message} ({details})" if details else message)
        logfire.warn(message, **attributes)
