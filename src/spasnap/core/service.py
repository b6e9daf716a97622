"""spasnap core service - orchestrates the snapshot workflow."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import httpx
import logfire

from spasnap.crawler.assets import AssetDownloader
from spasnap.crawler.browser import BrowserManager, BrowserSurface
from spasnap.crawler.models import CrawlConfig, CrawlMode, CrawlResult
from spasnap.crawler.parallel import ParallelDiscovery
from spasnap.crawler.scheduler import ExplorationScheduler
from spasnap.export import ReferenceRewriter, SiteExport, StaticSiteWriter, WriteSummary
from spasnap.templates import TemplateLoader


@dataclass
class SnapshotResult:
    """Result of a snapshot run."""

    crawl: CrawlResult
    export: SiteExport
    output_dir: Path
    summary: WriteSummary | None = None
    assets_stored: int = 0

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.crawl.ok


class SnapshotService:
    """Main service for static snapshots.

    Orchestrates the full workflow:
    1. Explore the site and capture views
    2. Download referenced assets
    3. Rewrite references between captured views
    4. Write the static site
    """

    def __init__(
        self,
        config: CrawlConfig,
        output_dir: Path,
        mode: CrawlMode = CrawlMode.INTERACTIVE,
        download_assets: bool = True,
        surface_factory: Callable[[], Awaitable[BrowserSurface]] | None = None,
        asset_client: httpx.AsyncClient | None = None,
        template_loader: TemplateLoader | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Crawl configuration
            output_dir: Directory the static site is written to
            mode: Interactive (click-driven) or links-only exploration
            download_assets: Whether to store referenced assets locally
            surface_factory: Opens browser surfaces; defaults to a Playwright browser
            asset_client: HTTP client for asset downloads
            template_loader: Loader for the site templates
        """
        self.config = config
        self.output_dir = Path(output_dir)
        self.mode = mode
        self.download_assets = download_assets
        self._surface_factory = surface_factory
        self._asset_client = asset_client
        self._template_loader = template_loader

    async def snapshot(self) -> SnapshotResult:
        """Run the whole workflow.

        Partial results are still written when the crawl ends with a fatal
        error after capturing at least one view.
        """
        started_at = datetime.now(UTC)
        logfire.info(
            "Starting snapshot",
            base_url=self.config.base_url,
            mode=self.mode.value,
            output_dir=str(self.output_dir),
        )

        writer = StaticSiteWriter(self.output_dir, loader=self._template_loader)
        writer.prepare()

        # Step 1: Explore
        crawl = await self.crawl()

        # Step 2: Assets
        asset_map: dict[str, str] = {}
        if self.download_assets and crawl.records:
            async with AssetDownloader(self.output_dir, client=self._asset_client) as downloader:
                asset_map = await downloader.download_all(crawl.records)

        # Step 3: Rewrite
        export = ReferenceRewriter(crawl.records, asset_map, self.config.base_url).export(crawl)

        # Step 4: Write
        summary = writer.write(export) if export.pages else None

        completed_at = datetime.now(UTC)
        logfire.info(
            "Snapshot complete",
            views=export.view_count,
            duplicates=export.duplicate_count,
            assets=len(asset_map),
            errors=len(crawl.errors),
            fatal=crawl.fatal_error,
        )
        return SnapshotResult(
            crawl=crawl,
            export=export,
            output_dir=self.output_dir,
            summary=summary,
            assets_stored=len(asset_map),
            started_at=started_at,
            completed_at=completed_at,
        )

    async def crawl(self) -> CrawlResult:
        """Explore the site with the configured mode."""
        if self._surface_factory is not None:
            return await self._explore(self._surface_factory)

        async with BrowserManager(self.config) as browser:
            return await self._explore(browser.new_surface)

    async def _explore(
        self, surface_factory: Callable[[], Awaitable[BrowserSurface]]
    ) -> CrawlResult:
        if self.mode == CrawlMode.LINKS:
            return await ParallelDiscovery(self.config, surface_factory).run()

        surface = await surface_factory()
        try:
            return await ExplorationScheduler(self.config, surface).run()
        finally:
            await surface.close()
