"""Crawl command for the spasnap CLI."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from spasnap.config import SiteConfig, load_site_config, parse_site_config
from spasnap.core.config import Settings, configure_logging, get_settings
from spasnap.core.service import SnapshotResult, SnapshotService
from spasnap.crawler.errors import InvalidAddress
from spasnap.crawler.models import CrawlConfig, CrawlMode
from spasnap.crawler.routes import normalize

console = Console()


def build_crawl_config(
    settings: Settings,
    site_config: SiteConfig,
    url: str | None = None,
    max_pages: int | None = None,
    max_depth: int | None = None,
    workers: int | None = None,
    wait_for_network: bool | None = None,
    render_delay: int | None = None,
    headed: bool = False,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> CrawlConfig:
    """Layer settings: environment, then the site config file, then flags."""
    config = settings.to_crawl_config(base_url=url or site_config.url)
    site_config.apply(config)

    if max_pages is not None:
        config.max_pages = max_pages
    if max_depth is not None:
        config.max_depth = max_depth
    if workers is not None:
        config.workers = workers
    if wait_for_network is not None:
        config.wait_until = "networkidle" if wait_for_network else "domcontentloaded"
    if render_delay is not None:
        config.render_delay_ms = render_delay
    if headed:
        config.headless = False
    config.include_patterns = [*config.include_patterns, *(include or [])]
    config.exclude_patterns = [*config.exclude_patterns, *(exclude or [])]
    return config


def crawl(
    url: str | None = typer.Argument(
        None,
        help="Site to crawl. Defaults to SITE_URL or the url in .spasnap.yml.",
    ),
    output_dir: str | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory for the static site.",
    ),
    max_pages: int | None = typer.Option(
        None,
        "--max-pages",
        "-n",
        min=1,
        help="Maximum number of views to capture.",
    ),
    max_depth: int | None = typer.Option(
        None,
        "--max-depth",
        min=0,
        help="Maximum click depth below the landing view.",
    ),
    mode: CrawlMode | None = typer.Option(
        None,
        "--mode",
        "-m",
        help=(
            "Exploration mode: 'interactive' clicks navigation controls, "
            "'links' follows hrefs in parallel."
        ),
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        min=1,
        help="Parallel browser pages in links mode.",
    ),
    no_assets: bool = typer.Option(
        False,
        "--no-assets",
        help="Keep asset references pointing at the live site.",
    ),
    wait_for_network: bool | None = typer.Option(
        None,
        "--wait-for-network/--no-wait-for-network",
        help="Wait for network idle instead of DOM ready on every load.",
    ),
    render_delay: int | None = typer.Option(
        None,
        "--render-delay",
        min=0,
        help="Milliseconds to wait for client-side rendering after each load.",
    ),
    headed: bool = typer.Option(
        False,
        "--headed",
        help="Show the browser window.",
    ),
    include: list[str] | None = typer.Option(
        None,
        "--include",
        help="Glob pattern of route paths to capture. Can be repeated.",
    ),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        help="Glob pattern of route paths to skip. Can be repeated.",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        exists=True,
        dir_okay=False,
        help="Site config file. Defaults to .spasnap.yml in the current directory.",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json, or quiet.",
    ),
) -> None:
    """Capture a single-page application as a static site.

    Examples:

        spasnap crawl https://app.example.com

        spasnap crawl https://app.example.com -o site --max-pages 50

        spasnap crawl https://docs.example.com --mode links --workers 8
    """
    if format not in ("text", "json", "quiet"):
        console.print(f"[red]Error:[/red] Unknown format {format!r}. Use text, json, or quiet.")
        raise typer.Exit(1)

    settings = get_settings()
    configure_logging(settings, console_output=format == "text")

    try:
        site_config = (
            parse_site_config(config_file.read_text(encoding="utf-8"))
            if config_file
            else load_site_config()
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid site config: {escape(str(e))}")
        raise typer.Exit(1) from None

    config = build_crawl_config(
        settings,
        site_config,
        url=url,
        max_pages=max_pages,
        max_depth=max_depth,
        workers=workers,
        wait_for_network=wait_for_network,
        render_delay=render_delay,
        headed=headed,
        include=include,
        exclude=exclude,
    )
    try:
        normalize(config.base_url)
    except InvalidAddress as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    output = Path(output_dir or site_config.output_dir or settings.output_dir)
    service = SnapshotService(
        config,
        output,
        mode=mode or settings.crawl_mode,
        download_assets=settings.download_assets and not no_assets,
    )

    if format == "text":
        console.print(
            Panel(
                f"Site: [blue]{config.base_url}[/blue]\n"
                f"Output: [blue]{output}[/blue]\n"
                f"Mode: [blue]{service.mode.value}[/blue]\n"
                f"Max pages: [blue]{config.max_pages}[/blue]",
                title="Starting Snapshot",
                border_style="blue",
            )
        )

    try:
        if format == "text":
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("Exploring site...", total=None)
                result = asyncio.run(service.snapshot())
        else:
            result = asyncio.run(service.snapshot())
    except Exception as e:
        if format != "quiet":
            console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    _report(result, format)
    if not result.ok:
        raise typer.Exit(1)


def _report(result: SnapshotResult, format: str) -> None:
    crawl_result = result.crawl
    if format == "json":
        console.print_json(
            json.dumps(
                {
                    "base_url": crawl_result.base_url,
                    "output_dir": str(result.output_dir),
                    "view_count": result.export.view_count,
                    "duplicate_count": result.export.duplicate_count,
                    "assets": result.assets_stored,
                    "pages": result.summary.manifest if result.summary else [],
                    "errors": [
                        {"route": e.key, "url": e.address, "kind": e.kind.value}
                        for e in crawl_result.errors
                    ],
                    "warnings": crawl_result.warnings,
                    "fatal_error": crawl_result.fatal_error,
                    "duration_seconds": crawl_result.duration_seconds,
                }
            )
        )
        return
    if format == "quiet":
        return

    body = (
        f"Views captured: [blue]{result.export.view_count}[/blue]\n"
        f"Duplicates rejected: [blue]{result.export.duplicate_count}[/blue]\n"
        f"Assets stored: [blue]{result.assets_stored}[/blue]\n"
        f"Errors: [blue]{len(crawl_result.errors)}[/blue]\n"
        f"Duration: [blue]{crawl_result.duration_seconds}s[/blue]\n"
        f"Output: [blue]{result.output_dir}[/blue]"
    )
    if crawl_result.ok:
        console.print(Panel(body, title="Snapshot Complete", border_style="green"))
    else:
        console.print(
            Panel(
                f"[red]{escape(crawl_result.fatal_error or '')}[/red]\n\n{body}",
                title="Snapshot Incomplete",
                border_style="red",
            )
        )
    for error in crawl_result.errors:
        console.print(f"[yellow]![/yellow] {error.kind.value}: {escape(error.message)}")
