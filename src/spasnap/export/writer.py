"""Static site writer — pages with injected navigation, manifest and sitemaps."""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import logfire

from spasnap.crawler.models import ROOT_KEY, RouteKey
from spasnap.crawler.routes import default_label, relative_href
from spasnap.export.rewriter import ExportedPage, SiteExport
from spasnap.templates import TemplateLoader, get_template_loader

NAV_BRAND = "Site Navigation"


@dataclass
class NavEntry:
    key: RouteKey
    file_name: str
    label: str
    depth: int = 0


@dataclass
class NavSection:
    heading: str | None
    entries: list[NavEntry] = field(default_factory=list)


@dataclass
class WriteSummary:
    """What the writer put on disk."""

    output_dir: Path
    pages: list[str] = field(default_factory=list)
    manifest: list[dict[str, str]] = field(default_factory=list)


def _segments(key: RouteKey) -> list[str]:
    return [s for s in key.lstrip("#").split("/") if s]


def build_nav_sections(pages: list[ExportedPage]) -> list[NavSection]:
    """Group pages for the sidebar.

    The landing page and top-level routes form the first section. Deeper
    routes are grouped under a heading named after their first segment and
    show only the last part of their breadcrumb.
    """
    main = NavSection(heading=None)
    grouped: dict[str, NavSection] = {}

    ordered = sorted(pages, key=lambda p: (p.key != ROOT_KEY, p.key))
    for page in ordered:
        segments = _segments(page.key)
        if len(segments) <= 1:
            main.entries.append(NavEntry(page.key, page.file_name, page.breadcrumb))
            continue
        heading = default_label(segments[0])
        section = grouped.setdefault(heading, NavSection(heading=heading))
        label = page.breadcrumb.rsplit("/", 1)[-1].strip() or default_label(segments[-1])
        section.entries.append(
            NavEntry(page.key, page.file_name, label, depth=max(0, len(segments) - 2))
        )

    return [main, *grouped.values()] if main.entries else list(grouped.values())


class StaticSiteWriter:
    """Writes a finalized site export to an output directory."""

    def __init__(
        self,
        output_dir: Path,
        loader: TemplateLoader | None = None,
        clean: bool = True,
    ) -> None:
        self._output_dir = Path(output_dir)
        self._loader = loader or get_template_loader()
        self._clean = clean

    def prepare(self) -> None:
        """Create the output directory, emptying it first when cleaning is enabled."""
        if self._clean and self._output_dir.exists():
            shutil.rmtree(self._output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)

    def write(self, export: SiteExport) -> WriteSummary:
        """Write every page plus manifest.json, sitemap.xml, _sitemap.html and .nojekyll."""
        self._output_dir.mkdir(parents=True, exist_ok=True)
        summary = WriteSummary(output_dir=self._output_dir)
        sections = build_nav_sections(export.pages)
        nav_css = self._loader.get_source("nav.css")

        with logfire.span("Writing static site", pages=len(export.pages)):
            for page in export.pages:
                html = self._loader.render(
                    "page.html.j2",
                    page=page,
                    nav_css=nav_css,
                    nav_sections=self._nav_for(page, sections),
                    brand=NAV_BRAND,
                )
                target = self._output_dir / page.file_name
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(html, encoding="utf-8")
                summary.pages.append(page.file_name)
                summary.manifest.append(
                    {
                        "route": page.key,
                        "file": page.file_name,
                        "url": page.source_address,
                        "title": page.title,
                        "label": page.breadcrumb,
                    }
                )
                logfire.debug("Wrote page", key=page.key, file=page.file_name)

            self._write_indexes(export, summary)

        logfire.info(
            "Static site written",
            output_dir=str(self._output_dir),
            pages=len(summary.pages),
            duplicates=export.duplicate_count,
            assets=export.asset_count,
        )
        return summary

    def _nav_for(self, page: ExportedPage, sections: list[NavSection]) -> list[dict]:
        return [
            {
                "heading": section.heading,
                "links": [
                    {
                        "href": relative_href(page.file_name, entry.file_name),
                        "label": entry.label,
                        "depth": entry.depth,
                        "active": entry.key == page.key,
                    }
                    for entry in section.entries
                ],
            }
            for section in sections
        ]

    def _write_indexes(self, export: SiteExport, summary: WriteSummary) -> None:
        manifest = {
            "base_url": export.base_url,
            "view_count": export.view_count,
            "duplicate_count": export.duplicate_count,
            "asset_count": export.asset_count,
            "pages": summary.manifest,
            "errors": [
                {"route": e.key, "url": e.address, "kind": e.kind.value, "message": e.message}
                for e in export.errors
            ],
        }
        (self._output_dir / "manifest.json").write_text(
            json.dumps(manifest, indent=2), encoding="utf-8"
        )
        (self._output_dir / "sitemap.xml").write_text(
            self._loader.render("sitemap.xml.j2", entries=summary.manifest), encoding="utf-8"
        )
        (self._output_dir / "_sitemap.html").write_text(
            self._loader.render(
                "sitemap_index.html.j2",
                entries=summary.manifest,
                base_url=export.base_url,
                duplicate_count=export.duplicate_count,
            ),
            encoding="utf-8",
        )
        (self._output_dir / ".nojekyll").write_text("", encoding="utf-8")
