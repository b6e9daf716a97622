"""Reference graph closure — rewrites captured markup into a self-contained static site.

References to captured views become relative file paths, references to views
that were never captured point back at the live site, and retrieved assets
are referenced from ``assets/``. The pass is pure: it reads view records and
the asset map and returns new strings.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from spasnap.crawler.assets import CSS_IMPORT_RE, CSS_URL_RE, resolve_css_url
from spasnap.crawler.errors import InvalidAddress
from spasnap.crawler.models import CaptureError, CrawlResult, RouteKey, ViewRecord
from spasnap.crawler.routes import build_file_map, is_same_origin, normalize, relative_href

LINK_TAGS = ["a", "area"]
NON_NAVIGABLE_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "blob:")

ASSET_ATTRIBUTES = {
    "img": ("src",),
    "source": ("src",),
    "video": ("src", "poster"),
    "audio": ("src",),
    "track": ("src",),
    "input": ("src",),
}

SRCSET_SPLIT_RE = re.compile(r",\s*(?=\S)")


@dataclass
class ExportedPage:
    """One finalized page, ready to be written."""

    key: RouteKey
    file_name: str
    title: str
    markup: str
    style: str
    breadcrumb: str
    source_address: str


@dataclass
class SiteExport:
    """Finalized pages in capture order, plus run totals for manifests and indexes."""

    base_url: str
    pages: list[ExportedPage] = field(default_factory=list)
    view_count: int = 0
    duplicate_count: int = 0
    asset_count: int = 0
    errors: list[CaptureError] = field(default_factory=list)


class ReferenceRewriter:
    """Rewrites every record's references against the final set of captured keys."""

    def __init__(
        self,
        records: Iterable[ViewRecord],
        asset_map: Mapping[str, str] | None = None,
        base_url: str | None = None,
    ) -> None:
        self._records = list(records)
        self._asset_map = dict(asset_map or {})
        self._base_url = base_url or (self._records[0].source_address if self._records else "")
        self._file_map = build_file_map(r.key for r in self._records)

    @property
    def file_map(self) -> dict[RouteKey, str]:
        return dict(self._file_map)

    def export(self, result: CrawlResult | None = None) -> SiteExport:
        """Rewrite all records. Totals are taken from ``result`` when given."""
        pages = [self.rewrite_record(record) for record in self._records]
        return SiteExport(
            base_url=self._base_url,
            pages=pages,
            view_count=len(pages),
            duplicate_count=result.duplicate_count if result else 0,
            asset_count=len(self._asset_map),
            errors=list(result.errors) if result else [],
        )

    def rewrite_record(self, record: ViewRecord) -> ExportedPage:
        page_file = self._file_map[record.key]
        soup = BeautifulSoup(record.body_markup, "html.parser")

        self._rewrite_links(soup, record.source_address, page_file)
        self._rewrite_assets(soup, record.source_address, page_file)

        style = "\n".join(
            self.rewrite_css(css, record.source_address, page_file) for css in record.style_rules
        )
        return ExportedPage(
            key=record.key,
            file_name=page_file,
            title=record.title or record.breadcrumb_label,
            markup=str(soup),
            style=style,
            breadcrumb=record.breadcrumb_label,
            source_address=record.source_address,
        )

    def resolve_link(self, raw: str, source_address: str, page_file: str) -> str | None:
        """New value for a hyperlink, or None to leave it unchanged.

        Captured targets become relative file paths. Same-site targets that
        were not captured, including fragment routes, become absolute addresses
        on the live site.
        """
        raw = raw.strip()
        if not raw or raw.lower().startswith(NON_NAVIGABLE_PREFIXES):
            return None
        target = urljoin(source_address, raw)
        if not is_same_origin(target, self._base_url):
            return None
        try:
            key = normalize(target)
        except InvalidAddress:
            return None

        if key in self._file_map:
            return relative_href(page_file, self._file_map[key])
        return target

    def _rewrite_links(self, soup: BeautifulSoup, source_address: str, page_file: str) -> None:
        for tag in soup.find_all(LINK_TAGS, href=True):
            new_href = self.resolve_link(tag["href"], source_address, page_file)
            if new_href is not None:
                tag["href"] = new_href
                if new_href.startswith("."):
                    tag.attrs.pop("target", None)

    def _asset_path(self, raw: str, base: str, page_file: str) -> str | None:
        raw = raw.strip()
        if not raw or raw.startswith(("data:", "blob:")):
            return None
        stored = self._asset_map.get(urljoin(base, raw))
        return relative_href(page_file, stored) if stored else None

    def _rewrite_assets(self, soup: BeautifulSoup, source_address: str, page_file: str) -> None:
        for tag_name, attrs in ASSET_ATTRIBUTES.items():
            for tag in soup.find_all(tag_name):
                for attr in attrs:
                    value = tag.get(attr)
                    if not value:
                        continue
                    local = self._asset_path(value, source_address, page_file)
                    if local:
                        tag[attr] = local
                        for stale in ("integrity", "crossorigin"):
                            tag.attrs.pop(stale, None)

        for tag in soup.find_all(srcset=True):
            tag["srcset"] = self._rewrite_srcset(tag["srcset"], source_address, page_file)

        for tag in soup.find_all(style=True):
            tag["style"] = self.rewrite_css(tag["style"], source_address, page_file, inline=True)

    def _rewrite_srcset(self, srcset: str, source_address: str, page_file: str) -> str:
        entries = []
        for candidate in SRCSET_SPLIT_RE.split(srcset.strip()):
            parts = candidate.strip().split(maxsplit=1)
            if not parts:
                continue
            local = self._asset_path(parts[0], source_address, page_file)
            entries.append(" ".join([local or parts[0], *parts[1:]]))
        return ", ".join(entries)

    def rewrite_css(
        self, css: str, source_address: str, page_file: str, inline: bool = False
    ) -> str:
        """Point ``url()`` and ``@import`` references at retrieved assets."""

        def local_for(raw: str) -> str | None:
            # Inline styles resolve like markup; stylesheet rules only when unambiguous
            if inline:
                return self._asset_path(raw, source_address, page_file)
            resolved = resolve_css_url(raw, source_address)
            stored = self._asset_map.get(resolved) if resolved else None
            return relative_href(page_file, stored) if stored else None

        def replace_url(match: re.Match[str]) -> str:
            quote, raw = match.group(1), match.group(2).strip()
            local = local_for(raw)
            return f"url({quote}{local}{quote})" if local else match.group(0)

        def replace_import(match: re.Match[str]) -> str:
            quote, raw = match.group(1), match.group(2).strip()
            local = local_for(raw)
            return f"@import {quote}{local}{quote}" if local else match.group(0)

        css = CSS_URL_RE.sub(replace_url, css)
        return CSS_IMPORT_RE.sub(replace_import, css)
