"""Asset retrieval — images, media and stylesheet resources stored under ``assets/``."""

from __future__ import annotations

import asyncio
import hashlib
import posixpath
import re
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import httpx
import logfire

from spasnap.crawler.models import ViewRecord

ASSETS_DIR = "assets"
DEFAULT_EXTENSION = ".bin"

# Webfont CDNs serve per-browser payloads; their URLs are left in place
SKIPPED_ASSET_HOSTS = ("googleapis.com", "gstatic.com", "fonts.net", "typekit.net")

CSS_URL_RE = re.compile(r"""url\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)
CSS_IMPORT_RE = re.compile(r"""@import\s+(['"])([^'"]+)\1""", re.IGNORECASE)


def asset_filename(url: str) -> str:
    """Output path of an asset: ``assets/<md5 prefix><extension>``."""
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()[:12]
    ext = posixpath.splitext(urlsplit(url).path)[1].lower()
    if not ext or len(ext) > 6:
        ext = DEFAULT_EXTENSION
    return f"{ASSETS_DIR}/{digest}{ext}"


def is_skipped_host(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in SKIPPED_ASSET_HOSTS)


def resolve_css_url(raw: str, base_address: str) -> str | None:
    """Absolute address of a ``url()`` reference, or None if it is not fetchable.

    Only absolute and root-relative references are resolved; other relative
    references depend on the stylesheet's own location, which is not known
    once rules are inlined.
    """
    raw = raw.strip()
    if not raw or raw.startswith(("data:", "#", "blob:")):
        return None
    if raw.startswith(("http://", "https://", "//")) or raw.startswith("/"):
        return urljoin(base_address, raw)
    return None


def css_references(css: str, base_address: str) -> list[str]:
    """Absolute addresses referenced by ``url()`` and ``@import`` in a stylesheet."""
    found: list[str] = []
    for match in (*CSS_URL_RE.finditer(css), *CSS_IMPORT_RE.finditer(css)):
        resolved = resolve_css_url(match.group(2), base_address)
        if resolved and resolved not in found:
            found.append(resolved)
    return found


class AssetDownloader:
    """Fetches referenced assets once each and writes them into the output tree."""

    def __init__(
        self,
        output_dir: Path,
        client: httpx.AsyncClient | None = None,
        concurrency: int = 8,
        timeout: float = 30.0,
    ) -> None:
        self._output_dir = Path(output_dir)
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._stored: dict[str, str | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(follow_redirects=True, timeout=self._timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this downloader created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> AssetDownloader:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @property
    def stored(self) -> dict[str, str]:
        """Original address → output-relative path of every stored asset."""
        return {url: path for url, path in self._stored.items() if path}

    async def fetch_and_store(self, url: str) -> str | None:
        """Download one asset. Returns its output-relative path, or None if skipped or failed."""
        if not url.startswith(("http://", "https://")) or is_skipped_host(url):
            return None
        if url in self._stored:
            return self._stored[url]

        lock = self._locks.setdefault(url, asyncio.Lock())
        async with lock:
            if url in self._stored:
                return self._stored[url]
            self._stored[url] = await self._download(url)
            return self._stored[url]

    async def _download(self, url: str) -> str | None:
        relative = asset_filename(url)
        client = await self._get_client()
        try:
            async with self._semaphore:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logfire.warn("Asset download failed", url=url, error=str(e))
            return None

        target = self._output_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(response.content)
        logfire.debug("Stored asset", url=url, path=relative, size=len(response.content))
        return relative

    async def download_all(self, records: Iterable[ViewRecord]) -> dict[str, str]:
        """Fetch every asset referenced by the records' markup and stylesheets."""
        urls: list[str] = []
        for record in records:
            urls.extend(record.asset_references)
            for css in record.style_rules:
                urls.extend(css_references(css, record.source_address))
        unique = list(dict.fromkeys(urls))

        with logfire.span("Downloading assets", count=len(unique)):
            await asyncio.gather(*(self.fetch_and_store(u) for u in unique))

        stored = self.stored
        logfire.info("Assets stored", requested=len(unique), stored=len(stored))
        return stored
