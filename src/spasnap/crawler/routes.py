"""Route keys — canonical view identity, file naming and label slugs.

Examples:
    https://site.example/#/colors   → "#/colors"
    https://site.example/about/     → "/about"
    https://site.example/#/         → "/"
    https://site.example/           → "/"
"""

from __future__ import annotations

import fnmatch
import posixpath
import re
import unicodedata
from collections.abc import Iterable
from urllib.parse import urljoin, urlsplit

import logfire

from spasnap.crawler.errors import InvalidAddress
from spasnap.crawler.models import ROOT_KEY, RouteKey

_HASH_PREFIX_RE = re.compile(r"^#?!?/*")
_RESERVED_CHARS_RE = re.compile(r'[?&=:*"<>|\\%#\s]')
_TRAILING_BADGE_RE = re.compile(r"(?:\s+(?:complete|beta|new))+$", re.IGNORECASE)
_ICON_WORD_RE = re.compile(r"^[a-z_]+\s+(?=[A-Z0-9])")
_ICON_CAMEL_RE = re.compile(r"^[a-z_]{3,}(?=[A-Z])")

NAVIGABLE_SCHEMES = ("http", "https")


def normalize(address: str, base: str | None = None) -> RouteKey:
    """Canonicalize an address into a route key.

    Relative addresses (including fragment-only ones) are resolved against
    ``base``. Query strings are dropped. A non-empty fragment is a client-side
    route and takes precedence over the path; ``#/`` and the bare root collapse
    to the root key.

    Raises:
        InvalidAddress: If the address is empty, unparsable or not http(s).
    """
    candidate = (address or "").strip()
    if not candidate:
        raise InvalidAddress(address, "empty address")
    if base:
        candidate = urljoin(base, candidate)

    try:
        parts = urlsplit(candidate)
    except ValueError as e:
        raise InvalidAddress(address, str(e)) from e

    if parts.scheme.lower() not in NAVIGABLE_SCHEMES or not parts.netloc:
        raise InvalidAddress(address)

    if parts.fragment:
        route = _HASH_PREFIX_RE.sub("", parts.fragment).split("?", 1)[0].rstrip("/")
        return f"#/{route}" if route else ROOT_KEY

    return parts.path.rstrip("/") or ROOT_KEY


def key_to_address(key: RouteKey, base_url: str) -> str:
    """Build an absolute address for a route key on the site of ``base_url``."""
    parts = urlsplit(base_url)
    origin = f"{parts.scheme}://{parts.netloc}"
    if key.startswith("#"):
        return f"{origin}/{key}"
    return f"{origin}{key}"


def key_to_filename(key: RouteKey) -> str:
    """Map a route key to a relative output path.

    Examples:
        "/"            → "index.html"
        "#/colors"     → "colors.html"
        "/docs/intro"  → "docs/intro.html"
        "#/a?b=c"      → "a_b_c.html"

    Keys that differ only in routing style ("/colors" and "#/colors") map to
    the same path; ``build_file_map`` disambiguates those.
    """
    cleaned = _HASH_PREFIX_RE.sub("", key).strip("/")
    segments = [_escape_segment(s) for s in cleaned.split("/") if s]
    if not segments:
        return "index.html"
    path = "/".join(segments)
    if not path.endswith(".html"):
        path += ".html"
    return path


def _escape_segment(segment: str) -> str:
    if segment in (".", ".."):
        return segment.replace(".", "_")
    return _RESERVED_CHARS_RE.sub("_", segment)


def build_file_map(keys: Iterable[RouteKey]) -> dict[RouteKey, str]:
    """Assign an output file to every key, in order, without collisions."""
    file_map: dict[RouteKey, str] = {}
    taken: set[str] = set()
    for key in keys:
        if key in file_map:
            continue
        filename = key_to_filename(key)
        if filename in taken:
            stem, ext = posixpath.splitext(filename)
            suffix = 2
            while f"{stem}-{suffix}{ext}" in taken:
                suffix += 1
            disambiguated = f"{stem}-{suffix}{ext}"
            logfire.warn(
                "Output file name collision",
                key=key,
                filename=filename,
                renamed_to=disambiguated,
            )
            filename = disambiguated
        taken.add(filename)
        file_map[key] = filename
    return file_map


def relative_href(from_file: str, to_file: str) -> str:
    """Relative link from one output file to another ("./about.html")."""
    rel = posixpath.relpath(to_file, posixpath.dirname(from_file) or ".")
    return rel if rel.startswith(".") else f"./{rel}"


def is_same_origin(address: str, site_url: str) -> bool:
    """Check scheme and host/port equality against the site origin."""
    try:
        a, b = urlsplit(address), urlsplit(site_url)
    except ValueError:
        return False
    return (a.scheme.lower(), a.netloc.lower()) == (b.scheme.lower(), b.netloc.lower())


def is_allowed(
    key: RouteKey, include_patterns: list[str], exclude_patterns: list[str]
) -> bool:
    """Check a key's route path against include/exclude glob patterns."""
    path = "/" + _HASH_PREFIX_RE.sub("", key)
    if any(fnmatch.fnmatch(path, p) for p in exclude_patterns):
        return False
    if include_patterns:
        return path == "/" or any(fnmatch.fnmatch(path, p) for p in include_patterns)
    return True


def slugify(text: str) -> str:
    """Lowercase, ASCII-fold and collapse non-alphanumerics into hyphens."""
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", folded.lower()).strip("-")


def clean_label(label: str) -> str:
    """Strip trailing status badges and icon-ligature prefixes from a label.

    "palette Colors" → "Colors", "text_fieldsTypography" → "Typography",
    "Button Complete" → "Button".
    """
    original = " ".join(label.split())
    cleaned = _TRAILING_BADGE_RE.sub("", original)
    cleaned = _ICON_WORD_RE.sub("", cleaned)
    if " " not in cleaned:
        cleaned = _ICON_CAMEL_RE.sub("", cleaned)
    return cleaned.strip() or original


def derive_child_key(origin_key: RouteKey | None, label: str) -> RouteKey | None:
    """Synthetic key for a content-changed view: slug nested under its origin.

    Children of the root (or of hash routes) are hash-style; children of path
    routes extend the path. Returns None when the label has no usable slug.
    """
    slug = slugify(clean_label(label))
    if not slug:
        return None
    if not origin_key or origin_key == ROOT_KEY:
        return f"#/{slug}"
    if origin_key.startswith("#"):
        parent = _HASH_PREFIX_RE.sub("", origin_key).rstrip("/")
        return f"#/{parent}/{slug}" if parent else f"#/{slug}"
    return f"{origin_key.rstrip('/')}/{slug}"


def default_label(key: RouteKey) -> str:
    """Breadcrumb label for a key reached without a labeled action.

    "#/components/badge" → "Components/Badge", "/" → "Overview".
    """
    path = _HASH_PREFIX_RE.sub("", key).strip("/")
    if not path:
        return "Overview"
    segments = [s for s in path.split("/") if s]
    return "/".join(s.replace("-", " ").replace("_", " ").title() for s in segments)
