"""Static export — reference rewriting and site writing."""

from spasnap.export.rewriter import ExportedPage, ReferenceRewriter, SiteExport
from spasnap.export.writer import StaticSiteWriter, WriteSummary

__all__ = [
    "ExportedPage",
    "ReferenceRewriter",
    "SiteExport",
    "StaticSiteWriter",
    "WriteSummary",
]
