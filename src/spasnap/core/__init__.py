"""Core spasnap functionality."""

from spasnap.core.config import Settings, get_settings

# The service is imported lazily; it pulls in the export layer


def __getattr__(name: str):
    """Lazy import of the snapshot service."""
    if name in ("SnapshotResult", "SnapshotService"):
        from spasnap.core.service import SnapshotResult, SnapshotService

        return {"SnapshotResult": SnapshotResult, "SnapshotService": SnapshotService}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "Settings",
    "SnapshotResult",
    "SnapshotService",
    "get_settings",
]
