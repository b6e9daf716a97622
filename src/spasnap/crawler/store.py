"""Capture store — the authoritative map from route key to captured view."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from spasnap.crawler.models import Fingerprint, InsertOutcome, RouteKey, ViewRecord


class CaptureStore:
    """Insertion-ordered view records.

    Invariants: one record per route key, one record per fingerprint. Records
    are never replaced or removed. Insertion is atomic so concurrent
    exploration branches can share one store.
    """

    def __init__(self) -> None:
        self._records: dict[RouteKey, ViewRecord] = {}
        self._by_fingerprint: dict[Fingerprint, RouteKey] = {}
        self._lock = threading.Lock()

    def classify(self, key: RouteKey, fingerprint: Fingerprint) -> InsertOutcome:
        """What ``try_insert`` would return for this key and fingerprint right now."""
        if key in self._records:
            return InsertOutcome.DUPLICATE_KEY
        if fingerprint in self._by_fingerprint:
            return InsertOutcome.DUPLICATE_FINGERPRINT
        return InsertOutcome.INSERTED

    def try_insert(self, record: ViewRecord) -> InsertOutcome:
        """Insert a record unless its key or fingerprint is already present."""
        with self._lock:
            outcome = self.classify(record.key, record.fingerprint)
            if outcome == InsertOutcome.INSERTED:
                self._records[record.key] = record
                self._by_fingerprint[record.fingerprint] = record.key
            return outcome

    def get(self, key: RouteKey) -> ViewRecord | None:
        return self._records.get(key)

    def key_for_fingerprint(self, fingerprint: Fingerprint) -> RouteKey | None:
        return self._by_fingerprint.get(fingerprint)

    def label_for(self, key: RouteKey) -> str | None:
        """Breadcrumb label of a captured key."""
        record = self._records.get(key)
        return record.breadcrumb_label if record else None

    def keys(self) -> list[RouteKey]:
        return list(self._records)

    def records(self) -> list[ViewRecord]:
        """Snapshot of all records in insertion order."""
        return list(self._records.values())

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[ViewRecord]:
        return iter(self.records())

    def __len__(self) -> int:
        return len(self._records)
