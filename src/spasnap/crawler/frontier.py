"""Frontier — ordered, deduplicated queue of navigation actions not yet attempted."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable

from spasnap.crawler.models import ActionKind, NavigationAction, RouteKey

ActionIdentity = tuple[str, RouteKey | None, str]


def action_identity(action: NavigationAction) -> ActionIdentity:
    """Address actions are unique per predicted key, controls per (origin, label)."""
    if action.kind == ActionKind.ADDRESS:
        return (ActionKind.ADDRESS.value, None, action.key_hint or action.address or "")
    return (ActionKind.CONTROL.value, action.origin_key, action.label)


class Frontier:
    """FIFO of actions with insert-if-absent semantics.

    An action is admitted at most once per run, even after it was popped.
    Safe for concurrent producers.
    """

    def __init__(self) -> None:
        self._queue: deque[NavigationAction] = deque()
        self._seen: set[ActionIdentity] = set()
        self._lock = threading.Lock()

    def push(self, action: NavigationAction) -> bool:
        """Queue an action unless an equivalent one was already admitted."""
        identity = action_identity(action)
        with self._lock:
            if identity in self._seen:
                return False
            self._seen.add(identity)
            self._queue.append(action)
            return True

    def extend(self, actions: Iterable[NavigationAction]) -> int:
        """Queue several actions; returns how many were admitted."""
        return sum(1 for action in actions if self.push(action))

    def pop(self) -> NavigationAction | None:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def discard_origin(self, origin_key: RouteKey) -> int:
        """Drop every queued control action discovered on ``origin_key``."""
        with self._lock:
            kept = deque(
                a
                for a in self._queue
                if not (a.kind == ActionKind.CONTROL and a.origin_key == origin_key)
            )
            dropped = len(self._queue) - len(kept)
            self._queue = kept
            return dropped

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)
