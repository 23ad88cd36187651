import threading
from collections import defaultdict
from typing import Any, Callable

from app.services.event_bus import MATCH_CREATED, NEW_LIKE, EventBus


class BadgeCounter:
    """Unseen match/like counters per group, fed from the event bus.

    Events may be delivered more than once or out of order, so each one is counted at most
    once by its natural key.
    """

    def __init__(self) -> None:
        self._counts: dict[str, dict[str, int]] = defaultdict(lambda: {"matches": 0, "likes": 0})
        self._seen_matches: set[str] = set()
        self._seen_likes: set[tuple[str, str]] = set()
        self._lock = threading.Lock()
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, bus: EventBus) -> None:
        self._unsubscribers.append(bus.subscribe(MATCH_CREATED, self._on_match_created))
        self._unsubscribers.append(bus.subscribe(NEW_LIKE, self._on_new_like))

    def detach(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _on_match_created(self, payload: dict[str, Any]) -> None:
        with self._lock:
            if payload["match_id"] in self._seen_matches:
                return
            self._seen_matches.add(payload["match_id"])
            self._counts[payload["group_a_id"]]["matches"] += 1
            self._counts[payload["group_b_id"]]["matches"] += 1

    def _on_new_like(self, payload: dict[str, Any]) -> None:
        key = (payload["from_group_id"], payload["to_group_id"])
        with self._lock:
            if key in self._seen_likes:
                return
            self._seen_likes.add(key)
            self._counts[payload["to_group_id"]]["likes"] += 1

    def counts(self, group_id: str) -> dict[str, int]:
        with self._lock:
            current = self._counts.get(group_id) or {"matches": 0, "likes": 0}
            return dict(current)

    def clear(self, group_id: str) -> None:
        with self._lock:
            self._counts.pop(group_id, None)
