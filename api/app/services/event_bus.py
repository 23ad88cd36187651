import logging
import threading
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

BUBBLE_FORMED = "BUBBLE_FORMED"
MATCH_CREATED = "MATCH_CREATED"
NEW_LIKE = "NEW_LIKE"
GROUP_MEMBER_JOINED = "GROUP_MEMBER_JOINED"
NEW_INVITATION = "NEW_INVITATION"
INVITATION_DECLINED = "INVITATION_DECLINED"

Handler = Callable[[dict[str, Any]], None]


class _Subscription:
    __slots__ = ("event_type", "handler", "active")

    def __init__(self, event_type: str, handler: Handler) -> None:
        self.event_type = event_type
        self.handler = handler
        self.active = True


class EventBus:
    """In-process publish/subscribe keyed by event type.

    Delivery is synchronous and follows subscription order. Each publish iterates over a
    snapshot of the subscriber list, so handlers may subscribe or unsubscribe while an
    event is being delivered; a subscription cancelled mid-delivery is skipped if its turn
    has not come yet. Nothing is persisted or replayed.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[_Subscription]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        sub = _Subscription(event_type, handler)
        with self._lock:
            self._subscribers[event_type].append(sub)
        logger.debug("[EVENT_BUS] subscribed handler=%s event=%s", getattr(handler, "__name__", handler), event_type)

        def unsubscribe() -> None:
            with self._lock:
                if not sub.active:
                    return
                sub.active = False
                subs = self._subscribers.get(event_type)
                if subs and sub in subs:
                    subs.remove(sub)

        return unsubscribe

    def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        with self._lock:
            snapshot = list(self._subscribers.get(event_type, ()))
        logger.debug("[EVENT_BUS] publish event=%s subscribers=%s", event_type, len(snapshot))
        for sub in snapshot:
            if not sub.active:
                continue
            try:
                sub.handler(payload)
            except Exception:
                logger.exception("[EVENT_BUS] handler failed event=%s handler=%s", event_type, sub.handler)

    def listener_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, ()))

    def clear(self, event_type: str | None = None) -> None:
        with self._lock:
            types = [event_type] if event_type else list(self._subscribers.keys())
            for et in types:
                for sub in self._subscribers.pop(et, []):
                    sub.active = False


def bubble_formed_payload(group: dict[str, Any]) -> dict[str, Any]:
    return {
        "group_id": group["id"],
        "group_name": group["name"],
        "members": [
            {"id": m["id"], "name": m["name"], "avatar_url": m.get("avatar_url")}
            for m in group.get("members") or []
        ],
    }


def match_created_payload(match: dict[str, Any]) -> dict[str, Any]:
    return {
        "match_id": match["match_id"],
        "chat_room_id": match["chat_room_id"],
        "group_a_id": match["group_a_id"],
        "group_b_id": match["group_b_id"],
    }
