"""Composition root: the long-lived objects shared by every request."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from app.config import CANDIDATE_PAGE_SIZE, PREFETCH_THRESHOLD, SESSION_IDLE_TTL_SECONDS
from app.errors import MissingDependency
from app.services.badges import BadgeCounter
from app.services.event_bus import EventBus
from app.services.session import Gateway, MatchmakingGateway, MatchmakingSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """One live matchmaking session per requesting group.

    Sessions untouched for ``idle_ttl_seconds`` and sessions closed elsewhere are evicted
    whenever the registry is accessed.
    """

    def __init__(
        self,
        gateway_factory: Callable[[], Gateway],
        *,
        idle_ttl_seconds: float = SESSION_IDLE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway_factory = gateway_factory
        self._idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, MatchmakingSession] = {}
        self._last_used: dict[str, float] = {}

    def __contains__(self, group_id: str) -> bool:
        return group_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _touch(self, group_id: str) -> None:
        self._last_used[group_id] = self._clock()

    def evict_idle(self) -> int:
        now = self._clock()
        stale = [
            gid
            for gid, session in self._sessions.items()
            if session.closed or now - self._last_used.get(gid, now) > self._idle_ttl_seconds
        ]
        for gid in stale:
            self.discard(gid)
        if stale:
            logger.info("[SESSION] evicted %s idle sessions", len(stale))
        return len(stale)

    def require(self, group_id: str) -> MatchmakingSession:
        self.evict_idle()
        session = self._sessions.get(group_id)
        if session is None:
            raise MissingDependency("no matchmaking session is open for this group", group_id=group_id)
        self._touch(group_id)
        return session

    async def open(self, group_id: str) -> MatchmakingSession:
        self.evict_idle()
        session = self._sessions.get(group_id)
        if session is None:
            session = MatchmakingSession(
                group_id,
                self._gateway_factory(),
                page_size=CANDIDATE_PAGE_SIZE,
                prefetch_threshold=PREFETCH_THRESHOLD,
            )
            self._sessions[group_id] = session
            logger.debug("[SESSION] opened group_id=%s", group_id)
        self._touch(group_id)
        await session.start()
        return session

    def discard(self, group_id: str) -> bool:
        session = self._sessions.pop(group_id, None)
        self._last_used.pop(group_id, None)
        if session is None:
            return False
        session.close()
        logger.debug("[SESSION] discarded group_id=%s", group_id)
        return True

    async def close_all(self) -> None:
        for group_id in list(self._sessions):
            session = self._sessions.pop(group_id)
            self._last_used.pop(group_id, None)
            session.close()
            await session.drain()


@dataclass
class Container:
    event_bus: EventBus
    badges: BadgeCounter
    sessions: SessionRegistry = field(init=False)

    def __post_init__(self) -> None:
        self.sessions = SessionRegistry(lambda: MatchmakingGateway(self.event_bus))


def build_container() -> Container:
    bus = EventBus()
    badges = BadgeCounter()
    badges.attach(bus)
    return Container(event_bus=bus, badges=badges)


def require_container(state) -> Container:
    container = getattr(state, "container", None)
    if container is None:
        raise MissingDependency("matchmaking container is not installed on this application")
    return container
