"""Per-group matchmaking session: the browsing state one requesting group sees.

The session owns transient presentation state only (loaded candidates, the keyset cursor,
loading flags, the last error and the set of candidates decided locally). Authoritative
invariants live in the store; the session removes decided candidates optimistically and
never puts them back, even if the store rejects the decision.

All mutations of local state happen on the event loop. A monotonically increasing
generation guards every continuation: a refetch or close bumps it, and any store reply
that arrives for an older generation is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from starlette.concurrency import run_in_threadpool

from app.config import CANDIDATE_PAGE_SIZE, PREFETCH_THRESHOLD
from app.errors import Internal, InvalidState, LimitExceeded, MatchmakingError
from app.services import candidates, decisions
from app.services.candidates import CandidatePage
from app.services.decisions import LikeResult
from app.services.event_bus import EventBus

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    async def fetch_candidates(self, group_id: str, page_size: int, cursor: str | None) -> CandidatePage: ...

    async def like(self, from_group_id: str, to_group_id: str) -> LikeResult: ...

    async def pass_group(self, from_group_id: str, to_group_id: str) -> None: ...


class MatchmakingGateway:
    """Async facade over the blocking store-backed services."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus

    async def fetch_candidates(self, group_id: str, page_size: int, cursor: str | None) -> CandidatePage:
        return await run_in_threadpool(candidates.fetch_candidates, group_id, page_size, cursor)

    async def like(self, from_group_id: str, to_group_id: str) -> LikeResult:
        return await run_in_threadpool(decisions.like, self.bus, from_group_id, to_group_id)

    async def pass_group(self, from_group_id: str, to_group_id: str) -> None:
        await run_in_threadpool(decisions.pass_group, from_group_id, to_group_id)


@dataclass(frozen=True)
class SessionState:
    group_id: str
    groups: tuple[dict[str, Any], ...]
    cursor: str | None
    is_loading: bool
    is_loading_more: bool
    error: str | None
    error_code: str | None
    has_more: bool
    swipe_info: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["groups"] = list(self.groups)
        return out


class MatchmakingSession:
    def __init__(
        self,
        group_id: str,
        gateway: Gateway,
        *,
        page_size: int = CANDIDATE_PAGE_SIZE,
        prefetch_threshold: int = PREFETCH_THRESHOLD,
    ) -> None:
        self.group_id = group_id
        self._gateway = gateway
        self._page_size = page_size
        self._prefetch_threshold = prefetch_threshold

        self._groups: list[dict[str, Any]] = []
        self._cursor: str | None = None
        self._has_more = True
        self._is_loading = False
        self._is_loading_more = False
        self._error: str | None = None
        self._error_code: str | None = None
        self._swipe_info: dict[str, Any] | None = None

        self._decided: set[str] = set()
        self._generation = 0
        self._loaded_once = False
        self._closed = False
        self._load_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    # --- state ------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> SessionState:
        return SessionState(
            group_id=self.group_id,
            groups=tuple(dict(g) for g in self._groups),
            cursor=self._cursor,
            is_loading=self._is_loading,
            is_loading_more=self._is_loading_more,
            error=self._error,
            error_code=self._error_code,
            has_more=self._has_more,
            swipe_info=dict(self._swipe_info) if self._swipe_info else None,
        )

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _fail(self, exc: MatchmakingError) -> None:
        self._error = exc.detail
        self._error_code = exc.code
        if isinstance(exc, LimitExceeded):
            self._swipe_info = dict(exc.swipe_info)

    # --- loading ----------------------------------------------------------

    async def start(self) -> None:
        """Initial load; a no-op once the first page has been requested."""
        if self._loaded_once:
            await self._await_in_flight()
            return
        await self._load(initial=True)

    async def load_more(self) -> None:
        if self._closed or not self._has_more:
            return
        if await self._await_in_flight():
            return
        await self._load(initial=not self._loaded_once)

    async def refetch(self) -> None:
        if self._closed:
            return
        self._generation += 1
        self._groups = []
        self._cursor = None
        self._has_more = True
        self._error = None
        self._error_code = None
        self._is_loading_more = False
        self._load_task = None
        await self._load(initial=True)

    async def _await_in_flight(self) -> bool:
        task = self._load_task
        if task is None or task.done():
            return False
        # coalesced: the caller shares the outcome of the load already running
        await asyncio.shield(task)
        return True

    async def _load(self, *, initial: bool) -> None:
        self._loaded_once = True
        task = asyncio.ensure_future(self._run_load(initial, self._generation))
        self._load_task = task
        await asyncio.shield(task)

    async def _run_load(self, initial: bool, generation: int) -> None:
        if initial:
            self._is_loading = True
        else:
            self._is_loading_more = True
        self._error = None
        self._error_code = None
        cursor = None if initial else self._cursor

        try:
            page = await self._gateway.fetch_candidates(self.group_id, self._page_size, cursor)
        except MatchmakingError as exc:
            if self._is_current(generation):
                self._fail(exc)
                if initial:
                    self._groups = []
            log = logger.error if isinstance(exc, Internal) else logger.warning
            log("[SESSION] load failed group_id=%s initial=%s error=%s", self.group_id, initial, exc.code)
            return
        finally:
            if self._is_current(generation):
                self._is_loading = False
                self._is_loading_more = False

        if not self._is_current(generation):
            logger.debug("[SESSION] dropping stale page group_id=%s", self.group_id)
            return

        known = set() if initial else {g["id"] for g in self._groups}
        fresh = [g for g in page.candidates if g["id"] not in self._decided and g["id"] not in known]
        if initial:
            self._groups = fresh
        else:
            self._groups.extend(fresh)
        self._cursor = page.next_cursor
        self._has_more = page.has_more

    # --- decisions --------------------------------------------------------

    def _remove_local(self, target_group_id: str) -> None:
        if self._closed:
            raise InvalidState("matchmaking session was closed", group_id=self.group_id)
        self._decided.add(target_group_id)
        self._groups = [g for g in self._groups if g["id"] != target_group_id]
        if self._has_more and len(self._groups) <= self._prefetch_threshold:
            self._spawn(self.load_more())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def like_group(self, target_group_id: str) -> bool:
        """Like a candidate; returns whether the like completed a match.

        The candidate is removed before the store round trip and stays removed on failure,
        which leaves a recoverable error on the session instead of re-offering it.
        """
        self._remove_local(target_group_id)
        generation = self._generation
        try:
            result = await self._gateway.like(self.group_id, target_group_id)
        except Internal as exc:
            if self._is_current(generation):
                self._fail(exc)
            logger.error(
                "[SESSION] like hit a broken invariant group_id=%s target=%s detail=%s context=%s",
                self.group_id,
                target_group_id,
                exc.detail,
                exc.context,
            )
            raise
        except MatchmakingError as exc:
            if self._is_current(generation):
                self._fail(exc)
            logger.warning(
                "[SESSION] like failed group_id=%s target=%s error=%s", self.group_id, target_group_id, exc.code
            )
            return False
        return result.matched

    async def pass_group(self, target_group_id: str) -> None:
        self._remove_local(target_group_id)
        self._spawn(self._record_pass(target_group_id))

    async def _record_pass(self, target_group_id: str) -> None:
        generation = self._generation
        try:
            await self._gateway.pass_group(self.group_id, target_group_id)
        except Internal as exc:
            logger.error(
                "[SESSION] pass hit a broken invariant group_id=%s target=%s detail=%s context=%s",
                self.group_id,
                target_group_id,
                exc.detail,
                exc.context,
            )
        except MatchmakingError as exc:
            if isinstance(exc, LimitExceeded) and self._is_current(generation):
                self._swipe_info = dict(exc.swipe_info)
            logger.warning(
                "[SESSION] pass not recorded group_id=%s target=%s error=%s", self.group_id, target_group_id, exc.code
            )

    # --- lifecycle --------------------------------------------------------

    async def drain(self) -> None:
        """Wait for fire-and-forget work (passes, prefetches) started by this session."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def close(self) -> None:
        self._closed = True
        self._generation += 1
