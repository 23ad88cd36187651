from typing import Any

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from ..container import Container
from ..deps import get_container, require_actor
from ..errors import MatchmakingError
from ..http_helpers import http_error, require_group_member
from ..schemas import SessionLikeResponse, SessionResponse

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def session_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "session"}


def _session(container: Container, group_id: str):
    try:
        return container.sessions.require(group_id)
    except MatchmakingError as exc:
        raise http_error(exc)


@router.get("/groups/{group_id}/session", response_model=SessionResponse)
async def open_session(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    await run_in_threadpool(require_group_member, group_id, actor_id)
    session = await container.sessions.open(group_id)
    return session.snapshot().to_dict()


@router.post("/groups/{group_id}/session/load-more", response_model=SessionResponse)
async def load_more(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    await run_in_threadpool(require_group_member, group_id, actor_id)
    session = _session(container, group_id)
    await session.load_more()
    return session.snapshot().to_dict()


@router.post("/groups/{group_id}/session/like/{target_group_id}", response_model=SessionLikeResponse)
async def like_from_session(
    group_id: str,
    target_group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    await run_in_threadpool(require_group_member, group_id, actor_id)
    session = _session(container, group_id)
    try:
        matched = await session.like_group(target_group_id)
    except MatchmakingError as exc:
        raise http_error(exc)
    return {"matched": matched, "session": session.snapshot().to_dict()}


@router.post("/groups/{group_id}/session/pass/{target_group_id}", response_model=SessionResponse)
async def pass_from_session(
    group_id: str,
    target_group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    await run_in_threadpool(require_group_member, group_id, actor_id)
    session = _session(container, group_id)
    try:
        await session.pass_group(target_group_id)
    except MatchmakingError as exc:
        raise http_error(exc)
    return session.snapshot().to_dict()


@router.post("/groups/{group_id}/session/refetch", response_model=SessionResponse)
async def refetch(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    await run_in_threadpool(require_group_member, group_id, actor_id)
    session = _session(container, group_id)
    await session.refetch()
    return session.snapshot().to_dict()


@router.delete("/groups/{group_id}/session")
async def close_session(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    await run_in_threadpool(require_group_member, group_id, actor_id)
    return {"group_id": group_id, "closed": container.sessions.discard(group_id)}
