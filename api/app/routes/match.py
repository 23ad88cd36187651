from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..config import CANDIDATE_PAGE_SIZE, INCOMING_LIKES_PAGE_SIZE, RL_LIKE_LIMIT, RL_PASS_LIMIT, RL_WINDOW_SECONDS
from ..container import Container
from ..deps import get_container, require_actor
from ..errors import MatchmakingError, NotFound
from ..http_helpers import http_error, require_group_member
from ..schemas import (
    CandidatePageResponse,
    IncomingLikesResponse,
    LikeResponse,
    MatchListResponse,
    MatchResponse,
    PassResponse,
    SwipeLimitResponse,
)
from ..services import candidates, decisions
from ..services.rate_limit import rate_limit_dependency
from ..services.swipe_limit import get_swipe_limit

router = APIRouter()
scaffold_router = APIRouter()

RL_LIKE = rate_limit_dependency("group_like", RL_LIKE_LIMIT, RL_WINDOW_SECONDS)
RL_PASS = rate_limit_dependency("group_pass", RL_PASS_LIMIT, RL_WINDOW_SECONDS)


@scaffold_router.get("/health")
def match_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "match"}


@router.get("/groups/{group_id}/candidates", response_model=CandidatePageResponse)
def list_candidates(
    group_id: str,
    page_size: int = CANDIDATE_PAGE_SIZE,
    cursor: str | None = None,
    actor_id: str = Depends(require_actor),
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        return candidates.fetch_candidates(group_id, page_size=page_size, cursor=cursor).to_dict()
    except (MatchmakingError, ValueError) as exc:
        raise http_error(exc)


@router.post("/groups/{group_id}/like/{target_group_id}", response_model=LikeResponse)
def like_group(
    group_id: str,
    target_group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
    _: None = RL_LIKE,
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        return decisions.like(container.event_bus, group_id, target_group_id).to_dict()
    except MatchmakingError as exc:
        raise http_error(exc)


@router.post("/groups/{group_id}/pass/{target_group_id}", response_model=PassResponse)
def pass_group(
    group_id: str,
    target_group_id: str,
    actor_id: str = Depends(require_actor),
    _: None = RL_PASS,
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        decisions.pass_group(group_id, target_group_id)
    except MatchmakingError as exc:
        raise http_error(exc)
    return {"status": "passed"}


@router.get("/groups/{group_id}/likes-you", response_model=IncomingLikesResponse)
def list_incoming_likes(
    group_id: str,
    limit: int = INCOMING_LIKES_PAGE_SIZE,
    offset: int = 0,
    actor_id: str = Depends(require_actor),
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        return candidates.list_incoming_likes(group_id, limit=limit, offset=offset)
    except (MatchmakingError, ValueError) as exc:
        raise http_error(exc)


@router.get("/groups/{group_id}/matches", response_model=MatchListResponse)
def list_matches(group_id: str, actor_id: str = Depends(require_actor)) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        rows = decisions.list_matches(group_id)
    except MatchmakingError as exc:
        raise http_error(exc)
    return {"matches": rows}


@router.get("/groups/{group_id}/swipe-limit", response_model=SwipeLimitResponse)
def swipe_limit(group_id: str, actor_id: str = Depends(require_actor)) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        return get_swipe_limit(group_id)
    except MatchmakingError as exc:
        raise http_error(exc)


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: str, actor_id: str = Depends(require_actor)) -> dict[str, Any]:
    member_ids: set[str] = set()
    try:
        match = repo.get_match(match_id)
        if match is None:
            raise NotFound("match not found", match_id=match_id)
        for gid in (match["group_a_id"], match["group_b_id"]):
            group = repo.get_group(gid) or {}
            member_ids.update(m["id"] for m in group.get("members") or [])
    except MatchmakingError as exc:
        raise http_error(exc)
    if actor_id not in member_ids:
        raise HTTPException(status_code=403, detail="Forbidden")
    return match
