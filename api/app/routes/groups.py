from typing import Any

from fastapi import APIRouter, Depends

from ..container import Container
from ..deps import get_container, require_actor
from ..errors import MatchmakingError
from ..http_helpers import http_error, require_group_member
from ..schemas import (
    BadgeResponse,
    CreateGroupRequest,
    GroupResponse,
    InvitationResponse,
    InviteRequest,
    JoinGroupResponse,
)
from ..services import formation

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def groups_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "groups"}


@router.post("/groups", response_model=GroupResponse)
def create_group(
    payload: CreateGroupRequest,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    try:
        return formation.create_group(
            container.event_bus,
            creator_id=actor_id,
            name=payload.name,
            target_size=payload.target_size,
            member_ids=payload.member_ids,
            group_gender=payload.group_gender,
            preferred_gender=payload.preferred_gender,
        )
    except (MatchmakingError, ValueError) as exc:
        raise http_error(exc)


@router.get("/groups/{group_id}", response_model=GroupResponse)
def get_group(group_id: str) -> dict[str, Any]:
    try:
        return formation.get_group(group_id)
    except MatchmakingError as exc:
        raise http_error(exc)


@router.post("/groups/{group_id}/join", response_model=JoinGroupResponse)
def join_group(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    try:
        return formation.join_group(container.event_bus, group_id, actor_id)
    except MatchmakingError as exc:
        raise http_error(exc)


@router.post("/groups/{group_id}/invite", response_model=InvitationResponse)
def invite_member(
    group_id: str,
    payload: InviteRequest,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    try:
        return formation.invite_member(container.event_bus, group_id, payload.member_id, invited_by=actor_id)
    except MatchmakingError as exc:
        raise http_error(exc)


@router.post("/groups/{group_id}/decline", response_model=InvitationResponse)
def decline_invitation(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    try:
        return formation.decline_invitation(container.event_bus, group_id, actor_id)
    except MatchmakingError as exc:
        raise http_error(exc)


@router.post("/groups/{group_id}/dissolve", response_model=GroupResponse)
def dissolve_group(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    try:
        group = formation.dissolve_group(group_id, actor_id)
    except MatchmakingError as exc:
        raise http_error(exc)
    container.sessions.discard(group_id)
    return group


@router.get("/groups/{group_id}/badges", response_model=BadgeResponse)
def get_badges(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    return {"group_id": group_id, **container.badges.counts(group_id)}


@router.post("/groups/{group_id}/badges/clear", response_model=BadgeResponse)
def clear_badges(
    group_id: str,
    actor_id: str = Depends(require_actor),
    container: Container = Depends(get_container),
) -> dict[str, Any]:
    require_group_member(group_id, actor_id)
    container.badges.clear(group_id)
    return {"group_id": group_id, **container.badges.counts(group_id)}
