from typing import Any

from fastapi import APIRouter

from ..errors import MatchmakingError
from ..http_helpers import http_error
from ..schemas import CreateMemberRequest, MemberResponse
from ..services import formation

router = APIRouter()
scaffold_router = APIRouter()


@scaffold_router.get("/health")
def members_scaffold_health() -> dict[str, str]:
    return {"status": "ok", "module": "members"}


@router.post("/members", response_model=MemberResponse)
def create_member(payload: CreateMemberRequest) -> dict[str, Any]:
    try:
        return formation.create_member(payload.display_name, payload.avatar_url)
    except (MatchmakingError, ValueError) as exc:
        raise http_error(exc)


@router.get("/members/{member_id}", response_model=MemberResponse)
def get_member(member_id: str) -> dict[str, Any]:
    try:
        return formation.get_member(member_id)
    except MatchmakingError as exc:
        raise http_error(exc)
