from typing import Any

from pydantic import BaseModel, Field


class CreateMemberRequest(BaseModel):
    display_name: str
    avatar_url: str | None = None


class MemberResponse(BaseModel):
    id: str
    name: str
    avatar_url: str | None = None


class CreateGroupRequest(BaseModel):
    name: str
    target_size: int
    member_ids: list[str] = Field(default_factory=list)
    group_gender: str | None = None
    preferred_gender: str | None = None


class GroupResponse(BaseModel):
    id: str
    name: str
    target_size: int
    status: str
    group_gender: str | None = None
    preferred_gender: str | None = None
    created_by: str
    member_count: int
    members: list[MemberResponse] = Field(default_factory=list)
    is_complete: bool
    completed_at: str | None = None
    matched_at: str | None = None


class JoinGroupResponse(BaseModel):
    group: GroupResponse
    formed: bool


class InviteRequest(BaseModel):
    member_id: str


class InvitationResponse(BaseModel):
    group_id: str
    member_id: str
    status: str


class CandidatePageResponse(BaseModel):
    candidates: list[GroupResponse]
    next_cursor: str | None = None
    has_more: bool


class IncomingLikesResponse(BaseModel):
    groups: list[GroupResponse]
    has_more: bool
    next_offset: int


class LikeResponse(BaseModel):
    matched: bool
    match_id: str | None = None
    chat_room_id: str | None = None


class PassResponse(BaseModel):
    status: str = "passed"


class MatchResponse(BaseModel):
    match_id: str
    chat_room_id: str
    group_a_id: str
    group_b_id: str
    created_at: str | None = None
    other_group_id: str | None = None


class SwipeLimitResponse(BaseModel):
    remaining_swipes: int
    used_swipes: int
    daily_limit: int
    can_swipe: bool
    reset_time: str


class BadgeResponse(BaseModel):
    group_id: str
    matches: int
    likes: int


class SessionResponse(BaseModel):
    group_id: str
    groups: list[dict[str, Any]]
    cursor: str | None = None
    is_loading: bool
    is_loading_more: bool
    error: str | None = None
    error_code: str | None = None
    has_more: bool
    swipe_info: dict[str, Any] | None = None


class SessionLikeResponse(BaseModel):
    matched: bool
    session: SessionResponse


class MatchListResponse(BaseModel):
    matches: list[MatchResponse]
