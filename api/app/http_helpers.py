import logging
from typing import Any

from fastapi import HTTPException

from . import repo
from .errors import (
    Internal,
    InvalidState,
    InvalidTransition,
    LimitExceeded,
    MatchmakingError,
    MissingDependency,
    NotFound,
    Transient,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[MatchmakingError], int]] = [
    (NotFound, 404),
    (InvalidState, 409),
    (InvalidTransition, 409),
    (LimitExceeded, 429),
    (Transient, 503),
    (Internal, 500),
    (MissingDependency, 500),
]


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValueError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, Internal):
        logger.error("[INVARIANT] %s context=%s", exc.detail, exc.context)
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    detail: dict[str, Any] = {"code": getattr(exc, "code", "error"), "message": getattr(exc, "detail", str(exc))}
    headers = None
    if isinstance(exc, LimitExceeded):
        detail["swipe_info"] = exc.swipe_info
    if isinstance(exc, Transient):
        headers = {"Retry-After": "1"}
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def require_group_member(group_id: str, member_id: str) -> dict[str, Any]:
    """The group, provided ``member_id`` is one of its committed members."""
    try:
        group = repo.get_group(group_id)
    except MatchmakingError as exc:
        raise http_error(exc)
    if group is None:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "group not found"})
    if member_id not in {m["id"] for m in group["members"]}:
        raise HTTPException(status_code=403, detail="Forbidden")
    return group
