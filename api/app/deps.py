import uuid

from fastapi import Header, HTTPException, Request

from .container import Container, require_container
from .errors import MissingDependency


def parse_actor_user_id(raw_actor_user_id: str | None) -> str | None:
    if not raw_actor_user_id:
        return None
    value = raw_actor_user_id.strip()
    if not value:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Actor-User-Id must be a valid UUID")


def require_actor(x_actor_user_id: str | None = Header(default=None)) -> str:
    actor = parse_actor_user_id(x_actor_user_id)
    if not actor:
        raise HTTPException(status_code=401, detail="X-Actor-User-Id header is required")
    return actor


def get_container(request: Request) -> Container:
    try:
        return require_container(request.app.state)
    except MissingDependency as exc:
        raise HTTPException(status_code=500, detail=exc.detail)
