from fastapi import APIRouter, FastAPI

from .groups import router as groups_router, scaffold_router as groups_scaffold_router
from .match import router as match_router, scaffold_router as match_scaffold_router
from .members import router as members_router, scaffold_router as members_scaffold_router
from .session import router as session_router, scaffold_router as session_scaffold_router


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(members_router, tags=["members"])
    app.include_router(groups_router, tags=["groups"])
    app.include_router(match_router, tags=["matches"])
    app.include_router(session_router, tags=["session"])

    app.include_router(members_scaffold_router, prefix="/_scaffold/members", tags=["scaffold-members"])
    app.include_router(groups_scaffold_router, prefix="/_scaffold/groups", tags=["scaffold-groups"])
    app.include_router(match_scaffold_router, prefix="/_scaffold/match", tags=["scaffold-match"])
    app.include_router(session_scaffold_router, prefix="/_scaffold/session", tags=["scaffold-session"])


__all__ = ["include_modular_routers", "APIRouter"]
