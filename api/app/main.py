import logging
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from . import models  # noqa: F401  registers tables on Base.metadata
from .config import ALLOWED_ORIGINS, DB_WAIT_ATTEMPTS, DB_WAIT_DELAY_SECONDS
from .container import build_container
from .database import Base, SessionLocal, engine
from .routes import include_modular_routers

logger = logging.getLogger(__name__)

app = FastAPI(title="Bubble Match API")
include_modular_routers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def wait_for_db(max_attempts: int = DB_WAIT_ATTEMPTS, delay_seconds: float = DB_WAIT_DELAY_SECONDS) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    create_tables()
    app.state.container = build_container()
    logger.info("[STARTUP] matchmaking container installed")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    container = getattr(app.state, "container", None)
    if container is None:
        return
    await container.sessions.close_all()
    container.badges.detach()
    container.event_bus.clear()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
