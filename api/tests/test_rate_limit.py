import pytest

pytest.importorskip("fastapi")
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.services.rate_limit import SlidingWindowLimiter, rate_limit_dependency


def test_limiter_blocks_until_the_window_slides():
    clock = {"now": 100.0}
    limiter = SlidingWindowLimiter(clock=lambda: clock["now"])

    assert limiter.hit("k", limit=2, window_seconds=60) == 0
    clock["now"] = 110.0
    assert limiter.hit("k", limit=2, window_seconds=60) == 0
    assert limiter.hit("k", limit=2, window_seconds=60) == 50
    assert limiter.hit("other", limit=2, window_seconds=60) == 0

    clock["now"] = 161.0
    assert limiter.hit("k", limit=2, window_seconds=60) == 0


def test_limiter_forgets_expired_keys():
    clock = {"now": 0.0}
    limiter = SlidingWindowLimiter(clock=lambda: clock["now"])
    for i in range(5):
        limiter.hit(f"group:{i}", limit=1, window_seconds=10)
    assert limiter.tracked_keys() == 5

    clock["now"] = 11.0
    limiter.hit("group:new", limit=1, window_seconds=10)

    assert limiter.tracked_keys() == 1


def test_dependency_keys_on_group_path_param():
    app = FastAPI()

    @app.post("/groups/{group_id}/ping")
    def ping(group_id: str, _: None = rate_limit_dependency("test_ping", 1, 60)):
        return {"ok": True}

    client = TestClient(app)
    assert client.post("/groups/g1/ping").status_code == 200
    limited = client.post("/groups/g1/ping")
    assert limited.status_code == 429
    assert "Retry-After" in limited.headers
    assert client.post("/groups/g2/ping").status_code == 200
