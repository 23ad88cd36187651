import threading
import time
from collections import deque
from typing import Callable

from fastapi import Depends, HTTPException, Request


class SlidingWindowLimiter:
    """Per-key request timestamps over a sliding window; expired keys are dropped."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: dict[str, tuple[int, deque[float]]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: int) -> int:
        """Record one request for ``key``; returns 0 if allowed, else seconds until a slot frees."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            _, hits = self._hits.setdefault(key, (window_seconds, deque()))
            if len(hits) >= limit:
                return max(1, int(hits[0] + window_seconds - now))
            hits.append(now)
            return 0

    def _prune(self, now: float) -> None:
        for key in list(self._hits):
            window_seconds, hits = self._hits[key]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = SlidingWindowLimiter()


def _caller_key(request: Request) -> str:
    group_id = request.path_params.get("group_id")
    if group_id:
        return f"group:{group_id}"
    actor = request.headers.get("x-actor-user-id", "").strip()
    if actor:
        return f"actor:{actor}"
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    def _dep(request: Request) -> None:
        retry_after = limiter.hit(f"{route_key}:{_caller_key(request)}", limit, window_seconds)
        if retry_after:
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {retry_after}s",
                headers={"Retry-After": str(retry_after)},
            )

    return Depends(_dep)
