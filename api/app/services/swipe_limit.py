from datetime import datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from app import repo
from app.config import DAILY_SWIPE_LIMIT, SWIPE_TIMEZONE
from app.errors import LimitExceeded, NotFound


def swipe_day_start(now: datetime, tz: str = SWIPE_TIMEZONE) -> datetime:
    local_now = now.astimezone(ZoneInfo(tz))
    local_midnight = datetime.combine(local_now.date(), time.min, tzinfo=ZoneInfo(tz))
    return local_midnight.astimezone(timezone.utc)


def next_reset(now: datetime, tz: str = SWIPE_TIMEZONE) -> datetime:
    local_now = now.astimezone(ZoneInfo(tz))
    tomorrow = local_now.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=ZoneInfo(tz)).astimezone(timezone.utc)


def build_swipe_info(used: int, now: datetime, daily_limit: int | None = None) -> dict[str, Any]:
    if daily_limit is None:
        daily_limit = DAILY_SWIPE_LIMIT
    remaining = max(0, daily_limit - used)
    return {
        "remaining_swipes": remaining,
        "used_swipes": used,
        "daily_limit": daily_limit,
        "can_swipe": remaining > 0,
        "reset_time": next_reset(now).isoformat(),
    }


def enforce_swipe_limit(db, group_id: str, now: datetime) -> dict[str, Any]:
    used = repo.count_swipes_since(db, group_id, swipe_day_start(now))
    info = build_swipe_info(used, now)
    if not info["can_swipe"]:
        raise LimitExceeded(
            f"daily swipe limit of {info['daily_limit']} reached",
            swipe_info={**info, "limit_reached": True},
            group_id=group_id,
        )
    return info


def get_swipe_limit(group_id: str, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    with repo.store_transaction() as db:
        if repo.get_group_row(db, group_id) is None:
            raise NotFound("group not found", group_id=group_id)
        used = repo.count_swipes_since(db, group_id, swipe_day_start(now))
    return build_swipe_info(used, now)
