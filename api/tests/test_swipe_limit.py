from datetime import datetime, timezone

import pytest

from app.errors import LimitExceeded
from app.services import decisions, swipe_limit


def test_day_starts_at_local_midnight():
    # 03:00 UTC on a summer day is still the previous evening in New York
    now = datetime(2026, 7, 10, 3, 0, tzinfo=timezone.utc)

    assert swipe_limit.swipe_day_start(now) == datetime(2026, 7, 9, 4, 0, tzinfo=timezone.utc)
    assert swipe_limit.next_reset(now) == datetime(2026, 7, 10, 4, 0, tzinfo=timezone.utc)


def test_build_swipe_info_counts_down():
    now = datetime(2026, 1, 15, 17, 0, tzinfo=timezone.utc)
    info = swipe_limit.build_swipe_info(48, now, daily_limit=50)

    assert info["remaining_swipes"] == 2
    assert info["used_swipes"] == 48
    assert info["can_swipe"] is True
    assert info["reset_time"] == "2026-01-16T05:00:00+00:00"
    assert swipe_limit.build_swipe_info(60, now, daily_limit=50)["remaining_swipes"] == 0


def test_likes_and_passes_share_the_daily_budget(bus, make_group, monkeypatch):
    monkeypatch.setattr(swipe_limit, "DAILY_SWIPE_LIMIT", 2)
    me = make_group()
    a, b, c = make_group(), make_group(), make_group()

    decisions.like(bus, me["id"], a["id"])
    decisions.pass_group(me["id"], b["id"])

    with pytest.raises(LimitExceeded) as exc:
        decisions.like(bus, me["id"], c["id"])
    assert exc.value.swipe_info["limit_reached"] is True
    assert exc.value.swipe_info["remaining_swipes"] == 0

    info = swipe_limit.get_swipe_limit(me["id"])
    assert info["used_swipes"] == 2
    assert info["can_swipe"] is False


def test_repeat_decisions_do_not_consume_budget(bus, make_group, monkeypatch):
    monkeypatch.setattr(swipe_limit, "DAILY_SWIPE_LIMIT", 1)
    me = make_group()
    other = make_group()

    decisions.like(bus, me["id"], other["id"])
    decisions.like(bus, me["id"], other["id"])

    assert swipe_limit.get_swipe_limit(me["id"])["used_swipes"] == 1


def test_reciprocal_like_over_budget_is_rejected(bus, make_group, monkeypatch):
    monkeypatch.setattr(swipe_limit, "DAILY_SWIPE_LIMIT", 1)
    me = make_group()
    liker = make_group()
    spent = make_group()
    decisions.like(bus, liker["id"], me["id"])
    decisions.pass_group(me["id"], spent["id"])

    with pytest.raises(LimitExceeded):
        decisions.like(bus, me["id"], liker["id"])
    assert decisions.list_matches(me["id"]) == []
