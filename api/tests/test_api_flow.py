import uuid

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

import app.main as m
from app import repo
from app.errors import Internal, Transient
from app.services import decisions, swipe_limit


def _h(member_id):
    return {"X-Actor-User-Id": member_id}


def _member(client, name):
    res = client.post("/members", json={"display_name": name})
    assert res.status_code == 200, res.text
    return res.json()["id"]


def _full_group(client, name, size=2):
    creator = _member(client, f"{name} lead")
    others = [_member(client, f"{name} {i}") for i in range(size - 1)]
    res = client.post("/groups", json={"name": name, "target_size": size, "member_ids": others}, headers=_h(creator))
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "full"
    return body, creator


def test_formation_like_and_match_flow():
    with TestClient(m.app) as client:
        lead = _member(client, "Ava")
        group = client.post("/groups", json={"name": "Brunch Crew", "target_size": 2}, headers=_h(lead)).json()
        assert group["status"] == "forming"

        joiner = _member(client, "Ben")
        joined = client.post(f"/groups/{group['id']}/join", headers=_h(joiner))
        assert joined.status_code == 200
        assert joined.json()["formed"] is True
        assert joined.json()["group"]["is_complete"] is True

        late = _member(client, "Cal")
        assert client.post(f"/groups/{group['id']}/join", headers=_h(late)).status_code == 409

        other, other_lead = _full_group(client, "Board Gamers")

        page = client.get(f"/groups/{group['id']}/candidates", headers=_h(lead))
        assert page.status_code == 200
        assert [g["id"] for g in page.json()["candidates"]] == [other["id"]]

        first = client.post(f"/groups/{group['id']}/like/{other['id']}", headers=_h(lead))
        assert first.json() == {"matched": False, "match_id": None, "chat_room_id": None}

        badges = client.get(f"/groups/{other['id']}/badges", headers=_h(other_lead)).json()
        assert badges["likes"] == 1

        likes_you = client.get(f"/groups/{other['id']}/likes-you", headers=_h(other_lead)).json()
        assert [g["id"] for g in likes_you["groups"]] == [group["id"]]

        second = client.post(f"/groups/{other['id']}/like/{group['id']}", headers=_h(other_lead)).json()
        assert second["matched"] is True

        match = client.get(f"/matches/{second['match_id']}", headers=_h(joiner))
        assert match.status_code == 200
        assert match.json()["chat_room_id"] == second["chat_room_id"]
        assert client.get(f"/matches/{second['match_id']}", headers=_h(late)).status_code == 403

        matches = client.get(f"/groups/{group['id']}/matches", headers=_h(lead)).json()["matches"]
        assert [row["other_group_id"] for row in matches] == [other["id"]]

        assert client.get(f"/groups/{group['id']}/candidates", headers=_h(lead)).json()["candidates"] == []

        cleared = client.post(f"/groups/{other['id']}/badges/clear", headers=_h(other_lead)).json()
        assert (cleared["matches"], cleared["likes"]) == (0, 0)


def test_requests_require_a_member_actor():
    with TestClient(m.app) as client:
        group, lead = _full_group(client, "Climbers")
        outsider = _member(client, "Outsider")

        assert client.get(f"/groups/{group['id']}/candidates").status_code == 401
        bad = client.get(f"/groups/{group['id']}/candidates", headers={"X-Actor-User-Id": "nope"})
        assert bad.status_code == 400
        assert client.get(f"/groups/{group['id']}/candidates", headers=_h(outsider)).status_code == 403
        missing = client.get(f"/groups/{uuid.uuid4()}/candidates", headers=_h(lead))
        assert missing.status_code == 404


def test_error_mapping():
    with TestClient(m.app) as client:
        group, lead = _full_group(client, "Runners")
        other, _ = _full_group(client, "Swimmers")

        assert client.get(f"/groups/{group['id']}/candidates?page_size=0", headers=_h(lead)).status_code == 400
        assert client.post(f"/groups/{group['id']}/like/{group['id']}", headers=_h(lead)).status_code == 409

        client.post(f"/groups/{group['id']}/pass/{other['id']}", headers=_h(lead))
        liked_after_pass = client.post(f"/groups/{group['id']}/like/{other['id']}", headers=_h(lead))
        assert liked_after_pass.status_code == 409
        assert liked_after_pass.json()["detail"]["code"] == "invalid_transition"


def test_swipe_limit_maps_to_429(monkeypatch):
    monkeypatch.setattr(swipe_limit, "DAILY_SWIPE_LIMIT", 1)
    with TestClient(m.app) as client:
        group, lead = _full_group(client, "Bakers")
        a, _ = _full_group(client, "Painters")
        b, _ = _full_group(client, "Singers")

        assert client.post(f"/groups/{group['id']}/pass/{a['id']}", headers=_h(lead)).status_code == 200
        res = client.post(f"/groups/{group['id']}/like/{b['id']}", headers=_h(lead))

        assert res.status_code == 429
        detail = res.json()["detail"]
        assert detail["code"] == "limit_exceeded"
        assert detail["swipe_info"]["limit_reached"] is True

        info = client.get(f"/groups/{group['id']}/swipe-limit", headers=_h(lead)).json()
        assert info["remaining_swipes"] == 0


def test_session_routes():
    with TestClient(m.app) as client:
        group, lead = _full_group(client, "Hikers")
        a, _ = _full_group(client, "Cyclists")
        b, _ = _full_group(client, "Surfers")

        missing = client.post(f"/groups/{group['id']}/session/load-more", headers=_h(lead))
        assert missing.status_code == 500

        opened = client.get(f"/groups/{group['id']}/session", headers=_h(lead)).json()
        assert [g["id"] for g in opened["groups"]] == [a["id"], b["id"]]
        assert opened["has_more"] is False

        liked = client.post(f"/groups/{group['id']}/session/like/{a['id']}", headers=_h(lead)).json()
        assert liked["matched"] is False
        assert [g["id"] for g in liked["session"]["groups"]] == [b["id"]]

        refetched = client.post(f"/groups/{group['id']}/session/refetch", headers=_h(lead)).json()
        assert [g["id"] for g in refetched["groups"]] == [b["id"]]

        closed = client.delete(f"/groups/{group['id']}/session", headers=_h(lead)).json()
        assert closed == {"group_id": group["id"], "closed": True}


def test_invitation_routes():
    with TestClient(m.app) as client:
        lead = _member(client, "Host")
        invitee = _member(client, "Guest")
        group = client.post("/groups", json={"name": "Karaoke", "target_size": 3}, headers=_h(lead)).json()

        invited = client.post(f"/groups/{group['id']}/invite", json={"member_id": invitee}, headers=_h(lead))
        assert invited.json()["status"] == "invited"

        declined = client.post(f"/groups/{group['id']}/decline", headers=_h(invitee))
        assert declined.json()["status"] == "declined"

        dissolved = client.post(f"/groups/{group['id']}/dissolve", headers=_h(lead))
        assert dissolved.json()["status"] == "dissolved"
        assert client.post(f"/groups/{group['id']}/join", headers=_h(invitee)).status_code == 409


def test_health_routes():
    with TestClient(m.app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/_scaffold/match/health").json() == {"status": "ok", "module": "match"}


def test_session_like_surfaces_broken_invariant_as_500(monkeypatch):
    def broken_like(bus, from_group_id, to_group_id, now=None):
        raise Internal("2 matches recorded for pair", from_group_id=from_group_id, to_group_id=to_group_id)

    with TestClient(m.app) as client:
        group, lead = _full_group(client, "Potters")
        other, _ = _full_group(client, "Weavers")
        client.get(f"/groups/{group['id']}/session", headers=_h(lead))

        monkeypatch.setattr(decisions, "like", broken_like)
        res = client.post(f"/groups/{group['id']}/session/like/{other['id']}", headers=_h(lead))

        assert res.status_code == 500
        assert res.json()["detail"]["code"] == "internal"


def test_get_match_maps_store_outage_to_503(monkeypatch):
    with TestClient(m.app) as client:
        group, lead = _full_group(client, "Chess Club")
        other, other_lead = _full_group(client, "Go Club")
        client.post(f"/groups/{group['id']}/like/{other['id']}", headers=_h(lead))
        match_id = client.post(f"/groups/{other['id']}/like/{group['id']}", headers=_h(other_lead)).json()["match_id"]

        def store_down(group_id):
            raise Transient("Candidate store is temporarily unavailable")

        monkeypatch.setattr(repo, "get_group", store_down)
        res = client.get(f"/matches/{match_id}", headers=_h(lead))

        assert res.status_code == 503
        assert res.headers["Retry-After"] == "1"
        assert res.json()["detail"]["code"] == "transient"
