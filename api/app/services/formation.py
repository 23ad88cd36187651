import logging
from typing import Any, Callable

from app import repo
from app.config import GENDER_VALUES, GROUP_SIZES
from app.errors import InvalidState, InvalidTransition, NotFound
from app.services.event_bus import (
    BUBBLE_FORMED,
    GROUP_MEMBER_JOINED,
    INVITATION_DECLINED,
    NEW_INVITATION,
    EventBus,
    bubble_formed_payload,
)
from app.services.state_machine import formation_transition

logger = logging.getLogger(__name__)


def _normalize_gender(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    if v not in GENDER_VALUES:
        raise ValueError(f"gender must be one of: {', '.join(sorted(GENDER_VALUES))}")
    return v


def _clean_name(value: Any, field: str = "name") -> str:
    name = str(value or "").strip()
    if not name:
        raise ValueError(f"{field} is required")
    if len(name) > 80:
        raise ValueError(f"{field} must be 80 characters or fewer")
    return name


def _require_member(db, member_id: str):
    member = repo.get_member_row(db, member_id, for_update=True)
    if member is None:
        raise NotFound("member not found", member_id=member_id)
    return member


def _require_free(db, member_id: str, group_id: str | None = None) -> None:
    other = repo.active_group_for_member(db, member_id, exclude_group_id=group_id)
    if other:
        raise InvalidTransition("member already belongs to an active group", member_id=member_id, group_id=other)


def _announce(bus: EventBus, group: dict[str, Any], joined: list[str], fired: bool) -> None:
    for member_id in joined:
        bus.publish(
            GROUP_MEMBER_JOINED,
            {"group_id": group["id"], "member_id": member_id, "member_count": group["member_count"]},
        )
    if fired:
        logger.info("[FORMATION] bubble formed group_id=%s size=%s", group["id"], group["member_count"])
        bus.publish(BUBBLE_FORMED, bubble_formed_payload(group))


def create_member(display_name: str, avatar_url: str | None = None) -> dict[str, Any]:
    display_name = _clean_name(display_name, "display_name")
    avatar_url = str(avatar_url).strip() if avatar_url else None
    with repo.store_transaction() as db:
        return repo.create_member(db, display_name, avatar_url or None)


def get_member(member_id: str) -> dict[str, Any]:
    with repo.store_transaction() as db:
        member = repo.get_member_row(db, member_id)
        if member is None:
            raise NotFound("member not found", member_id=member_id)
        return repo.member_to_dict(member)


def get_group(group_id: str) -> dict[str, Any]:
    group = repo.get_group(group_id)
    if group is None:
        raise NotFound("group not found", group_id=group_id)
    return group


def create_group(
    bus: EventBus,
    creator_id: str,
    name: str,
    target_size: int,
    member_ids: list[str] | None = None,
    group_gender: str | None = None,
    preferred_gender: str | None = None,
) -> dict[str, Any]:
    """Create a group with its creator and any co-founders committed in one step.

    A group created already at target size still forms exactly once.
    """
    name = _clean_name(name)
    if target_size not in GROUP_SIZES:
        raise ValueError(f"target_size must be one of: {', '.join(str(s) for s in GROUP_SIZES)}")
    group_gender = _normalize_gender(group_gender)
    preferred_gender = _normalize_gender(preferred_gender)

    founders = [creator_id]
    for mid in member_ids or []:
        if mid not in founders:
            founders.append(mid)
    formation_transition("forming", len(founders), target_size)

    with repo.store_transaction() as db:
        for mid in founders:
            _require_member(db, mid)
            _require_free(db, mid)
        row = repo.insert_group(
            db,
            name=name,
            target_size=target_size,
            created_by=creator_id,
            group_gender=group_gender,
            preferred_gender=preferred_gender,
        )
        for mid in founders:
            repo.commit_membership(db, row.id, mid, invited_by=None if mid == creator_id else creator_id)
        _, fire = formation_transition(row.status, len(founders), target_size)
        fired = fire and repo.mark_complete_if_forming(db, row.id)
        group = repo.serialize_groups(db, [row])[0]

    logger.info("[FORMATION] group created group_id=%s target=%s founders=%s", group["id"], target_size, len(founders))
    _announce(bus, group, founders, fired)
    return group


def join_group(bus: EventBus, group_id: str, member_id: str) -> dict[str, Any]:
    """Commit a member to a group; returns ``{"group", "formed"}``.

    The capacity check, the insert and the forming -> full transition run in one
    transaction with the group row locked, so of two racing final joins only one succeeds
    and exactly one formation event is published.
    """
    with repo.store_transaction() as db:
        row = repo.get_group_row(db, group_id, for_update=True)
        if row is None:
            raise NotFound("group not found", group_id=group_id)
        _require_member(db, member_id)

        existing = repo.get_membership(db, group_id, member_id)
        if existing is not None and existing.status == "joined":
            return {"group": repo.serialize_groups(db, [row])[0], "formed": False}

        if row.status == "dissolved":
            raise InvalidState("group was dissolved", group_id=group_id)
        if row.matched_at is not None:
            raise InvalidState("group membership is frozen after a match", group_id=group_id)
        if row.status == "full":
            raise InvalidTransition("group is already complete", group_id=group_id)
        _require_free(db, member_id, group_id)

        count = repo.count_joined(db, group_id) + 1
        _, fire = formation_transition(row.status, count, row.target_size)
        repo.commit_membership(db, group_id, member_id, invited_by=existing.invited_by if existing else None)
        fired = fire and repo.mark_complete_if_forming(db, group_id)
        group = repo.serialize_groups(db, [row])[0]

    _announce(bus, group, [member_id], fired)
    return {"group": group, "formed": fired}


def invite_member(bus: EventBus, group_id: str, member_id: str, invited_by: str) -> dict[str, Any]:
    with repo.store_transaction() as db:
        row = repo.get_group_row(db, group_id, for_update=True)
        if row is None:
            raise NotFound("group not found", group_id=group_id)
        _require_member(db, member_id)
        inviter = repo.get_membership(db, group_id, invited_by)
        if inviter is None or inviter.status != "joined":
            raise InvalidState("only group members can invite", group_id=group_id, member_id=invited_by)
        if row.status != "forming":
            raise InvalidState("group is not accepting members", group_id=group_id, status=row.status)
        invitation, created = repo.upsert_invitation(db, group_id, member_id, invited_by)
        out = {"group_id": group_id, "member_id": member_id, "status": invitation.status}
        group_name = row.name

    if created:
        bus.publish(
            NEW_INVITATION,
            {"group_id": group_id, "group_name": group_name, "member_id": member_id, "invited_by": invited_by},
        )
    return out


def decline_invitation(bus: EventBus, group_id: str, member_id: str) -> dict[str, Any]:
    with repo.store_transaction() as db:
        invitation = repo.get_membership(db, group_id, member_id)
        if invitation is None or invitation.status not in {"invited", "declined"}:
            raise NotFound("no pending invitation", group_id=group_id, member_id=member_id)
        changed = invitation.status == "invited"
        invitation.status = "declined"

    if changed:
        bus.publish(INVITATION_DECLINED, {"group_id": group_id, "member_id": member_id})
    return {"group_id": group_id, "member_id": member_id, "status": "declined"}


def dissolve_group(group_id: str, actor_id: str) -> dict[str, Any]:
    with repo.store_transaction() as db:
        row = repo.get_group_row(db, group_id, for_update=True)
        if row is None:
            raise NotFound("group not found", group_id=group_id)
        membership = repo.get_membership(db, group_id, actor_id)
        if membership is None or membership.status != "joined":
            raise InvalidState("only group members can dissolve a group", group_id=group_id, member_id=actor_id)
        if repo.mark_dissolved(db, group_id):
            logger.info("[FORMATION] group dissolved group_id=%s by=%s", group_id, actor_id)
        db.refresh(row)
        return repo.serialize_groups(db, [row])[0]


def on_membership_changed(bus: EventBus, group_id: str, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
    """Subscribe ``handler`` to joins of a single group."""

    def _filtered(payload: dict[str, Any]) -> None:
        if payload.get("group_id") == group_id:
            handler(payload)

    return bus.subscribe(GROUP_MEMBER_JOINED, _filtered)
