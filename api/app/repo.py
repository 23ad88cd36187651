from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import aliased

from app.database import SessionLocal
from app.errors import Internal, Transient
from app.models import BubbleGroup, ChatRoom, GroupLike, GroupMatch, GroupMember, GroupPass, Member

ACTIVE_GROUP_STATUSES = ("forming", "full")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def canonical_pair(group_a_id: str, group_b_id: str) -> tuple[str, str]:
    return tuple(sorted((group_a_id, group_b_id)))


@contextmanager
def store_transaction() -> Iterator[Any]:
    """One logical store transaction; commits on success, maps outages to Transient."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise Transient("Candidate store is temporarily unavailable") from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# --- members -----------------------------------------------------------------


def member_to_dict(member: Member) -> dict[str, Any]:
    return {"id": member.id, "name": member.display_name, "avatar_url": member.avatar_url}


def create_member(db, display_name: str, avatar_url: str | None = None) -> dict[str, Any]:
    member = Member(display_name=display_name, avatar_url=avatar_url)
    db.add(member)
    db.flush()
    return member_to_dict(member)


def get_member_row(db, member_id: str, *, for_update: bool = False) -> Member | None:
    stmt = select(Member).where(Member.id == member_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalars().first()


# --- groups ------------------------------------------------------------------


def get_group_row(db, group_id: str, *, for_update: bool = False) -> BubbleGroup | None:
    stmt = select(BubbleGroup).where(BubbleGroup.id == group_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalars().first()


def lock_groups(db, group_ids: list[str]) -> dict[str, BubbleGroup]:
    # ascending id order so two transactions locking the same pair never deadlock
    rows = db.execute(
        select(BubbleGroup).where(BubbleGroup.id.in_(sorted(set(group_ids)))).order_by(BubbleGroup.id).with_for_update()
    ).scalars().all()
    return {row.id: row for row in rows}


def members_by_group(db, group_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
    out: dict[str, list[dict[str, Any]]] = {gid: [] for gid in group_ids}
    if not group_ids:
        return out
    rows = db.execute(
        select(GroupMember.group_id, Member)
        .join(Member, Member.id == GroupMember.member_id)
        .where(GroupMember.group_id.in_(group_ids), GroupMember.status == "joined")
        .order_by(GroupMember.group_id, GroupMember.joined_at, Member.id)
    ).all()
    for group_id, member in rows:
        out[group_id].append(member_to_dict(member))
    return out


def group_to_dict(group: BubbleGroup, members: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "target_size": group.target_size,
        "status": group.status,
        "group_gender": group.group_gender,
        "preferred_gender": group.preferred_gender,
        "created_by": group.created_by,
        "member_count": len(members),
        "members": members,
        "is_complete": group.status == "full",
        "completed_at": group.completed_at.isoformat() if group.completed_at else None,
        "matched_at": group.matched_at.isoformat() if group.matched_at else None,
    }


def serialize_groups(db, groups: list[BubbleGroup]) -> list[dict[str, Any]]:
    members = members_by_group(db, [g.id for g in groups])
    return [group_to_dict(g, members[g.id]) for g in groups]


def get_group(group_id: str) -> dict[str, Any] | None:
    with store_transaction() as db:
        group = get_group_row(db, group_id)
        if not group:
            return None
        return serialize_groups(db, [group])[0]


def insert_group(
    db,
    *,
    name: str,
    target_size: int,
    created_by: str,
    group_gender: str | None,
    preferred_gender: str | None,
) -> BubbleGroup:
    group = BubbleGroup(
        name=name,
        target_size=target_size,
        status="forming",
        group_gender=group_gender,
        preferred_gender=preferred_gender,
        created_by=created_by,
    )
    db.add(group)
    db.flush()
    return group


def get_membership(db, group_id: str, member_id: str) -> GroupMember | None:
    return db.execute(
        select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.member_id == member_id)
    ).scalars().first()


def count_joined(db, group_id: str) -> int:
    return int(
        db.execute(
            select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id, GroupMember.status == "joined")
        ).scalar_one()
    )


def active_group_for_member(db, member_id: str, exclude_group_id: str | None = None) -> str | None:
    stmt = (
        select(GroupMember.group_id)
        .join(BubbleGroup, BubbleGroup.id == GroupMember.group_id)
        .where(
            GroupMember.member_id == member_id,
            GroupMember.status == "joined",
            BubbleGroup.status.in_(ACTIVE_GROUP_STATUSES),
        )
    )
    if exclude_group_id:
        stmt = stmt.where(GroupMember.group_id != exclude_group_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none()


def commit_membership(db, group_id: str, member_id: str, invited_by: str | None = None) -> GroupMember:
    row = get_membership(db, group_id, member_id)
    now = _now_utc()
    if row is None:
        row = GroupMember(group_id=group_id, member_id=member_id, status="joined", invited_by=invited_by, joined_at=now)
        db.add(row)
    else:
        row.status = "joined"
        row.joined_at = now
    db.flush()
    return row


def upsert_invitation(db, group_id: str, member_id: str, invited_by: str) -> tuple[GroupMember, bool]:
    row = get_membership(db, group_id, member_id)
    if row is not None and row.status in {"invited", "joined"}:
        return row, False
    if row is None:
        row = GroupMember(group_id=group_id, member_id=member_id, status="invited", invited_by=invited_by)
        db.add(row)
    else:
        row.status = "invited"
        row.invited_by = invited_by
    db.flush()
    return row, True


def mark_complete_if_forming(db, group_id: str) -> bool:
    """Forming -> full as a conditional update; only one transaction can observe rowcount 1."""
    result = db.execute(
        update(BubbleGroup)
        .where(BubbleGroup.id == group_id, BubbleGroup.status == "forming")
        .values(status="full", completed_at=_now_utc())
    )
    return result.rowcount == 1


def mark_dissolved(db, group_id: str) -> bool:
    result = db.execute(
        update(BubbleGroup)
        .where(BubbleGroup.id == group_id, BubbleGroup.status != "dissolved")
        .values(status="dissolved")
    )
    return result.rowcount == 1


# --- like / pass edges ---------------------------------------------------------


def like_exists(db, from_group_id: str, to_group_id: str) -> bool:
    return db.execute(
        select(GroupLike.id).where(GroupLike.from_group_id == from_group_id, GroupLike.to_group_id == to_group_id)
    ).first() is not None


def pass_exists(db, from_group_id: str, to_group_id: str) -> bool:
    return db.execute(
        select(GroupPass.id).where(GroupPass.from_group_id == from_group_id, GroupPass.to_group_id == to_group_id)
    ).first() is not None


def create_like_edge(db, from_group_id: str, to_group_id: str) -> None:
    db.add(GroupLike(from_group_id=from_group_id, to_group_id=to_group_id))
    db.flush()


def create_pass_edge(db, from_group_id: str, to_group_id: str) -> None:
    db.add(GroupPass(from_group_id=from_group_id, to_group_id=to_group_id))
    db.flush()


def count_swipes_since(db, group_id: str, since: datetime) -> int:
    likes = db.execute(
        select(func.count(GroupLike.id)).where(GroupLike.from_group_id == group_id, GroupLike.created_at >= since)
    ).scalar_one()
    passes = db.execute(
        select(func.count(GroupPass.id)).where(GroupPass.from_group_id == group_id, GroupPass.created_at >= since)
    ).scalar_one()
    return int(likes) + int(passes)


# --- matches -----------------------------------------------------------------


def _match_to_dict(match: GroupMatch, chat_room_id: str) -> dict[str, Any]:
    return {
        "match_id": match.id,
        "chat_room_id": chat_room_id,
        "group_a_id": match.group_a_id,
        "group_b_id": match.group_b_id,
        "created_at": match.created_at.isoformat() if match.created_at else None,
    }


def _chat_room_id(db, match: GroupMatch) -> str:
    rooms = db.execute(select(ChatRoom.id).where(ChatRoom.match_id == match.id)).scalars().all()
    if len(rooms) != 1:
        raise Internal(
            f"match {match.id} has {len(rooms)} chat rooms, expected exactly one",
            match_id=match.id,
        )
    return rooms[0]


def find_match(db, group_a_id: str, group_b_id: str) -> dict[str, Any] | None:
    a, b = canonical_pair(group_a_id, group_b_id)
    rows = db.execute(select(GroupMatch).where(GroupMatch.group_a_id == a, GroupMatch.group_b_id == b)).scalars().all()
    if not rows:
        return None
    if len(rows) > 1:
        raise Internal(f"{len(rows)} matches recorded for pair {a}/{b}", group_a_id=a, group_b_id=b)
    return _match_to_dict(rows[0], _chat_room_id(db, rows[0]))


def try_promote_match(db, group_a_id: str, group_b_id: str) -> tuple[dict[str, Any], bool]:
    """Atomic check-and-create of the Match and its ChatRoom inside the caller's transaction.

    Returns ``(match, created)``. A concurrent creator surfaces as an IntegrityError on flush,
    which the caller resolves by retrying the whole transaction.
    """
    existing = find_match(db, group_a_id, group_b_id)
    if existing:
        return existing, False

    a, b = canonical_pair(group_a_id, group_b_id)
    match = GroupMatch(group_a_id=a, group_b_id=b)
    db.add(match)
    db.flush()
    room = ChatRoom(match_id=match.id)
    db.add(room)
    db.flush()

    now = _now_utc()
    db.execute(
        update(BubbleGroup)
        .where(BubbleGroup.id.in_([a, b]), BubbleGroup.matched_at.is_(None))
        .values(matched_at=now)
    )
    return _match_to_dict(match, room.id), True


def get_match(match_id: str) -> dict[str, Any] | None:
    with store_transaction() as db:
        match = db.execute(select(GroupMatch).where(GroupMatch.id == match_id)).scalars().first()
        if not match:
            return None
        return _match_to_dict(match, _chat_room_id(db, match))


def list_matches(db, group_id: str) -> list[dict[str, Any]]:
    rows = db.execute(
        select(GroupMatch, ChatRoom.id)
        .join(ChatRoom, ChatRoom.match_id == GroupMatch.id)
        .where(or_(GroupMatch.group_a_id == group_id, GroupMatch.group_b_id == group_id))
        .order_by(GroupMatch.created_at.desc(), GroupMatch.id)
    ).all()
    out = []
    for match, chat_room_id in rows:
        item = _match_to_dict(match, chat_room_id)
        item["other_group_id"] = match.group_b_id if match.group_a_id == group_id else match.group_a_id
        out.append(item)
    return out


# --- candidate queries ---------------------------------------------------------


def _matched_with(group_id: str, other_id_col):
    return (
        select(GroupMatch.id)
        .where(
            or_(
                and_(GroupMatch.group_a_id == group_id, GroupMatch.group_b_id == other_id_col),
                and_(GroupMatch.group_a_id == other_id_col, GroupMatch.group_b_id == group_id),
            )
        )
        .exists()
    )


def partner_criteria(group: BubbleGroup) -> dict[str, Any]:
    """Column values a group must carry to be a partner for ``group``.

    Same size always; exact-opposite gender only when ``group`` states a preference.
    """
    criteria: dict[str, Any] = {"target_size": group.target_size}
    if group.preferred_gender:
        criteria["group_gender"] = group.preferred_gender
        criteria["preferred_gender"] = group.group_gender
    return criteria


def is_partner(group: BubbleGroup, other: BubbleGroup) -> bool:
    return all(getattr(other, name) == value for name, value in partner_criteria(group).items())


def _partner_clauses(group: BubbleGroup):
    return [getattr(BubbleGroup, name) == value for name, value in partner_criteria(group).items()]


def query_candidates(
    db,
    group: BubbleGroup,
    *,
    limit: int,
    after: tuple[datetime, str] | None = None,
) -> list[BubbleGroup]:
    G = BubbleGroup
    stmt = select(G).where(
        G.id != group.id,
        G.status == "full",
        ~select(GroupLike.id).where(GroupLike.from_group_id == group.id, GroupLike.to_group_id == G.id).exists(),
        ~select(GroupPass.id).where(GroupPass.from_group_id == group.id, GroupPass.to_group_id == G.id).exists(),
        ~_matched_with(group.id, G.id),
        *_partner_clauses(group),
    )
    if after is not None:
        after_ts, after_id = after
        stmt = stmt.where(or_(G.completed_at > after_ts, and_(G.completed_at == after_ts, G.id > after_id)))
    stmt = stmt.order_by(G.completed_at.asc(), G.id.asc()).limit(limit)
    return list(db.execute(stmt).scalars().all())


def list_incoming_likes(db, group: BubbleGroup, *, limit: int, offset: int = 0) -> list[BubbleGroup]:
    G = BubbleGroup
    group_id = group.id
    incoming = aliased(GroupLike)
    stmt = (
        select(G)
        .join(incoming, and_(incoming.from_group_id == G.id, incoming.to_group_id == group_id))
        .where(
            G.status == "full",
            ~select(GroupLike.id).where(GroupLike.from_group_id == group_id, GroupLike.to_group_id == G.id).exists(),
            ~select(GroupPass.id).where(GroupPass.from_group_id == group_id, GroupPass.to_group_id == G.id).exists(),
            ~_matched_with(group_id, G.id),
            *_partner_clauses(group),
        )
        .order_by(incoming.created_at.desc(), G.id)
        .offset(offset)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())
