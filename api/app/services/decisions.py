import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError

from app import repo
from app.errors import Internal, InvalidState, InvalidTransition, NotFound
from app.services.event_bus import MATCH_CREATED, NEW_LIKE, EventBus, match_created_payload
from app.services.swipe_limit import enforce_swipe_limit

logger = logging.getLogger(__name__)

# a unique-constraint collision means a concurrent writer won; the retry takes the idempotent path
MAX_WRITE_ATTEMPTS = 2


@dataclass(frozen=True)
class LikeResult:
    matched: bool
    match_id: str | None = None
    chat_room_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _load_pair(db, from_group_id: str, to_group_id: str):
    if from_group_id == to_group_id:
        raise InvalidTransition("a group cannot decide on itself", group_id=from_group_id)
    groups = repo.lock_groups(db, [from_group_id, to_group_id])
    for gid in (from_group_id, to_group_id):
        group = groups.get(gid)
        if group is None:
            raise NotFound("group not found", group_id=gid)
        if group.status != "full":
            raise InvalidState("group is not ready for matching", group_id=gid, status=group.status)
    from_group, to_group = groups[from_group_id], groups[to_group_id]
    if not repo.is_partner(from_group, to_group):
        raise InvalidState(
            "groups are not eligible partners",
            from_group_id=from_group_id,
            to_group_id=to_group_id,
            criteria=repo.partner_criteria(from_group),
        )
    return from_group, to_group


def _like_once(db, from_group_id: str, to_group_id: str, now: datetime) -> tuple[LikeResult, dict | None, bool, str]:
    from_group, _ = _load_pair(db, from_group_id, to_group_id)

    if repo.pass_exists(db, from_group_id, to_group_id):
        raise InvalidTransition(
            "group was already passed; a pass is final",
            from_group_id=from_group_id,
            to_group_id=to_group_id,
        )

    new_edge = False
    if not repo.like_exists(db, from_group_id, to_group_id):
        enforce_swipe_limit(db, from_group_id, now)
        repo.create_like_edge(db, from_group_id, to_group_id)
        new_edge = True

    if not repo.like_exists(db, to_group_id, from_group_id):
        return LikeResult(matched=False), None, new_edge, from_group.name

    match, created = repo.try_promote_match(db, from_group_id, to_group_id)
    result = LikeResult(matched=True, match_id=match["match_id"], chat_room_id=match["chat_room_id"])
    return result, (match if created else None), new_edge, from_group.name


def like(bus: EventBus, from_group_id: str, to_group_id: str, now: datetime | None = None) -> LikeResult:
    """Record interest from one group in another, promoting mutual interest to a match.

    Idempotent per ordered pair. Edge creation and match promotion share one transaction
    with both group rows locked, so concurrent reciprocal likes yield exactly one match.
    """
    now = now or datetime.now(timezone.utc)
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        try:
            with repo.store_transaction() as db:
                result, created_match, new_edge, from_name = _like_once(db, from_group_id, to_group_id, now)
            break
        except IntegrityError as exc:
            if attempt == MAX_WRITE_ATTEMPTS:
                logger.error("[DECISION] like %s->%s kept colliding on unique keys", from_group_id, to_group_id)
                raise Internal(
                    "like could not be recorded consistently",
                    from_group_id=from_group_id,
                    to_group_id=to_group_id,
                ) from exc
            logger.info("[DECISION] concurrent write on like %s->%s, retrying", from_group_id, to_group_id)

    if created_match:
        logger.info(
            "[DECISION] match created match_id=%s chat_room_id=%s groups=%s,%s",
            created_match["match_id"],
            created_match["chat_room_id"],
            created_match["group_a_id"],
            created_match["group_b_id"],
        )
        bus.publish(MATCH_CREATED, match_created_payload(created_match))
    elif new_edge and not result.matched:
        bus.publish(
            NEW_LIKE,
            {"from_group_id": from_group_id, "from_group_name": from_name, "to_group_id": to_group_id},
        )
    return result


def _pass_once(db, from_group_id: str, to_group_id: str, now: datetime) -> bool:
    _load_pair(db, from_group_id, to_group_id)

    if repo.pass_exists(db, from_group_id, to_group_id):
        return False
    if repo.like_exists(db, from_group_id, to_group_id):
        raise InvalidTransition(
            "group was already liked; it cannot be passed",
            from_group_id=from_group_id,
            to_group_id=to_group_id,
        )

    enforce_swipe_limit(db, from_group_id, now)
    repo.create_pass_edge(db, from_group_id, to_group_id)
    return True


def pass_group(from_group_id: str, to_group_id: str, now: datetime | None = None) -> None:
    """Record a final pass; ``to_group_id`` never reappears in ``from_group_id``'s candidates."""
    now = now or datetime.now(timezone.utc)
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        try:
            with repo.store_transaction() as db:
                created = _pass_once(db, from_group_id, to_group_id, now)
            break
        except IntegrityError as exc:
            if attempt == MAX_WRITE_ATTEMPTS:
                raise Internal(
                    "pass could not be recorded consistently",
                    from_group_id=from_group_id,
                    to_group_id=to_group_id,
                ) from exc
    if created:
        logger.debug("[DECISION] pass recorded %s->%s", from_group_id, to_group_id)


def list_matches(group_id: str) -> list[dict[str, Any]]:
    with repo.store_transaction() as db:
        if repo.get_group_row(db, group_id) is None:
            raise NotFound("group not found", group_id=group_id)
        return repo.list_matches(db, group_id)
