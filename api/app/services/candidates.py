from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app import repo
from app.config import CANDIDATE_PAGE_SIZE, INCOMING_LIKES_PAGE_SIZE, MAX_PAGE_SIZE
from app.errors import NotFound


@dataclass
class CandidatePage:
    candidates: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    def to_dict(self) -> dict[str, Any]:
        return {"candidates": self.candidates, "next_cursor": self.next_cursor, "has_more": self.has_more}


def encode_cursor(completed_at: datetime, group_id: str) -> str:
    raw = json.dumps({"c": completed_at.isoformat(), "id": group_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
        return datetime.fromisoformat(data["c"]), str(data["id"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise ValueError("cursor is malformed") from exc


def _validate_page_size(page_size: int) -> int:
    if not isinstance(page_size, int) or page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
    return page_size


def fetch_candidates(group_id: str, page_size: int = CANDIDATE_PAGE_SIZE, cursor: str | None = None) -> CandidatePage:
    """One page of eligible candidates for a complete group.

    Ordered by ``(completed_at, id)`` and paged by keyset, so a retry with the same cursor
    returns the same page and decisions made between pages never shift later pages.
    """
    page_size = _validate_page_size(page_size)
    after = decode_cursor(cursor) if cursor else None

    with repo.store_transaction() as db:
        group = repo.get_group_row(db, group_id)
        if group is None:
            raise NotFound("group not found", group_id=group_id)
        if group.status != "full":
            raise NotFound("group is not ready for matching", group_id=group_id, status=group.status)

        rows = repo.query_candidates(db, group, limit=page_size + 1, after=after)
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        next_cursor = encode_cursor(rows[-1].completed_at, rows[-1].id) if has_more else None
        return CandidatePage(candidates=repo.serialize_groups(db, rows), next_cursor=next_cursor)


def list_incoming_likes(group_id: str, limit: int = INCOMING_LIKES_PAGE_SIZE, offset: int = 0) -> dict[str, Any]:
    limit = _validate_page_size(limit)
    if offset < 0:
        raise ValueError("offset must be >= 0")

    with repo.store_transaction() as db:
        group = repo.get_group_row(db, group_id)
        if group is None or group.status != "full":
            raise NotFound("group not found or not ready for matching", group_id=group_id)
        rows = repo.list_incoming_likes(db, group, limit=limit + 1, offset=offset)
        has_more = len(rows) > limit
        groups = repo.serialize_groups(db, rows[:limit])
    return {"groups": groups, "has_more": has_more, "next_offset": offset + len(groups)}
