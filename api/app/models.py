import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Member(Base):
    __tablename__ = "member"

    id = Column(String(36), primary_key=True, default=_uuid)
    display_name = Column(String(80), nullable=False)
    avatar_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)


class BubbleGroup(Base):
    __tablename__ = "bubble_group"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(80), nullable=False)
    target_size = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="forming")
    group_gender = Column(String(16), nullable=True)
    preferred_gender = Column(String(16), nullable=True)
    created_by = Column(String(36), ForeignKey("member.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    matched_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("target_size BETWEEN 2 AND 4", name="ck_bubble_group_target_size"),
        Index("idx_bubble_group_status_completed", "status", "completed_at", "id"),
    )


class GroupMember(Base):
    __tablename__ = "group_member"

    id = Column(String(36), primary_key=True, default=_uuid)
    group_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    member_id = Column(String(36), ForeignKey("member.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), nullable=False, default="joined")
    invited_by = Column(String(36), nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (
        UniqueConstraint("group_id", "member_id", name="uq_group_member"),
        Index("idx_group_member_member_status", "member_id", "status"),
    )


class GroupLike(Base):
    __tablename__ = "group_like"

    id = Column(String(36), primary_key=True, default=_uuid)
    from_group_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    to_group_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (
        UniqueConstraint("from_group_id", "to_group_id", name="uq_group_like_pair"),
        Index("idx_group_like_to_group", "to_group_id"),
    )


class GroupPass(Base):
    __tablename__ = "group_pass"

    id = Column(String(36), primary_key=True, default=_uuid)
    from_group_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    to_group_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (UniqueConstraint("from_group_id", "to_group_id", name="uq_group_pass_pair"),)


class GroupMatch(Base):
    __tablename__ = "group_match"

    id = Column(String(36), primary_key=True, default=_uuid)
    group_a_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    group_b_id = Column(String(36), ForeignKey("bubble_group.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (
        UniqueConstraint("group_a_id", "group_b_id", name="uq_group_match_pair"),
        CheckConstraint("group_a_id < group_b_id", name="ck_group_match_canonical"),
        Index("idx_group_match_group_b", "group_b_id"),
    )


class ChatRoom(Base):
    __tablename__ = "chat_room"

    id = Column(String(36), primary_key=True, default=_uuid)
    match_id = Column(String(36), ForeignKey("group_match.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (UniqueConstraint("match_id", name="uq_chat_room_match"),)
