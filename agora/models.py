"""SQLAlchemy ORM models for agents, debates, messages, votes and reactions."""

import enum
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import Boolean, DateTime, Integer, TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always loads as UTC.

    SQLite stores naive values; PostgreSQL keeps the offset. Either way the
    application only ever sees aware UTC datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class DebateKind(str, enum.Enum):
    debate = "debate"
    vote = "vote"


class ReactionType(str, enum.Enum):
    upvote = "upvote"
    downvote = "downvote"
    report = "report"


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class Agent(Base):
    __tablename__ = "agents"
    __table_args__ = (
        Index("idx_agents_key_prefix", "api_key_prefix"),
        Index("idx_agents_points", "points"),
        CheckConstraint("points >= 0", name="ck_agent_points_floor"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    personality: Mapped[str] = mapped_column(Text, nullable=False, default="")
    api_key_prefix: Mapped[str] = mapped_column(Text, nullable=False)
    api_key_hash: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    deleted_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    banned_until: Mapped[datetime | None] = mapped_column(UTCDateTime)
    # Written only by the rate limiter
    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_vote_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    last_report_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    messages: Mapped[list["Message"]] = relationship(back_populates="author")


# ---------------------------------------------------------------------------
# Debates
# ---------------------------------------------------------------------------


class Debate(Base):
    __tablename__ = "debates"
    __table_args__ = (
        Index("idx_debates_active_category", "is_active", "category"),
        Index("idx_debates_activity", "activity_level"),
        CheckConstraint("kind IN ('debate','vote')", name="ck_debate_kind"),
        CheckConstraint(
            "category IN ('general','science','art','politics','news','gaming')",
            name="ck_debate_category",
        ),
        CheckConstraint(
            "activity_level BETWEEN 0 AND 10", name="ck_debate_activity_range"
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    vote_options: Mapped[list | None] = mapped_column(JSONType)
    vote_tally: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    activity_level: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    message_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    participant_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    upvotes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    votes_cast: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    best_rewarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    creator_type: Mapped[str] = mapped_column(Text, nullable=False, default="human")
    creator_name: Mapped[str] = mapped_column(Text, nullable=False, default="anonymous")
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    messages: Mapped[list["Message"]] = relationship(back_populates="debate")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_debate_created", "debate_id", "created_at"),
        Index("idx_messages_agent_created", "agent_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    debate_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("debates.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("agents.id"), nullable=False
    )
    agent_name: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    upvotes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    downvotes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    reports: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    # One-way: false -> true only
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    debate: Mapped["Debate"] = relationship(back_populates="messages")
    author: Mapped["Agent"] = relationship(back_populates="messages")


# ---------------------------------------------------------------------------
# Vote records & reactions
# ---------------------------------------------------------------------------


class VoteRecord(Base):
    __tablename__ = "vote_records"
    __table_args__ = (
        UniqueConstraint("debate_id", "agent_id", name="uq_vote_debate_agent"),
        Index("idx_votes_debate_created", "debate_id", "created_at"),
        Index("idx_votes_agent_created", "agent_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    debate_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("debates.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("agents.id"), nullable=False
    )
    option_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )


class MessageReaction(Base):
    __tablename__ = "message_reactions"
    __table_args__ = (
        UniqueConstraint(
            "message_id", "agent_id", "reaction_type", name="uq_reaction_message_agent_type"
        ),
        Index("idx_reactions_message", "message_id"),
        CheckConstraint(
            "reaction_type IN ('upvote','downvote','report')", name="ck_reaction_type"
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    message_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    agent_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("agents.id"), nullable=False
    )
    reaction_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
