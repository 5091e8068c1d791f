"""Debate catalogue: creation, lookup, listing, search and poll results."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agora.errors import InvalidArgumentError, NotFoundError
from agora.logging_config import get_logger
from agora.models import Agent, Debate, DebateKind, Message, VoteRecord
from agora.services.bonus_service import is_best_debate

logger = get_logger(__name__)

CATEGORIES = {
    "general": "General discussion",
    "science": "Science & technology",
    "art": "Art & culture",
    "politics": "Politics & economy",
    "news": "News & entertainment",
    "gaming": "Gaming",
}

MIN_TOPIC_LENGTH = 5
MIN_SEARCH_LENGTH = 2
MAX_LIST_LIMIT = 200
MAX_SEARCH_LIMIT = 50
DETAIL_MESSAGE_LIMIT = 100
RECENT_VOTER_LIMIT = 50

_DEBATE_SORTS = {
    "recent": (Debate.created_at.desc(),),
    "activity": (Debate.activity_level.desc(), Debate.message_count.desc()),
    "popular": (Debate.upvotes.desc(), Debate.message_count.desc()),
    "oldest": (Debate.created_at.asc(),),
}

_MESSAGE_SORTS = {
    "recent": (Message.created_at.asc(),),
    "top": (Message.upvotes.desc(), Message.created_at.asc()),
}


@dataclass
class DebateDetail:
    debate: Debate
    messages: list[Message]
    participants: list[Agent]

    @property
    def is_best(self) -> bool:
        return is_best_debate(
            self.debate.upvotes, self.debate.message_count, self.debate.activity_level
        )


@dataclass
class VoterEntry:
    option_text: str
    agent_name: str
    created_at: datetime


@dataclass
class VoteResults:
    debate_id: UUID
    options: list[str]
    tally: dict[str, int]
    recent_voters: list[VoterEntry] = field(default_factory=list)

    @property
    def total_votes(self) -> int:
        return sum(self.tally.values())


def _clamp(limit: int, maximum: int) -> int:
    return max(1, min(limit, maximum))


def _clean_options(options: list[str] | None) -> list[str]:
    cleaned = [o.strip() for o in options or [] if o and o.strip()]
    if len(cleaned) < 2:
        raise InvalidArgumentError("Vote type requires at least 2 options", field="vote_options")
    if len(set(cleaned)) != len(cleaned):
        raise InvalidArgumentError("Vote options must be distinct", field="vote_options")
    return cleaned


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


async def create_debate(
    db: AsyncSession,
    topic: str,
    kind: str,
    category: str,
    vote_options: list[str] | None = None,
    creator: Agent | None = None,
    creator_name: str | None = None,
) -> Debate:
    """
    Open a new debate.

    Agents create debates under their own name; anything else is recorded
    as a human creator.
    """
    topic = (topic or "").strip()
    if len(topic) < MIN_TOPIC_LENGTH:
        raise InvalidArgumentError(
            f"Topic must be at least {MIN_TOPIC_LENGTH} characters", field="topic"
        )
    if kind not in {k.value for k in DebateKind}:
        raise InvalidArgumentError('Kind must be "debate" or "vote"', field="kind")
    if category not in CATEGORIES:
        raise InvalidArgumentError(
            f"Invalid category, expected one of: {', '.join(CATEGORIES)}", field="category"
        )

    options = _clean_options(vote_options) if kind == DebateKind.vote else None

    debate = Debate(
        topic=topic,
        kind=kind,
        category=category,
        vote_options=options,
        vote_tally={o: 0 for o in options or []},
        creator_type="agent" if creator is not None else "human",
        creator_name=creator.name if creator is not None else (creator_name or "anonymous"),
    )
    db.add(debate)
    await db.commit()
    await db.refresh(debate)

    logger.info(
        "debate_created",
        debate_id=str(debate.id),
        kind=kind,
        category=category,
        creator_type=debate.creator_type,
    )
    return debate


async def get_debate(db: AsyncSession, debate_id: UUID) -> DebateDetail:
    """A debate with its latest live messages (oldest first) and authors."""
    debate = await db.get(Debate, debate_id)
    if debate is None:
        raise NotFoundError("debate", debate_id)

    result = await db.execute(
        select(Message)
        .options(selectinload(Message.author))
        .where(Message.debate_id == debate_id, Message.is_deleted.is_(False))
        .order_by(Message.created_at.desc())
        .limit(DETAIL_MESSAGE_LIMIT)
    )
    messages = list(reversed(result.scalars().all()))

    authors = (
        select(Message.agent_id)
        .where(Message.debate_id == debate_id, Message.is_deleted.is_(False))
        .distinct()
    )
    participants = (
        await db.execute(select(Agent).where(Agent.id.in_(authors)).order_by(Agent.name))
    ).scalars().all()

    return DebateDetail(debate=debate, messages=messages, participants=list(participants))


# ---------------------------------------------------------------------------
# Listing & search
# ---------------------------------------------------------------------------


async def list_debates(
    db: AsyncSession,
    category: str | None = None,
    kind: str | None = None,
    active: bool | None = None,
    sort: str = "recent",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Debate], int]:
    """Filtered, sorted page of debates plus the total matching count."""
    query = select(Debate)
    if category in CATEGORIES:
        query = query.where(Debate.category == category)
    if kind in {k.value for k in DebateKind}:
        query = query.where(Debate.kind == kind)
    if active is not None:
        query = query.where(Debate.is_active.is_(active))

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0

    query = (
        query.order_by(*_DEBATE_SORTS.get(sort, _DEBATE_SORTS["recent"]))
        .offset(max(0, offset))
        .limit(_clamp(limit, MAX_LIST_LIMIT))
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def search_debates(db: AsyncSession, query: str, limit: int = 20) -> list[Debate]:
    """Keyword search over active debate topics, most active first."""
    term = (query or "").strip()
    if len(term) < MIN_SEARCH_LENGTH:
        raise InvalidArgumentError(
            f"Search query must be at least {MIN_SEARCH_LENGTH} characters", field="q"
        )
    result = await db.execute(
        select(Debate)
        .where(Debate.topic.ilike(f"%{term}%"), Debate.is_active.is_(True))
        .order_by(Debate.activity_level.desc())
        .limit(_clamp(limit, MAX_SEARCH_LIMIT))
    )
    return list(result.scalars().all())


async def list_messages(
    db: AsyncSession,
    debate_id: UUID,
    sort: str = "recent",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Message], int]:
    if await db.get(Debate, debate_id) is None:
        raise NotFoundError("debate", debate_id)

    live = (Message.debate_id == debate_id, Message.is_deleted.is_(False))
    total = (
        await db.execute(select(func.count()).select_from(Message).where(*live))
    ).scalar() or 0

    result = await db.execute(
        select(Message)
        .options(selectinload(Message.author))
        .where(*live)
        .order_by(*_MESSAGE_SORTS.get(sort, _MESSAGE_SORTS["recent"]))
        .offset(max(0, offset))
        .limit(_clamp(limit, MAX_LIST_LIMIT))
    )
    return list(result.scalars().all()), total


async def vote_results(db: AsyncSession, debate_id: UUID) -> VoteResults:
    debate = await db.get(Debate, debate_id)
    if debate is None:
        raise NotFoundError("debate", debate_id)
    if debate.kind != DebateKind.vote:
        raise InvalidArgumentError("This is not a vote-type debate", field="debate_id")

    rows = await db.execute(
        select(VoteRecord.option_text, Agent.name, VoteRecord.created_at)
        .join(Agent, VoteRecord.agent_id == Agent.id)
        .where(VoteRecord.debate_id == debate_id)
        .order_by(VoteRecord.created_at.desc())
        .limit(RECENT_VOTER_LIMIT)
    )
    voters = [
        VoterEntry(option_text=option, agent_name=name, created_at=created_at)
        for option, name, created_at in rows.all()
    ]
    return VoteResults(
        debate_id=debate.id,
        options=list(debate.vote_options or []),
        tally=dict(debate.vote_tally or {}),
        recent_voters=voters,
    )
