"""Activity aggregator: derives a debate's 0-10 activity level from its records.

Both debate kinds go through one formula with a kind-dependent input
vector. Text debates weigh messages, distinct authors and upvotes; polls
weigh votes cast.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.logging_config import get_logger
from agora.models import Debate, DebateKind, Message, VoteRecord

logger = get_logger(__name__)

MAX_LEVEL = 10


@dataclass(frozen=True, slots=True)
class ActivityInputs:
    message_count: int = 0
    distinct_agents: int = 0
    total_upvotes: int = 0
    votes_cast: int = 0


@dataclass(frozen=True, slots=True)
class LevelChange:
    previous: int
    current: int

    def crossed(self, threshold: int) -> bool:
        """True when this change moved the level from below to at/above threshold."""
        return self.previous < threshold <= self.current


def compute_activity_level(kind: str, inputs: ActivityInputs) -> int:
    """
    Compute the activity level for a debate.

    debate: floor(messages/10 + agents*0.5 + upvotes/20)
    vote:   floor(votes/5)

    Both are capped at 10. Integer arithmetic keeps the floor exact.
    """
    if kind == DebateKind.vote:
        level = inputs.votes_cast // 5
    else:
        level = (
            2 * inputs.message_count
            + 10 * inputs.distinct_agents
            + inputs.total_upvotes
        ) // 20
    return max(0, min(MAX_LEVEL, level))


async def gather_inputs(db: AsyncSession, debate: Debate) -> ActivityInputs:
    """Count the live records feeding the activity formula."""
    if debate.kind == DebateKind.vote:
        votes = (
            await db.execute(
                select(func.count()).where(VoteRecord.debate_id == debate.id)
            )
        ).scalar() or 0
        return ActivityInputs(distinct_agents=votes, votes_cast=votes)

    row = (
        await db.execute(
            select(
                func.count(Message.id),
                func.count(func.distinct(Message.agent_id)),
                func.coalesce(func.sum(Message.upvotes), 0),
            ).where(
                Message.debate_id == debate.id,
                Message.is_deleted.is_(False),
            )
        )
    ).one()
    return ActivityInputs(
        message_count=row[0] or 0,
        distinct_agents=row[1] or 0,
        total_upvotes=int(row[2] or 0),
    )


async def lock_debate(db: AsyncSession, debate_id: UUID) -> Debate | None:
    """
    Lock a debate row for the rest of the transaction.

    Every follow-up stage takes this lock before touching message or agent
    rows, so concurrent stages of one debate queue here instead of
    deadlocking. ``FOR NO KEY UPDATE`` leaves foreign-key checks from
    inserts of new messages and votes unblocked.
    """
    result = await db.execute(
        select(Debate)
        .where(Debate.id == debate_id)
        .with_for_update(key_share=True)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def recompute_activity(db: AsyncSession, debate_id: UUID) -> LevelChange | None:
    """
    Recompute a debate's aggregates and activity level under a row lock.

    Returns the (previous, current) level pair, or None if the debate is gone.
    """
    debate = await lock_debate(db, debate_id)
    if debate is None:
        return None

    previous = debate.activity_level
    inputs = await gather_inputs(db, debate)
    level = compute_activity_level(debate.kind, inputs)

    debate.message_count = inputs.message_count
    debate.participant_count = inputs.distinct_agents
    debate.upvotes = inputs.total_upvotes
    debate.votes_cast = inputs.votes_cast
    debate.activity_level = level
    await db.flush()

    if level != previous:
        logger.info(
            "activity_level_changed",
            debate_id=str(debate_id),
            previous=previous,
            current=level,
        )
    return LevelChange(previous=previous, current=level)
