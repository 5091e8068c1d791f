"""Bonus evaluator: threshold and one-time rewards layered on base points.

Threshold rules compare the value before and after the triggering write
(``before < threshold <= after``) instead of storing "already paid" flags.
Only the best-debate bonus, whose condition can hold for many consecutive
actions, needs a persisted one-time flag. The pioneer bonus relies on the
participation records themselves.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, union, update
from sqlalchemy.ext.asyncio import AsyncSession

from agora.logging_config import get_logger
from agora.models import Debate, Message, MessageReaction, ReactionType, VoteRecord
from agora.services.activity_service import LevelChange
from agora.services.scoring_service import BONUS, POINTS, award_points

logger = get_logger(__name__)


class BonusKind(str, enum.Enum):
    quality_message = "quality_message"
    inactive_debate = "inactive_debate"
    streak = "streak"
    debate_activation = "debate_activation"
    best_debate = "best_debate"
    accurate_report = "accurate_report"


@dataclass(frozen=True, slots=True)
class BonusAward:
    """A bonus paid once to each recipient."""

    kind: BonusKind
    amount: int
    recipients: tuple[UUID, ...]


# ---------------------------------------------------------------------------
# Pure predicates
# ---------------------------------------------------------------------------


def crossed(before: int, after: int, threshold: int) -> bool:
    return before < threshold <= after


def is_best_debate(upvotes: int, message_count: int, activity_level: int) -> bool:
    return (
        upvotes >= BONUS.best_upvotes
        and message_count >= BONUS.best_messages
        and activity_level >= BONUS.best_level
    )


def streak_completed(prior_debates: set[UUID], debate_id: UUID, threshold: int) -> bool:
    """True when adding ``debate_id`` moves the distinct-debate count onto the threshold."""
    return crossed(len(prior_debates), len(prior_debates | {debate_id}), threshold)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def has_participated(db: AsyncSession, debate_id: UUID, agent_id: UUID) -> bool:
    """Whether the agent already left a message or vote in the debate."""
    message_hit = (
        await db.execute(
            select(Message.id)
            .where(Message.debate_id == debate_id, Message.agent_id == agent_id)
            .limit(1)
        )
    ).scalar_one_or_none()
    if message_hit is not None:
        return True
    vote_hit = (
        await db.execute(
            select(VoteRecord.id)
            .where(VoteRecord.debate_id == debate_id, VoteRecord.agent_id == agent_id)
            .limit(1)
        )
    ).scalar_one_or_none()
    return vote_hit is not None


async def debate_participants(db: AsyncSession, debate_id: UUID) -> list[UUID]:
    """Distinct message authors and voters of a debate."""
    authors = select(Message.agent_id.label("agent_id")).where(
        Message.debate_id == debate_id,
        Message.is_deleted.is_(False),
    )
    voters = select(VoteRecord.agent_id.label("agent_id")).where(
        VoteRecord.debate_id == debate_id
    )
    result = await db.execute(union(authors, voters))
    return sorted(result.scalars().all(), key=str)


async def recent_debates(
    db: AsyncSession,
    agent_id: UUID,
    since: datetime,
    until: datetime,
    exclude_message_id: UUID | None = None,
    exclude_vote_id: UUID | None = None,
) -> set[UUID]:
    """Debates the agent posted or voted in within ``(since, until]``."""
    messages = select(Message.debate_id.label("debate_id")).where(
        Message.agent_id == agent_id,
        Message.created_at > since,
        Message.created_at <= until,
        Message.is_deleted.is_(False),
    )
    if exclude_message_id is not None:
        messages = messages.where(Message.id != exclude_message_id)
    votes = select(VoteRecord.debate_id.label("debate_id")).where(
        VoteRecord.agent_id == agent_id,
        VoteRecord.created_at > since,
        VoteRecord.created_at <= until,
    )
    if exclude_vote_id is not None:
        votes = votes.where(VoteRecord.id != exclude_vote_id)
    result = await db.execute(union(messages, votes))
    return set(result.scalars().all())


async def _pay(
    db: AsyncSession,
    kind: BonusKind,
    amount: int,
    recipients: list[UUID],
) -> BonusAward | None:
    if not recipients:
        return None
    for agent_id in recipients:
        await award_points(db, agent_id, amount, f"bonus:{kind.value}")
    logger.info(
        "bonus_awarded",
        bonus=kind.value,
        amount=amount,
        recipients=len(recipients),
    )
    return BonusAward(kind=kind, amount=amount, recipients=tuple(recipients))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


async def pioneer_eligible(db: AsyncSession, debate: Debate, agent_id: UUID) -> bool:
    """Must be evaluated before the new participation record is written."""
    if debate.activity_level > BONUS.pioneer_max_level:
        return False
    return not await has_participated(db, debate.id, agent_id)


async def award_pioneer(db: AsyncSession, agent_id: UUID) -> BonusAward | None:
    return await _pay(
        db, BonusKind.inactive_debate, POINTS.inactive_debate_pioneer, [agent_id]
    )


async def quality_bonus(
    db: AsyncSession,
    author_id: UUID,
    upvotes_after: int,
) -> BonusAward | None:
    """Pay the author when this upvote is the one that reaches the threshold."""
    if not crossed(upvotes_after - 1, upvotes_after, BONUS.quality_upvotes):
        return None
    return await _pay(db, BonusKind.quality_message, POINTS.quality_message, [author_id])


async def check_streak(
    db: AsyncSession,
    agent_id: UUID,
    debate_id: UUID,
    now: datetime,
    window_hours: int,
    exclude_message_id: UUID | None = None,
    exclude_vote_id: UUID | None = None,
) -> BonusAward | None:
    """
    Pay the streak bonus when this participation is the one that brings the
    agent's distinct debates within the window to the threshold.

    The just-written record is excluded from the "before" set so repeated
    activity in a debate already counted does not pay again.
    """
    prior = await recent_debates(
        db,
        agent_id,
        now - timedelta(hours=window_hours),
        now,
        exclude_message_id=exclude_message_id,
        exclude_vote_id=exclude_vote_id,
    )
    if not streak_completed(prior, debate_id, BONUS.streak_debates):
        return None
    return await _pay(db, BonusKind.streak, POINTS.streak, [agent_id])


async def check_activation(
    db: AsyncSession,
    debate_id: UUID,
    change: LevelChange,
) -> BonusAward | None:
    """Pay all participants each time the level crosses into the active band."""
    if not change.crossed(BONUS.activation_level):
        return None
    participants = await debate_participants(db, debate_id)
    return await _pay(db, BonusKind.debate_activation, POINTS.debate_activation, participants)


async def check_best_debate(db: AsyncSession, debate_id: UUID) -> BonusAward | None:
    """
    Flip ``best_rewarded`` and pay all participants, at most once per debate.

    The criteria and the flag are checked in the same guarded UPDATE, so of
    several concurrent evaluators only one gets the row back.
    """
    result = await db.execute(
        update(Debate)
        .where(
            Debate.id == debate_id,
            Debate.best_rewarded.is_(False),
            Debate.upvotes >= BONUS.best_upvotes,
            Debate.message_count >= BONUS.best_messages,
            Debate.activity_level >= BONUS.best_level,
        )
        .values(best_rewarded=True)
        .returning(Debate.id)
    )
    if result.scalar_one_or_none() is None:
        return None
    participants = await debate_participants(db, debate_id)
    return await _pay(db, BonusKind.best_debate, POINTS.best_debate, participants)


async def reward_accurate_reporters(db: AsyncSession, message_id: UUID) -> BonusAward | None:
    """Pay every agent who reported a message that has now been removed."""
    result = await db.execute(
        select(MessageReaction.agent_id)
        .where(
            MessageReaction.message_id == message_id,
            MessageReaction.reaction_type == ReactionType.report.value,
        )
        .distinct()
    )
    reporters = sorted(result.scalars().all(), key=str)
    return await _pay(db, BonusKind.accurate_report, POINTS.accurate_report, reporters)
