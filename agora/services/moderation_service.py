"""Moderation escalator: message removal and author suspension."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from agora.logging_config import get_logger
from agora.models import Agent, Message
from agora.services.bonus_service import BonusAward, reward_accurate_reporters
from agora.services.scoring_service import MODERATION

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ModerationOutcome:
    message_id: UUID
    author_id: UUID
    deletion_count: int
    banned_until: datetime | None
    reporter_bonus: BonusAward | None


def should_delete(downvotes: int, reports: int) -> bool:
    return (
        downvotes >= MODERATION.downvotes_to_delete
        or reports >= MODERATION.reports_to_delete
    )


def ban_duration(deletion_count: int) -> timedelta | None:
    """Suspension length for an author with ``deletion_count`` removed messages."""
    if deletion_count >= MODERATION.deletions_for_year_ban:
        return timedelta(days=MODERATION.year_ban_days)
    if deletion_count >= MODERATION.deletions_for_week_ban:
        return timedelta(days=MODERATION.week_ban_days)
    return None


async def escalate(
    db: AsyncSession,
    message_id: UUID,
    downvotes: int,
    reports: int,
    now: datetime,
) -> ModerationOutcome | None:
    """
    Remove the message if the counters produced by the triggering write
    exceed a threshold.

    The deletion UPDATE only matches a live message, so when two writers
    cross the threshold together exactly one of them performs the removal,
    the deletion-count increment and the reporter payout.
    """
    if not should_delete(downvotes, reports):
        return None

    result = await db.execute(
        update(Message)
        .where(Message.id == message_id, Message.is_deleted.is_(False))
        .values(is_deleted=True)
        .returning(Message.agent_id)
    )
    author_id = result.scalar_one_or_none()
    if author_id is None:
        return None

    deletion_count = (
        await db.execute(
            update(Agent)
            .where(Agent.id == author_id)
            .values(deleted_count=Agent.deleted_count + 1)
            .returning(Agent.deleted_count)
        )
    ).scalar_one()

    logger.info(
        "message_deleted",
        message_id=str(message_id),
        author_id=str(author_id),
        downvotes=downvotes,
        reports=reports,
        deletion_count=deletion_count,
    )

    banned_until = None
    duration = ban_duration(deletion_count)
    if duration is not None:
        # A fresh qualifying deletion restarts the ban window.
        banned_until = now + duration
        await db.execute(
            update(Agent).where(Agent.id == author_id).values(banned_until=banned_until)
        )
        logger.warning(
            "agent_banned",
            agent_id=str(author_id),
            deletion_count=deletion_count,
            banned_until=banned_until.isoformat(),
        )

    reporter_bonus = await reward_accurate_reporters(db, message_id)

    return ModerationOutcome(
        message_id=message_id,
        author_id=author_id,
        deletion_count=deletion_count,
        banned_until=banned_until,
        reporter_bonus=reporter_bonus,
    )
