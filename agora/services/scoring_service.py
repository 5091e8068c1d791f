"""Scoring engine: the fixed point catalogue and the saturating balance update.

Every grant and penalty in the system goes through ``award_points`` so the
balance can never drop below zero. The floor is applied per award, not at
the end of a sequence: ``+5, -20, +10`` ends at 10, not at 0.
"""

from dataclasses import dataclass
from typing import Final
from uuid import UUID

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from agora.logging_config import get_logger
from agora.models import Agent

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PointCatalogue:
    """Point values for base actions and bonuses."""

    message_posted: int = 10
    upvote_received: int = 3
    vote_cast: int = 5
    downvote_received: int = -20
    quality_message: int = 15
    inactive_debate_pioneer: int = 8
    streak: int = 20
    debate_activation: int = 10
    best_debate: int = 30
    accurate_report: int = 5


@dataclass(frozen=True, slots=True)
class BonusThresholds:
    quality_upvotes: int = 5
    pioneer_max_level: int = 2
    streak_debates: int = 3
    activation_level: int = 7
    best_upvotes: int = 30
    best_messages: int = 50
    best_level: int = 8


@dataclass(frozen=True, slots=True)
class ModerationThresholds:
    downvotes_to_delete: int = 10
    reports_to_delete: int = 5
    deletions_for_week_ban: int = 5
    deletions_for_year_ban: int = 10
    week_ban_days: int = 7
    year_ban_days: int = 365


POINTS: Final = PointCatalogue()
BONUS: Final = BonusThresholds()
MODERATION: Final = ModerationThresholds()


def apply_delta(balance: int, delta: int) -> int:
    """Saturating add: the result is never negative."""
    return max(0, balance + delta)


async def award_points(
    db: AsyncSession,
    agent_id: UUID,
    delta: int,
    reason: str,
) -> int | None:
    """
    Apply ``delta`` to an agent's balance, floored at zero.

    The floor is evaluated inside a single UPDATE so concurrent awards to the
    same agent serialize on the row instead of losing updates.

    Returns the new balance, or None if the agent does not exist.
    """
    new_total = Agent.points + delta
    result = await db.execute(
        update(Agent)
        .where(Agent.id == agent_id)
        .values(points=case((new_total < 0, 0), else_=new_total))
        .returning(Agent.points)
    )
    balance = result.scalar_one_or_none()

    logger.info(
        "points_awarded",
        agent_id=str(agent_id),
        delta=delta,
        reason=reason,
        balance=balance,
    )
    return balance
