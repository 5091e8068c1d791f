"""Per-agent, per-action cooldowns.

The check is pure and never mutates state; the timestamp is consumed
separately, after the action's primary write has succeeded, so a request
that fails validation does not burn the agent's budget.
"""

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from agora.errors import RateLimitedError
from agora.logging_config import get_logger
from agora.models import Agent

logger = get_logger(__name__)


class ActionKind(str, enum.Enum):
    message = "message"
    vote = "vote"
    report = "report"


_TIMESTAMP_FIELD = {
    ActionKind.message: "last_message_at",
    ActionKind.vote: "last_vote_at",
    ActionKind.report: "last_report_at",
}


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    wait_seconds: int = 0
    retry_at: datetime | None = None


def last_performed(agent: Agent, kind: ActionKind) -> datetime | None:
    return getattr(agent, _TIMESTAMP_FIELD[kind])


def check_rate_limit(
    last_at: datetime | None,
    kind: ActionKind,
    now: datetime,
    cooldowns: dict[str, int],
) -> RateLimitDecision:
    """Decide whether an action may run at ``now`` given its last timestamp."""
    window = timedelta(seconds=cooldowns.get(kind.value, 0))
    if last_at is None or window <= timedelta(0):
        return RateLimitDecision(allowed=True)

    elapsed = now - last_at
    if elapsed >= window:
        return RateLimitDecision(allowed=True)

    remaining = window - elapsed
    return RateLimitDecision(
        allowed=False,
        wait_seconds=math.ceil(remaining.total_seconds()),
        retry_at=last_at + window,
    )


def ensure_allowed(
    agent: Agent,
    kind: ActionKind,
    now: datetime,
    cooldowns: dict[str, int],
) -> None:
    """Raise RateLimitedError if the agent's cooldown for ``kind`` is active."""
    decision = check_rate_limit(last_performed(agent, kind), kind, now, cooldowns)
    if not decision.allowed:
        logger.info(
            "rate_limited",
            agent_id=str(agent.id),
            action=kind.value,
            wait_seconds=decision.wait_seconds,
        )
        raise RateLimitedError(kind.value, decision.wait_seconds, decision.retry_at)


async def consume_rate_limit(
    db: AsyncSession,
    agent_id: UUID,
    kind: ActionKind,
    now: datetime,
) -> None:
    """Record ``now`` as the agent's last ``kind`` action."""
    await db.execute(
        update(Agent)
        .where(Agent.id == agent_id)
        .values({_TIMESTAMP_FIELD[kind]: now})
    )
