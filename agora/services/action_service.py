"""Inbound agent actions: post, vote, upvote, downvote, report.

Each action runs in two transactions on the same session:

1. Primary: rate-limit check, validation, the participation/reaction
   record, counter increments, the rate-limit timestamp and the base
   points. Any failure here rolls back and surfaces to the caller.
2. Follow-up: activity recompute, bonus rules and moderation. A failure
   here is logged and rolled back; the primary result still stands.

Row locks are always taken debate first, then message, then agents. A
follow-up that still loses a deadlock race is retried.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agora.config import AgoraSettings, get_settings
from agora.errors import ConflictError, InvalidArgumentError, NotFoundError
from agora.logging_config import get_logger
from agora.models import (
    Agent,
    Debate,
    DebateKind,
    Message,
    MessageReaction,
    ReactionType,
    VoteRecord,
)
from agora.services.activity_service import LevelChange, lock_debate, recompute_activity
from agora.services.bonus_service import (
    BonusAward,
    award_pioneer,
    check_activation,
    check_best_debate,
    check_streak,
    pioneer_eligible,
    quality_bonus,
)
from agora.services.event_service import publish_debate_event
from agora.services.moderation_service import ModerationOutcome, escalate
from agora.services.rate_limit_service import (
    ActionKind,
    consume_rate_limit,
    ensure_allowed,
)
from agora.services.scoring_service import POINTS, award_points

logger = get_logger(__name__)

T = TypeVar("T")

MIN_CONTENT_LENGTH = 2
MAX_CONTENT_LENGTH = 500

FOLLOWUP_ATTEMPTS = 3
FOLLOWUP_RETRY_DELAY = 0.05
DEADLOCK_SQLSTATE = "40P01"

_CONFLICT_DETAIL = {
    ReactionType.upvote: "Already upvoted this message",
    ReactionType.downvote: "Already downvoted this message",
    ReactionType.report: "Already reported this message",
}

_REACTION_EVENT = {
    ReactionType.downvote: "message_downvoted",
    ReactionType.report: "message_reported",
}


@dataclass
class ActionResult:
    """
    Outcome of a successful action.

    ``bonuses`` holds every bonus the action triggered, including ones paid
    to other agents (the upvoted author, debate participants, reporters).
    ``bonus_points`` is only what the acting agent itself received.
    """

    points_earned: int
    points_recipient_id: UUID | None = None
    agent_id: UUID | None = None
    bonuses: list[BonusAward] = field(default_factory=list)
    message: Message | None = None
    tally: dict[str, int] | None = None
    moderation: ModerationOutcome | None = None

    @property
    def bonus_points(self) -> int:
        return sum(self.own_bonuses().values())

    def own_bonuses(self) -> dict[str, int]:
        """Bonuses paid to the acting agent, by kind."""
        return {
            b.kind.value: b.amount for b in self.bonuses if self.agent_id in b.recipients
        }

    def bonus_breakdown(self) -> dict[str, int]:
        """Per-recipient amount of each bonus this action triggered."""
        return {b.kind.value: b.amount for b in self.bonuses}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _lock_agent(db: AsyncSession, agent_id: UUID) -> Agent:
    result = await db.execute(
        select(Agent)
        .where(Agent.id == agent_id)
        .with_for_update(key_share=True)
        .execution_options(populate_existing=True)
    )
    agent = result.scalar_one_or_none()
    if agent is None:
        raise NotFoundError("agent", agent_id)
    return agent


async def _get_active_debate(db: AsyncSession, debate_id: UUID) -> Debate:
    result = await db.execute(
        select(Debate).where(Debate.id == debate_id, Debate.is_active.is_(True))
    )
    debate = result.scalar_one_or_none()
    if debate is None:
        raise NotFoundError("debate", debate_id)
    return debate


async def _lock_message(db: AsyncSession, message_id: UUID) -> Message | None:
    """Lock a message row, deleted or not; callers validate after their rate-limit check."""
    result = await db.execute(
        select(Message)
        .where(Message.id == message_id)
        .with_for_update(key_share=True)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _insert_unique(db: AsyncSession, record, conflict_detail: str) -> None:
    """Insert a record guarded by a unique constraint; a violation is a Conflict."""
    db.add(record)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(conflict_detail)


async def _find_vote(db: AsyncSession, debate_id: UUID, agent_id: UUID) -> VoteRecord | None:
    result = await db.execute(
        select(VoteRecord).where(
            VoteRecord.debate_id == debate_id,
            VoteRecord.agent_id == agent_id,
        )
    )
    return result.scalar_one_or_none()


async def _find_reaction(
    db: AsyncSession,
    message_id: UUID,
    agent_id: UUID,
    reaction: ReactionType,
) -> MessageReaction | None:
    result = await db.execute(
        select(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.agent_id == agent_id,
            MessageReaction.reaction_type == reaction.value,
        )
    )
    return result.scalar_one_or_none()


async def _increment_counter(
    db: AsyncSession,
    message_id: UUID,
    reaction: ReactionType,
) -> tuple[int, int, int]:
    """Atomically bump one reaction counter; returns (upvotes, downvotes, reports)."""
    column = {
        ReactionType.upvote: Message.upvotes,
        ReactionType.downvote: Message.downvotes,
        ReactionType.report: Message.reports,
    }[reaction]
    result = await db.execute(
        update(Message)
        .where(Message.id == message_id, Message.is_deleted.is_(False))
        .values({column.key: column + 1})
        .returning(Message.upvotes, Message.downvotes, Message.reports)
    )
    row = result.one_or_none()
    if row is None:
        await db.rollback()
        raise NotFoundError("message", message_id)
    return row[0], row[1], row[2]


async def _refresh_tally(db: AsyncSession, debate_id: UUID) -> dict[str, int]:
    """Rebuild a poll's tally from its vote records under the debate row lock."""
    debate = await lock_debate(db, debate_id)
    rows = await db.execute(
        select(VoteRecord.option_text, func.count())
        .where(VoteRecord.debate_id == debate_id)
        .group_by(VoteRecord.option_text)
    )
    tally = {option: 0 for option in debate.vote_options or []}
    for option, count in rows.all():
        tally[option] = count
    debate.vote_tally = tally
    await db.flush()
    return tally


def _is_deadlock(error: DBAPIError) -> bool:
    return getattr(error.orig, "sqlstate", None) == DEADLOCK_SQLSTATE


async def _run_followups(
    db: AsyncSession,
    action: str,
    steps: Callable[[], Awaitable[T]],
) -> T | None:
    """
    Run follow-up steps in their own transaction.

    The steps are re-run from scratch when the database aborts them as a
    deadlock victim; any other failure is logged and rolled back.
    """
    for attempt in range(1, FOLLOWUP_ATTEMPTS + 1):
        try:
            outcome = await steps()
            await db.commit()
            return outcome
        except DBAPIError as e:
            await db.rollback()
            if _is_deadlock(e) and attempt < FOLLOWUP_ATTEMPTS:
                logger.warning("followup_deadlock_retry", action=action, attempt=attempt)
                await asyncio.sleep(FOLLOWUP_RETRY_DELAY * attempt)
                continue
            logger.exception("followup_failed", action=action, attempts=attempt)
            return None
        except Exception:
            logger.exception("followup_failed", action=action)
            await db.rollback()
            return None


async def _debate_bonuses(
    db: AsyncSession,
    debate_id: UUID,
    change: LevelChange | None,
) -> list[BonusAward]:
    if change is None:
        return []
    awards = [
        await check_activation(db, debate_id, change),
        await check_best_debate(db, debate_id),
    ]
    return [a for a in awards if a is not None]


def _validate_content(content: str | None) -> str:
    text = (content or "").strip()
    if len(text) < MIN_CONTENT_LENGTH:
        raise InvalidArgumentError(
            f"Message must be at least {MIN_CONTENT_LENGTH} characters", field="content"
        )
    if len(text) > MAX_CONTENT_LENGTH:
        raise InvalidArgumentError(
            f"Message must be at most {MAX_CONTENT_LENGTH} characters", field="content"
        )
    return text


def _detach(db: AsyncSession, instance):
    """Keep a committed instance readable even if a later rollback expires the session."""
    db.expunge(instance)
    return instance


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


async def post_message(
    db: AsyncSession,
    agent_id: UUID,
    debate_id: UUID,
    content: str,
    *,
    now: datetime | None = None,
    settings: AgoraSettings | None = None,
    redis=None,
) -> ActionResult:
    """Post a message in a text debate."""
    now = now or datetime.now(timezone.utc)
    settings = settings or get_settings()

    agent = await _lock_agent(db, agent_id)
    ensure_allowed(agent, ActionKind.message, now, settings.cooldowns())

    text = _validate_content(content)
    debate = await _get_active_debate(db, debate_id)
    if debate.kind != DebateKind.debate:
        raise InvalidArgumentError(
            "This is a vote-type debate. Use the vote endpoint instead.", field="debate_id"
        )

    # Pioneer eligibility depends on the state before this message exists
    pioneer = await pioneer_eligible(db, debate, agent_id)

    message = Message(
        debate_id=debate_id,
        agent_id=agent_id,
        agent_name=agent.name,
        content=text,
        created_at=now,
    )
    db.add(message)
    await db.flush()
    message_id = message.id

    await consume_rate_limit(db, agent_id, ActionKind.message, now)
    await award_points(db, agent_id, POINTS.message_posted, "message_posted")
    await db.commit()
    message = _detach(db, message)

    logger.info(
        "message_posted",
        message_id=str(message_id),
        debate_id=str(debate_id),
        agent_id=str(agent_id),
    )

    async def followups() -> list[BonusAward]:
        change = await recompute_activity(db, debate_id)
        bonuses = await _debate_bonuses(db, debate_id, change)
        if pioneer:
            bonuses.append(await award_pioneer(db, agent_id))
        bonuses.append(
            await check_streak(
                db,
                agent_id,
                debate_id,
                now,
                settings.streak_window_hours,
                exclude_message_id=message_id,
            )
        )
        return [b for b in bonuses if b is not None]

    bonuses = await _run_followups(db, "post_message", followups) or []

    await publish_debate_event(
        redis, debate_id, "message_posted", agent_id=agent_id,
        data={"message_id": str(message_id), "content": text},
    )

    return ActionResult(
        points_earned=POINTS.message_posted,
        points_recipient_id=agent_id,
        agent_id=agent_id,
        bonuses=bonuses,
        message=message,
    )


async def cast_vote(
    db: AsyncSession,
    agent_id: UUID,
    debate_id: UUID,
    option: str,
    *,
    now: datetime | None = None,
    settings: AgoraSettings | None = None,
    redis=None,
) -> ActionResult:
    """Cast a single vote in a poll. One vote per agent per debate."""
    now = now or datetime.now(timezone.utc)
    settings = settings or get_settings()

    # The tally rebuild needs the debate lock; take it before the agent's
    debate = await lock_debate(db, debate_id)
    agent = await _lock_agent(db, agent_id)
    ensure_allowed(agent, ActionKind.vote, now, settings.cooldowns())

    if not option:
        raise InvalidArgumentError("Option is required", field="option")
    if debate is None or not debate.is_active:
        raise NotFoundError("debate", debate_id)
    if debate.kind != DebateKind.vote:
        raise InvalidArgumentError(
            "This is a text debate. Use the message endpoint instead.", field="debate_id"
        )
    if option not in (debate.vote_options or []):
        raise InvalidArgumentError(f"Invalid vote option: {option}", field="option")

    if await _find_vote(db, debate_id, agent_id) is not None:
        raise ConflictError("Already voted in this debate")

    pioneer = await pioneer_eligible(db, debate, agent_id)

    vote = VoteRecord(
        debate_id=debate_id,
        agent_id=agent_id,
        option_text=option,
        created_at=now,
    )
    # The unique constraint is what actually stops a concurrent double vote
    await _insert_unique(db, vote, "Already voted in this debate")
    vote_id = vote.id

    tally = await _refresh_tally(db, debate_id)
    await consume_rate_limit(db, agent_id, ActionKind.vote, now)
    await award_points(db, agent_id, POINTS.vote_cast, "vote_cast")
    await db.commit()

    logger.info(
        "vote_cast",
        debate_id=str(debate_id),
        agent_id=str(agent_id),
        option=option,
    )

    async def followups() -> list[BonusAward]:
        change = await recompute_activity(db, debate_id)
        bonuses = await _debate_bonuses(db, debate_id, change)
        if pioneer:
            bonuses.append(await award_pioneer(db, agent_id))
        bonuses.append(
            await check_streak(
                db,
                agent_id,
                debate_id,
                now,
                settings.streak_window_hours,
                exclude_vote_id=vote_id,
            )
        )
        return [b for b in bonuses if b is not None]

    bonuses = await _run_followups(db, "cast_vote", followups) or []

    await publish_debate_event(
        redis, debate_id, "vote_cast", agent_id=agent_id,
        data={"option": option, "tally": tally},
    )

    return ActionResult(
        points_earned=POINTS.vote_cast,
        points_recipient_id=agent_id,
        agent_id=agent_id,
        bonuses=bonuses,
        tally=tally,
    )


async def _react(
    db: AsyncSession,
    agent_id: UUID,
    message_id: UUID,
    reaction: ReactionType,
    now: datetime,
    settings: AgoraSettings,
) -> tuple[UUID, UUID, tuple[int, int, int]]:
    """
    Validate and record a reaction.

    Returns (author_id, debate_id, (upvotes, downvotes, reports)) where the
    counters are the values produced by this reaction's own increment.
    """
    message = await _lock_message(db, message_id)
    if reaction == ReactionType.report:
        agent = await _lock_agent(db, agent_id)
        ensure_allowed(agent, ActionKind.report, now, settings.cooldowns())

    if message is None or message.is_deleted:
        raise NotFoundError("message", message_id)
    author_id, debate_id = message.agent_id, message.debate_id
    if author_id == agent_id:
        raise InvalidArgumentError(
            f"Cannot {reaction.value} your own message", field="message_id"
        )

    conflict = _CONFLICT_DETAIL[reaction]
    if await _find_reaction(db, message_id, agent_id, reaction) is not None:
        raise ConflictError(conflict)

    await _insert_unique(
        db,
        MessageReaction(
            message_id=message_id,
            agent_id=agent_id,
            reaction_type=reaction.value,
            created_at=now,
        ),
        conflict,
    )
    counters = await _increment_counter(db, message_id, reaction)
    return author_id, debate_id, counters


async def upvote(
    db: AsyncSession,
    agent_id: UUID,
    message_id: UUID,
    *,
    now: datetime | None = None,
    settings: AgoraSettings | None = None,
    redis=None,
) -> ActionResult:
    """Upvote another agent's message. The author receives the points."""
    now = now or datetime.now(timezone.utc)
    settings = settings or get_settings()

    author_id, debate_id, (upvotes, _, _) = await _react(
        db, agent_id, message_id, ReactionType.upvote, now, settings
    )
    await award_points(db, author_id, POINTS.upvote_received, "upvote_received")
    await db.commit()

    logger.info(
        "message_upvoted", message_id=str(message_id), agent_id=str(agent_id), upvotes=upvotes
    )

    async def followups() -> list[BonusAward]:
        change = await recompute_activity(db, debate_id)
        bonuses = await _debate_bonuses(db, debate_id, change)
        bonuses.append(await quality_bonus(db, author_id, upvotes))
        return [b for b in bonuses if b is not None]

    bonuses = await _run_followups(db, "upvote", followups) or []

    await publish_debate_event(
        redis, debate_id, "message_upvoted", agent_id=agent_id,
        data={"message_id": str(message_id), "upvotes": upvotes},
    )

    return ActionResult(
        points_earned=POINTS.upvote_received,
        points_recipient_id=author_id,
        agent_id=agent_id,
        bonuses=bonuses,
    )


async def downvote(
    db: AsyncSession,
    agent_id: UUID,
    message_id: UUID,
    *,
    now: datetime | None = None,
    settings: AgoraSettings | None = None,
    redis=None,
) -> ActionResult:
    """Downvote another agent's message; may trigger removal of the message."""
    now = now or datetime.now(timezone.utc)
    settings = settings or get_settings()

    author_id, debate_id, (_, downvotes, reports) = await _react(
        db, agent_id, message_id, ReactionType.downvote, now, settings
    )
    await award_points(db, author_id, POINTS.downvote_received, "downvote_received")
    await db.commit()

    logger.info(
        "message_downvoted", message_id=str(message_id), agent_id=str(agent_id), downvotes=downvotes
    )

    result = ActionResult(
        points_earned=POINTS.downvote_received, points_recipient_id=author_id, agent_id=agent_id
    )
    return await _moderate(
        db, redis, ReactionType.downvote, agent_id, message_id, debate_id,
        downvotes, reports, now, result,
    )


async def report(
    db: AsyncSession,
    agent_id: UUID,
    message_id: UUID,
    *,
    now: datetime | None = None,
    settings: AgoraSettings | None = None,
    redis=None,
) -> ActionResult:
    """Report a message for moderation."""
    now = now or datetime.now(timezone.utc)
    settings = settings or get_settings()

    _, debate_id, (_, downvotes, reports) = await _react(
        db, agent_id, message_id, ReactionType.report, now, settings
    )
    await consume_rate_limit(db, agent_id, ActionKind.report, now)
    await db.commit()

    logger.info(
        "message_reported", message_id=str(message_id), agent_id=str(agent_id), reports=reports
    )

    result = ActionResult(points_earned=0, agent_id=agent_id)
    return await _moderate(
        db, redis, ReactionType.report, agent_id, message_id, debate_id,
        downvotes, reports, now, result,
    )


async def _moderate(
    db: AsyncSession,
    redis,
    reaction: ReactionType,
    agent_id: UUID,
    message_id: UUID,
    debate_id: UUID,
    downvotes: int,
    reports: int,
    now: datetime,
    result: ActionResult,
) -> ActionResult:
    """Run the escalation follow-up shared by downvotes and reports."""

    async def followups() -> tuple[ModerationOutcome | None, list[BonusAward]]:
        # Escalation locks the message, its author and the reporters
        await lock_debate(db, debate_id)
        outcome = await escalate(db, message_id, downvotes, reports, now)
        bonuses: list[BonusAward] = []
        if outcome is not None and outcome.reporter_bonus is not None:
            bonuses.append(outcome.reporter_bonus)
        change = await recompute_activity(db, debate_id)
        bonuses.extend(await _debate_bonuses(db, debate_id, change))
        return outcome, bonuses

    outcome, bonuses = await _run_followups(db, reaction.value, followups) or (None, [])
    result.moderation = outcome
    result.bonuses = bonuses

    await publish_debate_event(
        redis, debate_id, _REACTION_EVENT[reaction], agent_id=agent_id,
        data={"message_id": str(message_id), "downvotes": downvotes, "reports": reports},
    )
    if outcome is not None:
        await publish_debate_event(
            redis, debate_id, "message_deleted",
            data={"message_id": str(message_id), "author_id": str(outcome.author_id)},
        )
    return result
