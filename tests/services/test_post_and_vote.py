"""Service tests for posting messages and casting votes."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from agora.errors import ConflictError, InvalidArgumentError, NotFoundError, RateLimitedError
from agora.models import Message, VoteRecord
from agora.services import action_service
from tests.factories import AgentFactory, DebateFactory, fetch_agent, fetch_debate


# ===========================================
# POST MESSAGE
# ===========================================


class TestPostMessage:
    @pytest.mark.asyncio
    async def test_first_message_in_quiet_debate_earns_pioneer(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        result = await action_service.post_message(
            db, agent_id, debate_id, "Opening argument", now=now, settings=settings
        )

        assert result.points_earned == 10
        assert result.bonus_breakdown() == {"inactive_debate": 8}
        assert result.message.content == "Opening argument"
        assert (await fetch_agent(db, agent_id)).points == 18

    @pytest.mark.asyncio
    async def test_second_message_earns_no_pioneer(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        await action_service.post_message(db, agent_id, debate_id, "First", now=now, settings=settings)
        result = await action_service.post_message(
            db, agent_id, debate_id, "Second", now=now + timedelta(seconds=1), settings=settings
        )

        assert result.bonuses == []
        assert (await fetch_agent(db, agent_id)).points == 28

    @pytest.mark.asyncio
    async def test_no_pioneer_in_active_debate(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db, activity_level=3)).id

        result = await action_service.post_message(
            db, agent_id, debate_id, "Late to the party", now=now, settings=settings
        )
        assert "inactive_debate" not in result.bonus_breakdown()

    @pytest.mark.asyncio
    async def test_updates_debate_aggregates(self, db, now, settings):
        a1 = (await AgentFactory.create(db)).id
        a2 = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        await action_service.post_message(db, a1, debate_id, "One", now=now, settings=settings)
        await action_service.post_message(db, a2, debate_id, "Two", now=now, settings=settings)

        debate = await fetch_debate(db, debate_id)
        assert debate.message_count == 2
        assert debate.participant_count == 2
        assert debate.activity_level == 1  # (2*2 + 10*2) // 20

    @pytest.mark.parametrize("content", ["", " ", "x", "y" * 501])
    @pytest.mark.asyncio
    async def test_content_length_validated(self, db, now, settings, content):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        with pytest.raises(InvalidArgumentError):
            await action_service.post_message(db, agent_id, debate_id, content, now=now, settings=settings)

    @pytest.mark.asyncio
    async def test_vote_kind_debate_rejects_messages(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create_poll(db)).id

        with pytest.raises(InvalidArgumentError):
            await action_service.post_message(db, agent_id, debate_id, "Hello", now=now, settings=settings)

    @pytest.mark.asyncio
    async def test_inactive_debate_not_found(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db, is_active=False)).id

        with pytest.raises(NotFoundError):
            await action_service.post_message(db, agent_id, debate_id, "Hello", now=now, settings=settings)

    @pytest.mark.asyncio
    async def test_configured_message_cooldown(self, db, now, settings):
        settings = settings.model_copy(update={"message_cooldown_seconds": 300})
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        await action_service.post_message(db, agent_id, debate_id, "First", now=now, settings=settings)
        with pytest.raises(RateLimitedError) as exc_info:
            await action_service.post_message(
                db, agent_id, debate_id, "Too soon", now=now + timedelta(minutes=1), settings=settings
            )
        assert exc_info.value.wait_seconds == 240

    @pytest.mark.asyncio
    async def test_followup_failure_keeps_primary_write(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        with patch(
            "agora.services.action_service.recompute_activity",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            result = await action_service.post_message(
                db, agent_id, debate_id, "Still posted", now=now, settings=settings
            )

        assert result.points_earned == 10
        assert result.bonuses == []
        assert result.message.content == "Still posted"
        count = (
            await db.execute(select(func.count()).where(Message.debate_id == debate_id))
        ).scalar()
        assert count == 1
        assert (await fetch_agent(db, agent_id)).points == 10

    @pytest.mark.asyncio
    async def test_publishes_event(self, db, now, settings, mock_redis):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        await action_service.post_message(
            db, agent_id, debate_id, "Observed", now=now, settings=settings, redis=mock_redis
        )

        mock_redis.publish.assert_awaited_once()
        channel = mock_redis.publish.await_args.args[0]
        assert channel == f"debate:{debate_id}:events"


# ===========================================
# CAST VOTE
# ===========================================


class TestCastVote:
    @pytest.mark.asyncio
    async def test_vote_records_tally_and_points(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create_poll(db)).id

        result = await action_service.cast_vote(db, agent_id, debate_id, "yes", now=now, settings=settings)

        assert result.tally == {"yes": 1, "no": 0}
        assert result.points_earned == 5
        assert result.bonus_breakdown() == {"inactive_debate": 8}
        debate = await fetch_debate(db, debate_id)
        assert debate.vote_tally == {"yes": 1, "no": 0}
        assert debate.votes_cast == 1

    @pytest.mark.asyncio
    async def test_second_vote_conflicts(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create_poll(db)).id

        await action_service.cast_vote(db, agent_id, debate_id, "yes", now=now, settings=settings)
        with pytest.raises(ConflictError):
            await action_service.cast_vote(
                db, agent_id, debate_id, "no", now=now + timedelta(minutes=5), settings=settings
            )

    @pytest.mark.asyncio
    async def test_unique_constraint_catches_racing_vote(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create_poll(db)).id

        await action_service.cast_vote(db, agent_id, debate_id, "yes", now=now, settings=settings)
        # Simulate a concurrent first vote that the pre-check could not see
        with patch("agora.services.action_service._find_vote", AsyncMock(return_value=None)):
            with pytest.raises(ConflictError):
                await action_service.cast_vote(
                    db, agent_id, debate_id, "no", now=now + timedelta(minutes=5), settings=settings
                )

        count = (
            await db.execute(select(func.count()).where(VoteRecord.debate_id == debate_id))
        ).scalar()
        assert count == 1
        assert (await fetch_agent(db, agent_id)).points == 5 + 8

    @pytest.mark.asyncio
    async def test_unknown_option(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create_poll(db)).id

        with pytest.raises(InvalidArgumentError):
            await action_service.cast_vote(db, agent_id, debate_id, "maybe", now=now, settings=settings)

    @pytest.mark.asyncio
    async def test_text_debate_rejects_votes(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id

        with pytest.raises(InvalidArgumentError):
            await action_service.cast_vote(db, agent_id, debate_id, "yes", now=now, settings=settings)

    @pytest.mark.asyncio
    async def test_vote_cooldown_across_debates(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        polls = [(await DebateFactory.create_poll(db)).id for _ in range(3)]

        await action_service.cast_vote(db, agent_id, polls[0], "yes", now=now, settings=settings)

        with pytest.raises(RateLimitedError) as exc_info:
            await action_service.cast_vote(
                db, agent_id, polls[1], "yes", now=now + timedelta(seconds=29), settings=settings
            )
        assert exc_info.value.wait_seconds == 1
        assert exc_info.value.retry_at == now + timedelta(seconds=30)

        result = await action_service.cast_vote(
            db, agent_id, polls[1], "yes", now=now + timedelta(seconds=30), settings=settings
        )
        assert result.points_earned == 5

    @pytest.mark.asyncio
    async def test_failed_validation_does_not_consume_cooldown(self, db, now, settings):
        agent_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create_poll(db)).id

        with pytest.raises(InvalidArgumentError):
            await action_service.cast_vote(db, agent_id, debate_id, "maybe", now=now, settings=settings)
        await db.rollback()

        result = await action_service.cast_vote(
            db, agent_id, debate_id, "no", now=now + timedelta(seconds=1), settings=settings
        )
        assert result.tally == {"yes": 0, "no": 1}
