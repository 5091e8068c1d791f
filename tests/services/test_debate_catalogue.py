"""Service tests for debate creation, lookup, listing, search and poll results."""

from datetime import timedelta
from uuid import uuid4

import pytest

from agora.errors import InvalidArgumentError, NotFoundError
from agora.services import action_service, debate_service
from tests.factories import AgentFactory, DebateFactory, MessageFactory


class TestCreateDebate:
    @pytest.mark.asyncio
    async def test_human_created_poll(self, db):
        debate = await debate_service.create_debate(
            db, "Best pizza topping?", "vote", "general", vote_options=["cheese", " olives "]
        )

        assert debate.vote_options == ["cheese", "olives"]
        assert debate.vote_tally == {"cheese": 0, "olives": 0}
        assert debate.creator_type == "human"
        assert debate.creator_name == "anonymous"
        assert debate.activity_level == 0

    @pytest.mark.asyncio
    async def test_agent_created_debate(self, db):
        agent = await AgentFactory.create(db, name="socrates")

        debate = await debate_service.create_debate(
            db, "Is knowledge virtue?", "debate", "science", creator=agent
        )

        assert debate.creator_type == "agent"
        assert debate.creator_name == "socrates"
        assert debate.vote_options is None

    @pytest.mark.parametrize(
        "topic,kind,category,options",
        [
            ("Hey", "debate", "general", None),
            ("A fine topic", "essay", "general", None),
            ("A fine topic", "debate", "cooking", None),
            ("A fine topic", "vote", "general", ["only one"]),
            ("A fine topic", "vote", "general", ["same", "same"]),
        ],
    )
    @pytest.mark.asyncio
    async def test_validation(self, db, topic, kind, category, options):
        with pytest.raises(InvalidArgumentError):
            await debate_service.create_debate(db, topic, kind, category, vote_options=options)


class TestGetDebate:
    @pytest.mark.asyncio
    async def test_detail_excludes_deleted_messages(self, db, now):
        a1 = (await AgentFactory.create(db, name="zeno")).id
        a2 = (await AgentFactory.create(db, name="aristotle")).id
        debate_id = (await DebateFactory.create(db)).id
        await MessageFactory.create(db, debate_id, a1, content="first", created_at=now)
        await MessageFactory.create(
            db, debate_id, a2, content="second", created_at=now + timedelta(seconds=1)
        )
        await MessageFactory.create(db, debate_id, a2, content="gone", is_deleted=True)

        detail = await debate_service.get_debate(db, debate_id)

        assert [m.content for m in detail.messages] == ["first", "second"]
        assert [p.name for p in detail.participants] == ["aristotle", "zeno"]
        assert detail.is_best is False

    @pytest.mark.asyncio
    async def test_missing_debate(self, db):
        with pytest.raises(NotFoundError):
            await debate_service.get_debate(db, uuid4())


class TestListAndSearch:
    @pytest.mark.asyncio
    async def test_filters_and_sorting(self, db, now):
        await DebateFactory.create(db, topic="Old science", category="science", created_at=now)
        await DebateFactory.create(
            db, topic="Hot science", category="science", activity_level=9,
            created_at=now + timedelta(minutes=1),
        )
        await DebateFactory.create(db, topic="Gaming chat", category="gaming", created_at=now)
        await DebateFactory.create(
            db, topic="Closed science", category="science", is_active=False, created_at=now
        )

        debates, total = await debate_service.list_debates(
            db, category="science", active=True, sort="activity"
        )
        assert total == 2
        assert [d.topic for d in debates] == ["Hot science", "Old science"]

        debates, total = await debate_service.list_debates(db, sort="oldest", limit=1, offset=0)
        assert total == 4
        assert len(debates) == 1

    @pytest.mark.asyncio
    async def test_search_active_only(self, db):
        await DebateFactory.create(db, topic="Robots and rights", activity_level=2)
        await DebateFactory.create(db, topic="Do robots dream?", activity_level=5)
        await DebateFactory.create(db, topic="Robots closed", is_active=False)

        results = await debate_service.search_debates(db, "robots")

        assert [d.topic for d in results] == ["Do robots dream?", "Robots and rights"]

    @pytest.mark.asyncio
    async def test_search_query_too_short(self, db):
        with pytest.raises(InvalidArgumentError):
            await debate_service.search_debates(db, " r ")


class TestMessagesAndVotes:
    @pytest.mark.asyncio
    async def test_top_sort(self, db, now):
        author_id = (await AgentFactory.create(db)).id
        debate_id = (await DebateFactory.create(db)).id
        await MessageFactory.create(db, debate_id, author_id, content="meh", upvotes=1, created_at=now)
        await MessageFactory.create(
            db, debate_id, author_id, content="great", upvotes=9,
            created_at=now + timedelta(seconds=1),
        )

        messages, total = await debate_service.list_messages(db, debate_id, sort="top")
        assert total == 2
        assert [m.content for m in messages] == ["great", "meh"]

        messages, _ = await debate_service.list_messages(db, debate_id)
        assert [m.content for m in messages] == ["meh", "great"]

    @pytest.mark.asyncio
    async def test_vote_results(self, db, now, settings):
        voter_ids = await AgentFactory.create_many(db, 3)
        debate_id = (await DebateFactory.create_poll(db)).id
        for i, (voter_id, option) in enumerate(zip(voter_ids, ["yes", "no", "yes"])):
            await action_service.cast_vote(
                db, voter_id, debate_id, option, now=now + timedelta(seconds=i), settings=settings
            )

        results = await debate_service.vote_results(db, debate_id)

        assert results.tally == {"yes": 2, "no": 1}
        assert results.total_votes == 3
        assert [v.option_text for v in results.recent_voters] == ["yes", "no", "yes"]

    @pytest.mark.asyncio
    async def test_vote_results_for_text_debate(self, db):
        debate_id = (await DebateFactory.create(db)).id
        with pytest.raises(InvalidArgumentError):
            await debate_service.vote_results(db, debate_id)
