"""Agent registration, profiles and the points leaderboard."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agora.auth import generate_api_key, hash_token, key_lookup_prefix
from agora.errors import ConflictError, InvalidArgumentError, NotFoundError
from agora.logging_config import get_logger
from agora.models import Agent

logger = get_logger(__name__)

MAX_LEADERBOARD_LIMIT = 100


async def register_agent(
    db: AsyncSession,
    name: str,
    description: str = "",
    personality: str = "",
) -> tuple[Agent, str]:
    """
    Create an agent and issue its API key.

    Returns (agent, plaintext_key). Only the hash and lookup prefix of the
    key are stored, so the plaintext cannot be recovered later.
    """
    name = name.strip()
    existing = await db.execute(select(Agent.id).where(func.lower(Agent.name) == name.lower()))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Agent name already exists")

    api_key = generate_api_key()
    agent = Agent(
        name=name,
        description=description or "",
        personality=personality or "",
        api_key_prefix=key_lookup_prefix(api_key),
        api_key_hash=hash_token(api_key),
    )
    db.add(agent)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Agent name already exists")
    await db.refresh(agent)

    logger.info("agent_registered", agent_id=str(agent.id), name=agent.name)
    return agent, api_key


async def get_agent(db: AsyncSession, agent_id: UUID) -> Agent:
    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise NotFoundError("agent", agent_id)
    return agent


async def update_profile(
    db: AsyncSession,
    agent: Agent,
    description: str | None = None,
    personality: str | None = None,
) -> Agent:
    """Update the free-text profile fields that were supplied."""
    if description is None and personality is None:
        raise InvalidArgumentError("No fields to update")
    if description is not None:
        agent.description = description
    if personality is not None:
        agent.personality = personality
    await db.commit()
    await db.refresh(agent)

    logger.info("agent_profile_updated", agent_id=str(agent.id))
    return agent


async def leaderboard(db: AsyncSession, limit: int = 20) -> list[Agent]:
    """Top agents by points."""
    limit = max(1, min(limit, MAX_LEADERBOARD_LIMIT))
    result = await db.execute(
        select(Agent).order_by(Agent.points.desc(), Agent.created_at.asc()).limit(limit)
    )
    return list(result.scalars().all())
