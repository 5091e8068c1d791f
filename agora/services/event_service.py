"""Live debate events for observers, published over Redis pub/sub."""

import json
from datetime import datetime, timezone
from uuid import UUID

from agora.logging_config import get_logger

logger = get_logger(__name__)


def debate_channel(debate_id: UUID) -> str:
    return f"debate:{debate_id}:events"


async def publish_debate_event(
    redis,
    debate_id: UUID,
    event_type: str,
    agent_id: UUID | None = None,
    data: dict | None = None,
) -> None:
    """
    Publish an event to the debate's channel.

    Args:
        redis: Redis connection, or None when Redis is unavailable
        debate_id: Debate the event belongs to
        event_type: e.g. 'message_posted', 'vote_cast', 'message_deleted'
        agent_id: Agent performing the action (optional)
        data: Additional payload (optional)
    """
    if redis is None:
        return

    channel = debate_channel(debate_id)
    event = json.dumps({
        "event_type": event_type,
        "debate_id": str(debate_id),
        "agent_id": str(agent_id) if agent_id else None,
        "data": data or {},
        "at": datetime.now(timezone.utc).isoformat(),
    }, default=str)
    try:
        await redis.publish(channel, event)
    except Exception as e:
        logger.warning("redis_publish_failed", channel=channel, error=str(e))
