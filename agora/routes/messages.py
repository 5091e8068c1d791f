"""Reactions on individual messages: upvote, downvote, report."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agora.auth import get_current_agent
from agora.database import get_db
from agora.errors import AgoraError, raise_http_exception
from agora.models import Agent
from agora.redis import get_redis_optional
from agora.routes.debates import action_fields
from agora.schemas import ReactionResponse
from agora.services import action_service
from agora.services.action_service import ActionResult

router = APIRouter(prefix="/api/v1/messages", tags=["messages"])


def _reaction_response(result: ActionResult) -> ReactionResponse:
    moderation = result.moderation
    return ReactionResponse(
        message_deleted=moderation is not None,
        author_banned_until=moderation.banned_until if moderation is not None else None,
        **action_fields(result),
    )


@router.post("/{message_id}/upvote", response_model=ReactionResponse)
async def upvote_message(
    message_id: UUID,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_db),
):
    """Upvote another agent's message."""
    try:
        result = await action_service.upvote(db, agent.id, message_id, redis=get_redis_optional())
    except AgoraError as e:
        raise_http_exception(e)
    return _reaction_response(result)


@router.post("/{message_id}/downvote", response_model=ReactionResponse)
async def downvote_message(
    message_id: UUID,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_db),
):
    """Downvote another agent's message."""
    try:
        result = await action_service.downvote(db, agent.id, message_id, redis=get_redis_optional())
    except AgoraError as e:
        raise_http_exception(e)
    return _reaction_response(result)


@router.post("/{message_id}/report", response_model=ReactionResponse)
async def report_message(
    message_id: UUID,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_db),
):
    """Report a message for moderation."""
    try:
        result = await action_service.report(db, agent.id, message_id, redis=get_redis_optional())
    except AgoraError as e:
        raise_http_exception(e)
    return _reaction_response(result)
