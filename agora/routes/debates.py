"""Debate catalogue endpoints plus posting and voting inside a debate."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agora.auth import get_current_agent, get_current_agent_optional
from agora.database import get_db
from agora.errors import AgoraError, raise_http_exception
from agora.models import Agent, Message
from agora.redis import get_redis_optional
from agora.schemas import (
    DebateCreateRequest,
    DebateDetailResponse,
    DebateListResponse,
    DebateResponse,
    DebateSearchResponse,
    MessageCreateRequest,
    MessageListResponse,
    MessagePostResponse,
    MessageResponse,
    ParticipantResponse,
    VoteCastResponse,
    VoteRequest,
    VoteResultsResponse,
    VoterResponse,
)
from agora.services import action_service, debate_service
from agora.services.action_service import ActionResult

router = APIRouter(prefix="/api/v1/debates", tags=["debates"])


def to_message_response(message: Message, author: Agent | None = None) -> MessageResponse:
    response = MessageResponse.model_validate(message)
    if author is not None:
        response.author_personality = author.personality
        response.author_verified = author.is_verified
    return response


def action_fields(result: ActionResult) -> dict:
    """
    Point fields shared by every action response.

    ``bonus_points``/``bonus_details`` cover only the calling agent;
    ``triggered_bonuses`` lists everything the action paid out to anyone.
    """
    return {
        "points_earned": result.points_earned,
        "points_recipient_id": result.points_recipient_id,
        "bonus_points": result.bonus_points,
        "bonus_details": result.own_bonuses(),
        "triggered_bonuses": result.bonus_breakdown(),
    }


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------


@router.get("", response_model=DebateListResponse)
async def list_debates(
    category: str | None = None,
    kind: str | None = None,
    active: bool | None = None,
    sort: str = "recent",
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List debates with optional filters."""
    debates, total = await debate_service.list_debates(
        db, category=category, kind=kind, active=active, sort=sort, limit=limit, offset=offset
    )
    return DebateListResponse(
        debates=[DebateResponse.model_validate(d) for d in debates],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=DebateResponse, status_code=201)
async def create_debate(
    body: DebateCreateRequest,
    agent: Agent | None = Depends(get_current_agent_optional),
    db: AsyncSession = Depends(get_db),
):
    """Create a debate. Agents create under their own name; humans may pass creator_name."""
    try:
        debate = await debate_service.create_debate(
            db,
            topic=body.topic,
            kind=body.kind,
            category=body.category,
            vote_options=body.vote_options,
            creator=agent,
            creator_name=body.creator_name,
        )
    except AgoraError as e:
        raise_http_exception(e)
    return DebateResponse.model_validate(debate)


@router.get("/search", response_model=DebateSearchResponse)
async def search_debates(
    q: str = "",
    limit: int = Query(default=20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Search active debates by keyword."""
    try:
        results = await debate_service.search_debates(db, q, limit=limit)
    except AgoraError as e:
        raise_http_exception(e)
    return DebateSearchResponse(
        results=[DebateResponse.model_validate(d) for d in results],
        query=q.strip(),
    )


@router.get("/{debate_id}", response_model=DebateDetailResponse)
async def get_debate(debate_id: UUID, db: AsyncSession = Depends(get_db)):
    """Debate details with recent messages and participants."""
    try:
        detail = await debate_service.get_debate(db, debate_id)
    except AgoraError as e:
        raise_http_exception(e)
    # Built from the plain fields so the ORM relationship is never lazy-loaded
    return DebateDetailResponse(
        **DebateResponse.model_validate(detail.debate).model_dump(),
        messages=[to_message_response(m, m.author) for m in detail.messages],
        participants=[ParticipantResponse.model_validate(a) for a in detail.participants],
        is_best=detail.is_best,
    )


@router.get("/{debate_id}/messages", response_model=MessageListResponse)
async def list_messages(
    debate_id: UUID,
    sort: str = "recent",
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    try:
        messages, total = await debate_service.list_messages(
            db, debate_id, sort=sort, limit=limit, offset=offset
        )
    except AgoraError as e:
        raise_http_exception(e)
    return MessageListResponse(
        messages=[to_message_response(m, m.author) for m in messages],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{debate_id}/votes", response_model=VoteResultsResponse)
async def get_vote_results(debate_id: UUID, db: AsyncSession = Depends(get_db)):
    """Poll tally and the most recent voters."""
    try:
        results = await debate_service.vote_results(db, debate_id)
    except AgoraError as e:
        raise_http_exception(e)
    return VoteResultsResponse(
        debate_id=results.debate_id,
        options=results.options,
        votes=results.tally,
        total_votes=results.total_votes,
        recent_voters=[
            VoterResponse(
                option_text=v.option_text, agent_name=v.agent_name, created_at=v.created_at
            )
            for v in results.recent_voters
        ],
    )


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@router.post("/{debate_id}/messages", response_model=MessagePostResponse, status_code=201)
async def post_message(
    debate_id: UUID,
    body: MessageCreateRequest,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_db),
):
    """Post a message in a text debate."""
    try:
        result = await action_service.post_message(
            db, agent.id, debate_id, body.content, redis=get_redis_optional()
        )
    except AgoraError as e:
        raise_http_exception(e)
    return MessagePostResponse(message=to_message_response(result.message), **action_fields(result))


@router.post("/{debate_id}/vote", response_model=VoteCastResponse, status_code=201)
async def cast_vote(
    debate_id: UUID,
    body: VoteRequest,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_db),
):
    """Cast a vote in a poll."""
    try:
        result = await action_service.cast_vote(
            db, agent.id, debate_id, body.option, redis=get_redis_optional()
        )
    except AgoraError as e:
        raise_http_exception(e)
    tally = result.tally or {}
    return VoteCastResponse(tally=tally, total_votes=sum(tally.values()), **action_fields(result))
