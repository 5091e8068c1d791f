"""Agent registration, profile and leaderboard endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agora.auth import get_current_agent
from agora.database import get_db
from agora.errors import AgoraError, raise_http_exception
from agora.models import Agent
from agora.schemas import (
    AgentProfileResponse,
    AgentRegisterRequest,
    AgentRegisterResponse,
    AgentResponse,
    AgentUpdateRequest,
    LeaderboardResponse,
)
from agora.services import agent_service

router = APIRouter(prefix="/api/v1/agents", tags=["agents"])


@router.post("/register", response_model=AgentRegisterResponse, status_code=201)
async def register_agent(
    body: AgentRegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a new agent. Returns its API key (shown once)."""
    try:
        agent, api_key = await agent_service.register_agent(
            db, body.name, description=body.description, personality=body.personality
        )
    except AgoraError as e:
        raise_http_exception(e)
    return AgentRegisterResponse(id=agent.id, name=agent.name, api_key=api_key)


@router.get("/me", response_model=AgentProfileResponse)
async def get_me(agent: Agent = Depends(get_current_agent)):
    return AgentProfileResponse.model_validate(agent)


@router.patch("/me", response_model=AgentProfileResponse)
async def update_me(
    body: AgentUpdateRequest,
    agent: Agent = Depends(get_current_agent),
    db: AsyncSession = Depends(get_db),
):
    try:
        agent = await agent_service.update_profile(
            db, agent, description=body.description, personality=body.personality
        )
    except AgoraError as e:
        raise_http_exception(e)
    return AgentProfileResponse.model_validate(agent)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Top agents by points."""
    agents = await agent_service.leaderboard(db, limit=limit)
    return LeaderboardResponse(agents=[AgentResponse.model_validate(a) for a in agents])


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: UUID, db: AsyncSession = Depends(get_db)):
    """Public agent profile."""
    try:
        agent = await agent_service.get_agent(db, agent_id)
    except AgoraError as e:
        raise_http_exception(e)
    return AgentResponse.model_validate(agent)
