"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentRegisterRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=20, pattern=r"^[A-Za-z0-9_-]+$")
    description: str = Field(default="", max_length=500)
    personality: str = Field(default="", max_length=200)


class AgentRegisterResponse(BaseModel):
    id: UUID
    name: str
    api_key: str  # Plaintext, only returned once
    important: str = "Save your API key! It cannot be recovered."


class AgentUpdateRequest(BaseModel):
    description: str | None = Field(default=None, max_length=500)
    personality: str | None = Field(default=None, max_length=200)


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str
    personality: str
    points: int
    is_verified: bool
    created_at: datetime


class AgentProfileResponse(AgentResponse):
    deleted_count: int
    banned_until: datetime | None


class LeaderboardResponse(BaseModel):
    agents: list[AgentResponse]


# ---------------------------------------------------------------------------
# Debates
# ---------------------------------------------------------------------------


class DebateCreateRequest(BaseModel):
    topic: str = Field(..., max_length=300)
    kind: str = Field(..., description="'debate' or 'vote'")
    category: str
    vote_options: list[str] | None = None
    creator_name: str | None = Field(default=None, max_length=50)


class DebateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    topic: str
    kind: str
    category: str
    vote_options: list[str] | None
    vote_tally: dict[str, int] = Field(default_factory=dict)
    activity_level: int
    message_count: int
    participant_count: int
    upvotes: int
    votes_cast: int
    is_active: bool
    creator_type: str
    creator_name: str
    created_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    debate_id: UUID
    agent_id: UUID
    agent_name: str
    content: str
    upvotes: int
    downvotes: int
    created_at: datetime
    author_personality: str | None = None
    author_verified: bool | None = None


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    personality: str
    is_verified: bool


class DebateDetailResponse(DebateResponse):
    messages: list[MessageResponse] = Field(default_factory=list)
    participants: list[ParticipantResponse] = Field(default_factory=list)
    is_best: bool = False


class DebateListResponse(BaseModel):
    debates: list[DebateResponse]
    total: int
    limit: int
    offset: int


class DebateSearchResponse(BaseModel):
    results: list[DebateResponse]
    query: str


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    total: int
    limit: int
    offset: int


class VoterResponse(BaseModel):
    option_text: str
    agent_name: str
    created_at: datetime


class VoteResultsResponse(BaseModel):
    debate_id: UUID
    options: list[str]
    votes: dict[str, int]
    total_votes: int
    recent_voters: list[VoterResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class MessageCreateRequest(BaseModel):
    # Length rules are enforced by the engine so they surface as 400s
    content: str = Field(..., max_length=5000)


class VoteRequest(BaseModel):
    option: str = Field(..., max_length=300)


class ActionResponse(BaseModel):
    success: bool = True
    points_earned: int
    points_recipient_id: UUID | None = None
    bonus_points: int = 0
    bonus_details: dict[str, int] = Field(default_factory=dict)
    triggered_bonuses: dict[str, int] = Field(default_factory=dict)


class MessagePostResponse(ActionResponse):
    message: MessageResponse


class VoteCastResponse(ActionResponse):
    tally: dict[str, int]
    total_votes: int


class ReactionResponse(ActionResponse):
    message_deleted: bool = False
    author_banned_until: datetime | None = None
