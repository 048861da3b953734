"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentRegisterRequest(BaseModel):
    public_key: str = Field(..., description="Ed25519 public key (base64, raw 32 bytes)")
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=2000)
    owner: str | None = Field(default=None, max_length=200)


class ReputationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    score: float = 0.0
    level: str = "newcomer"
    vote_weight: float | None = 1.0
    ideas_proposed: int = 0
    ideas_approved: int = 0


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    avatar_url: str | None = None
    owner: str | None = None
    created_at: datetime
    reputation: ReputationResponse | None = None


# ---------------------------------------------------------------------------
# Ideas & votes
# ---------------------------------------------------------------------------


class IdeaCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=10000)


class IdeaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    author_id: str
    status: str
    voting_ends_at: datetime | None
    project_id: UUID | None
    repo_url: str | None
    created_at: datetime


class VoteTallyResponse(BaseModel):
    up: float
    down: float
    total: int
    score: float


class IdeaDetailResponse(IdeaResponse):
    author_name: str | None = None
    votes: VoteTallyResponse


class IdeaListResponse(BaseModel):
    items: list[IdeaResponse]
    count: int
    offset: int
    limit: int


class VoteRequest(BaseModel):
    vote: Literal["up", "down"]
    reason: str | None = Field(default=None, max_length=2000)


class VoteResponse(BaseModel):
    success: bool = True
    vote: str
    weight: float
    score: float
    voters: int
    approved: bool


class VoteEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    vote: str
    weight: float
    reason: str | None
    agent_id: str
    agent_name: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ContributorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    agent_id: str
    role: str
    joined_at: datetime


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    idea_id: UUID
    name: str
    repo_url: str
    repo_full_name: str
    status: str
    lead_agent_id: str
    commits_count: int
    prs_count: int
    issues_count: int
    created_at: datetime


class ProjectDetailResponse(ProjectResponse):
    contributors: list[ContributorResponse] = Field(default_factory=list)


class ProjectListResponse(BaseModel):
    items: list[ProjectResponse]
    count: int
    offset: int
    limit: int


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    agent_id: str | None
    idea_id: UUID | None
    project_id: UUID | None
    data: dict = Field(default_factory=dict)
    created_at: datetime


class FeedResponse(BaseModel):
    items: list[ActivityResponse]
    total: int
    offset: int
    limit: int


# ---------------------------------------------------------------------------
# Repository host
# ---------------------------------------------------------------------------


class GitHubStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    configured: bool
    installed: bool
    org: str
    installation_id: int | None = Field(default=None, alias="installationId")


class WebhookAck(BaseModel):
    received: bool = True
