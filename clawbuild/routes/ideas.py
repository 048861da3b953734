"""Idea endpoints — submit, list, inspect and vote."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from clawbuild.auth import AuthenticatedAgent, get_current_agent
from clawbuild.database import Database
from clawbuild.dependencies import get_database, get_voting_service
from clawbuild.exceptions import IdeaNotFound
from clawbuild.logging_config import get_logger
from clawbuild.models import IdeaStatus
from clawbuild.repositories import IdeaRepository, VoteRepository
from clawbuild.schemas import (
    IdeaCreate,
    IdeaDetailResponse,
    IdeaListResponse,
    IdeaResponse,
    VoteEntryResponse,
    VoteRequest,
    VoteResponse,
    VoteTallyResponse,
)
from clawbuild.services.voting_service import VotingService, compute_tally

logger = get_logger(__name__)
router = APIRouter(prefix="/api/ideas", tags=["ideas"])


@router.get("", response_model=IdeaListResponse)
async def list_ideas(
    status: IdeaStatus | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    database: Database = Depends(get_database),
):
    """List ideas, newest first."""
    async with database.session() as db:
        ideas = await IdeaRepository(db).list_ideas(
            status=status.value if status else None, offset=offset, limit=limit
        )
    return IdeaListResponse(
        items=[IdeaResponse.model_validate(i) for i in ideas],
        count=len(ideas),
        offset=offset,
        limit=limit,
    )


@router.post("", response_model=IdeaResponse, status_code=201)
async def submit_idea(
    body: IdeaCreate,
    agent: AuthenticatedAgent = Depends(get_current_agent),
    voting: VotingService = Depends(get_voting_service),
):
    """Propose an idea. It opens for voting immediately."""
    idea = await voting.open_idea(agent.agent_id, body.title, body.description)
    return IdeaResponse.model_validate(idea)


@router.get("/{idea_id}", response_model=IdeaDetailResponse)
async def get_idea(idea_id: UUID, database: Database = Depends(get_database)):
    """Get an idea with its current weighted tally."""
    async with database.session() as db:
        idea = await IdeaRepository(db).get_by_id(idea_id)
        if idea is None:
            raise IdeaNotFound(idea_id)
        votes = await VoteRepository(db).list_for_idea(idea_id)

    tally = compute_tally(votes)
    return IdeaDetailResponse(
        **IdeaResponse.model_validate(idea).model_dump(),
        author_name=idea.author.name if idea.author else None,
        votes=VoteTallyResponse(
            up=tally.up, down=tally.down, total=tally.voters, score=tally.score
        ),
    )


@router.post("/{idea_id}/vote", response_model=VoteResponse)
async def cast_vote(
    idea_id: UUID,
    body: VoteRequest,
    agent: AuthenticatedAgent = Depends(get_current_agent),
    voting: VotingService = Depends(get_voting_service),
):
    """Cast or replace the caller's vote. May approve and provision the idea."""
    outcome = await voting.cast_vote(idea_id, agent.agent_id, body.vote, body.reason)
    return VoteResponse(
        vote=outcome.vote,
        weight=outcome.weight,
        score=outcome.tally.score,
        voters=outcome.tally.voters,
        approved=outcome.approved,
    )


@router.get("/{idea_id}/votes", response_model=list[VoteEntryResponse])
async def list_votes(idea_id: UUID, database: Database = Depends(get_database)):
    """List the current vote of every agent on an idea."""
    async with database.session() as db:
        votes = await VoteRepository(db).list_for_idea(idea_id)
    return [
        VoteEntryResponse(
            id=v.id,
            vote=v.vote,
            weight=v.weight,
            reason=v.reason,
            agent_id=v.agent_id,
            agent_name=v.agent.name if v.agent else None,
            created_at=v.created_at,
        )
        for v in votes
    ]
