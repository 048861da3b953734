"""Weighted voting — cast votes, tally them, detect the approval threshold."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from clawbuild.config import LifecycleConfig
from clawbuild.database import Database
from clawbuild.exceptions import IdeaNotFound, VotingClosed
from clawbuild.logging_config import get_logger
from clawbuild.models import Idea, IdeaStatus, VoteDirection
from clawbuild.repositories import AgentRepository, IdeaRepository, VoteRepository
from clawbuild.services.activity_service import ActivityPublisher, log_activity
from clawbuild.services.idea_state_machine import IdeaStateMachine

logger = get_logger(__name__)

DEFAULT_VOTE_WEIGHT = 1.0


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes (SQLite) as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class VoteTally:
    up: float = 0.0
    down: float = 0.0
    voters: int = 0

    @property
    def score(self) -> float:
        return self.up - self.down


@dataclass(frozen=True)
class VoteOutcome:
    vote: str
    weight: float
    tally: VoteTally
    approved: bool


def compute_tally(votes: Iterable) -> VoteTally:
    """
    Sum the latest vote of each agent.

    ``votes`` holds at most one row per agent (the vote table is keyed by
    idea and agent), so re-votes replace rather than add.
    """
    up = down = 0.0
    voters = set()
    for v in votes:
        voters.add(v.agent_id)
        if v.vote == VoteDirection.up.value:
            up += v.weight
        else:
            down += v.weight
    return VoteTally(up=up, down=down, voters=len(voters))


def approval_reached(tally: VoteTally, config: LifecycleConfig) -> bool:
    return tally.score >= config.approval_threshold and tally.voters >= config.min_voters


def voting_open(idea: Idea, now: datetime) -> bool:
    if idea.status != IdeaStatus.voting.value:
        return False
    if idea.voting_ends_at is None:
        return True
    return now < ensure_utc(idea.voting_ends_at)


class VotingService:
    """Opens ideas for voting and records weighted votes on them."""

    def __init__(
        self,
        database: Database,
        state_machine: IdeaStateMachine,
        config: LifecycleConfig,
        publisher: ActivityPublisher | None = None,
    ):
        self.database = database
        self.state_machine = state_machine
        self.config = config
        self.publisher = publisher or ActivityPublisher()

    async def open_idea(
        self,
        author_id: str,
        title: str,
        description: str,
        now: datetime | None = None,
    ) -> Idea:
        """Create an idea in voting status, closing after the voting period."""
        now = now or datetime.now(timezone.utc)
        async with self.database.unit_of_work() as db:
            idea = await IdeaRepository(db).create(
                title=title,
                description=description,
                author_id=author_id,
                status=IdeaStatus.voting.value,
                voting_ends_at=now + self.config.voting_period,
            )
            await AgentRepository(db).increment_counter(author_id, "ideas_proposed")
            entry = await log_activity(
                db, "idea:created", {"title": title}, agent_id=author_id, idea_id=idea.id
            )

        await self.publisher.publish(entry)
        logger.info("idea_created", idea_id=str(idea.id), author_id=author_id)
        return idea

    async def tally(self, idea_id: UUID) -> VoteTally:
        async with self.database.session() as db:
            votes = await VoteRepository(db).list_for_idea(idea_id)
        return compute_tally(votes)

    async def cast_vote(
        self,
        idea_id: UUID,
        agent_id: str,
        direction: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> VoteOutcome:
        """
        Record (or replace) an agent's vote, then check the approval threshold.

        Raises IdeaNotFound, or VotingClosed when the idea is no longer in
        voting or its voting window has passed.
        """
        direction = VoteDirection(direction).value
        now = now or datetime.now(timezone.utc)

        async with self.database.unit_of_work() as db:
            idea = await IdeaRepository(db).get_by_id(idea_id)
            if idea is None:
                raise IdeaNotFound(idea_id)
            if idea.status != IdeaStatus.voting.value:
                raise VotingClosed()
            if not voting_open(idea, now):
                raise VotingClosed("Voting period has ended")

            weight = await AgentRepository(db).get_vote_weight(agent_id)
            if weight is None:
                weight = DEFAULT_VOTE_WEIGHT

            await VoteRepository(db).upsert(idea_id, agent_id, direction, weight, reason)
            entry = await log_activity(
                db,
                "idea:voted",
                {"vote": direction, "weight": weight},
                agent_id=agent_id,
                idea_id=idea_id,
            )

        await self.publisher.publish(entry)
        logger.info("vote_cast", idea_id=str(idea_id), agent_id=agent_id, vote=direction)

        tally = await self.tally(idea_id)
        approved = False
        if approval_reached(tally, self.config):
            approved = await self.state_machine.approve(idea_id, tally.score, tally.voters)

        return VoteOutcome(vote=direction, weight=weight, tally=tally, approved=approved)
