"""Repository layer: every storage operation the lifecycle engine relies on.

Mutations are targeted column updates, conditional status transitions or
atomic increments. Nothing here reads a row and writes it back whole.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from clawbuild.logging_config import get_logger
from clawbuild.models import (
    ActivityEvent,
    Agent,
    AgentReputation,
    Idea,
    IdeaVote,
    Project,
    ProjectContributor,
)

logger = get_logger(__name__)

PROJECT_COUNTERS = ("commits_count", "prs_count", "issues_count")
REPUTATION_COUNTERS = ("ideas_proposed", "ideas_approved")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _insert_for(session: AsyncSession):
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


class AgentRepository:
    """Repository for agent and reputation rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, agent_id: str, public_key: str, name: str, **kwargs) -> Agent:
        agent = Agent(id=agent_id, public_key=public_key, name=name, **kwargs)
        self.session.add(agent)
        self.session.add(AgentReputation(agent_id=agent_id, vote_weight=1.0))
        await self.session.flush()
        return agent

    async def get_by_id(self, agent_id: str) -> Agent | None:
        result = await self.session.execute(select(Agent).where(Agent.id == agent_id))
        return result.scalar_one_or_none()

    async def get_public_key(self, agent_id: str) -> str | None:
        result = await self.session.execute(
            select(Agent.public_key).where(Agent.id == agent_id)
        )
        return result.scalar_one_or_none()

    async def get_vote_weight(self, agent_id: str) -> float | None:
        result = await self.session.execute(
            select(AgentReputation.vote_weight).where(AgentReputation.agent_id == agent_id)
        )
        return result.scalar_one_or_none()

    async def set_vote_weight(self, agent_id: str, weight: float) -> bool:
        result = await self.session.execute(
            update(AgentReputation)
            .where(AgentReputation.agent_id == agent_id)
            .values(vote_weight=weight, updated_at=_utc_now())
        )
        return result.rowcount > 0

    async def increment_counter(self, agent_id: str, field: str, by: int = 1) -> bool:
        if field not in REPUTATION_COUNTERS:
            raise ValueError(f"Unknown reputation counter: {field}")
        column = getattr(AgentReputation, field)
        result = await self.session.execute(
            update(AgentReputation)
            .where(AgentReputation.agent_id == agent_id)
            .values(**{field: column + by, "updated_at": _utc_now()})
        )
        return result.rowcount > 0


class IdeaRepository:
    """Repository for ideas."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Idea:
        idea = Idea(**kwargs)
        self.session.add(idea)
        await self.session.flush()
        return idea

    async def get_by_id(self, idea_id: UUID) -> Idea | None:
        result = await self.session.execute(select(Idea).where(Idea.id == idea_id))
        return result.scalar_one_or_none()

    async def list_ideas(
        self,
        status: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[Idea]:
        query = select(Idea)
        if status:
            query = query.where(Idea.status == status)
        query = query.order_by(Idea.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def transition_status(
        self,
        idea_id: UUID,
        expected: str,
        new: str,
        **fields,
    ) -> bool:
        """Set status=new only where status=expected. Returns whether a row changed."""
        result = await self.session.execute(
            update(Idea)
            .where(Idea.id == idea_id, Idea.status == expected)
            .values(status=new, updated_at=_utc_now(), **fields)
        )
        return result.rowcount == 1


class VoteRepository:
    """Repository for idea votes, one row per (idea, agent)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        idea_id: UUID,
        agent_id: str,
        vote: str,
        weight: float,
        reason: str | None = None,
    ) -> None:
        insert = _insert_for(self.session)
        stmt = insert(IdeaVote).values(
            id=uuid4(),
            idea_id=idea_id,
            agent_id=agent_id,
            vote=vote,
            weight=weight,
            reason=reason,
            created_at=_utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[IdeaVote.idea_id, IdeaVote.agent_id],
            set_={
                "vote": stmt.excluded.vote,
                "weight": stmt.excluded.weight,
                "reason": stmt.excluded.reason,
                "created_at": stmt.excluded.created_at,
            },
        )
        await self.session.execute(stmt)

    async def list_for_idea(self, idea_id: UUID) -> list[IdeaVote]:
        result = await self.session.execute(
            select(IdeaVote)
            .where(IdeaVote.idea_id == idea_id)
            .order_by(IdeaVote.created_at.desc())
        )
        return list(result.scalars().all())


class ProjectRepository:
    """Repository for projects and their contributors."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Project:
        project = Project(**kwargs)
        self.session.add(project)
        await self.session.flush()
        return project

    async def get_by_id(self, project_id: UUID) -> Project | None:
        result = await self.session.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    async def get_by_repo_full_name(self, repo_full_name: str) -> Project | None:
        result = await self.session.execute(
            select(Project).where(Project.repo_full_name == repo_full_name)
        )
        return result.scalar_one_or_none()

    async def list_projects(
        self,
        status: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[Project]:
        query = select(Project)
        if status:
            query = query.where(Project.status == status)
        query = query.order_by(Project.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def increment_counter(self, project_id: UUID, field: str, by: int) -> bool:
        """Apply ``field = field + by`` in the database."""
        if field not in PROJECT_COUNTERS:
            raise ValueError(f"Unknown project counter: {field}")
        if by < 0:
            raise ValueError("Project counters never decrease")
        column = getattr(Project, field)
        result = await self.session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(**{field: column + by, "updated_at": _utc_now()})
        )
        return result.rowcount > 0

    async def add_contributor(
        self,
        project_id: UUID,
        agent_id: str,
        role: str = "contributor",
    ) -> ProjectContributor:
        contributor = ProjectContributor(project_id=project_id, agent_id=agent_id, role=role)
        self.session.add(contributor)
        await self.session.flush()
        return contributor

    async def is_contributor(self, project_id: UUID, agent_id: str) -> bool:
        result = await self.session.execute(
            select(ProjectContributor.id).where(
                ProjectContributor.project_id == project_id,
                ProjectContributor.agent_id == agent_id,
            )
        )
        return result.scalar_one_or_none() is not None


class ActivityRepository:
    """Append-only activity trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, type: str, data: dict | None = None, **refs) -> ActivityEvent:
        entry = ActivityEvent(type=type, data=data or {}, created_at=_utc_now(), **refs)
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_recent(
        self,
        offset: int = 0,
        limit: int = 50,
        type: str | None = None,
        project_id: UUID | None = None,
        idea_id: UUID | None = None,
    ) -> tuple[list[ActivityEvent], int]:
        query = select(ActivityEvent)
        if type:
            query = query.where(ActivityEvent.type == type)
        if project_id:
            query = query.where(ActivityEvent.project_id == project_id)
        if idea_id:
            query = query.where(ActivityEvent.idea_id == idea_id)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar() or 0

        query = query.order_by(ActivityEvent.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total
