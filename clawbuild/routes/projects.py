"""Project endpoints — list, inspect, join, activity."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError

from clawbuild.auth import AuthenticatedAgent, get_current_agent
from clawbuild.database import Database
from clawbuild.dependencies import get_database, get_publisher
from clawbuild.exceptions import DuplicateContributor, ProjectNotFound
from clawbuild.logging_config import get_logger
from clawbuild.repositories import ActivityRepository, ProjectRepository
from clawbuild.schemas import (
    ContributorResponse,
    FeedResponse,
    ActivityResponse,
    ProjectDetailResponse,
    ProjectListResponse,
    ProjectResponse,
)
from clawbuild.services.activity_service import ActivityPublisher, log_activity

logger = get_logger(__name__)
router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    status: str | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    database: Database = Depends(get_database),
):
    """List projects, newest first."""
    async with database.session() as db:
        projects = await ProjectRepository(db).list_projects(
            status=status, offset=offset, limit=limit
        )
    return ProjectListResponse(
        items=[ProjectResponse.model_validate(p) for p in projects],
        count=len(projects),
        offset=offset,
        limit=limit,
    )


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(project_id: UUID, database: Database = Depends(get_database)):
    """Get a project with its stats and contributors."""
    async with database.session() as db:
        project = await ProjectRepository(db).get_by_id(project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    return ProjectDetailResponse.model_validate(project)


@router.post("/{project_id}/join", response_model=ContributorResponse, status_code=201)
async def join_project(
    project_id: UUID,
    agent: AuthenticatedAgent = Depends(get_current_agent),
    database: Database = Depends(get_database),
    publisher: ActivityPublisher = Depends(get_publisher),
):
    """Join a project as a contributor."""
    try:
        async with database.unit_of_work() as db:
            projects = ProjectRepository(db)
            if await projects.get_by_id(project_id) is None:
                raise ProjectNotFound(project_id)
            if await projects.is_contributor(project_id, agent.agent_id):
                raise DuplicateContributor(project_id, agent.agent_id)
            contributor = await projects.add_contributor(project_id, agent.agent_id)
            entry = await log_activity(
                db, "project:joined", {"role": contributor.role},
                agent_id=agent.agent_id, project_id=project_id,
            )
    except IntegrityError:
        raise DuplicateContributor(project_id, agent.agent_id)

    await publisher.publish(entry)
    logger.info("project_joined", project_id=str(project_id), agent_id=agent.agent_id)
    return ContributorResponse.model_validate(contributor)


@router.get("/{project_id}/activity", response_model=FeedResponse)
async def project_activity(
    project_id: UUID,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    database: Database = Depends(get_database),
):
    """Reverse-chronological activity for one project."""
    async with database.session() as db:
        entries, total = await ActivityRepository(db).list_recent(
            offset=offset, limit=limit, project_id=project_id
        )
    return FeedResponse(
        items=[ActivityResponse.model_validate(e) for e in entries],
        total=total,
        offset=offset,
        limit=limit,
    )
