"""Provisioning pipeline — turn an approved idea into a project with a repository."""

import re
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from clawbuild.config import LifecycleConfig
from clawbuild.database import Database
from clawbuild.exceptions import ProvisioningFailure
from clawbuild.github import WEBHOOK_EVENTS, CreatedRepository, RepositoryHost
from clawbuild.logging_config import get_logger
from clawbuild.models import IdeaStatus, Project
from clawbuild.repositories import IdeaRepository, ProjectRepository
from clawbuild.services.activity_service import ActivityPublisher, log_activity
from clawbuild.services.idea_state_machine import transition

logger = get_logger(__name__)

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")


def derive_repo_name(title: str, max_length: int = 50) -> str:
    """Lower-case, drop anything but [a-z0-9], whitespace and '-', hyphenate, truncate."""
    name = _DISALLOWED.sub("", title.lower())
    name = _WHITESPACE.sub("-", name)
    return name[:max_length]


class ProvisioningService:
    """
    Runs once per approved idea, invoked only by the approval winner.

    Steps: create the repository, record the project and link it to the
    idea (one transaction), register the webhook, log ``project:created``.
    A repository failure stops the pipeline and leaves the idea approved;
    a webhook failure is logged and ignored.
    """

    def __init__(
        self,
        database: Database,
        repo_host: RepositoryHost,
        config: LifecycleConfig,
        webhook_url: str,
        publisher: ActivityPublisher | None = None,
    ):
        self.database = database
        self.repo_host = repo_host
        self.config = config
        self.webhook_url = webhook_url
        self.publisher = publisher or ActivityPublisher()

    async def provision(self, idea_id: UUID) -> Project | None:
        async with self.database.session() as db:
            idea = await IdeaRepository(db).get_by_id(idea_id)
        if idea is None:
            logger.error("provision_idea_missing", idea_id=str(idea_id))
            return None

        repo_name = derive_repo_name(idea.title, self.config.repo_name_max_length)
        if not repo_name:
            repo_name = f"idea-{str(idea_id)[:8]}"

        try:
            repo = await self.repo_host.create_repository(
                name=repo_name,
                description=idea.description[: self.config.repo_description_max_length],
                private=False,
                has_issues=True,
                has_projects=True,
            )
        except Exception as e:
            logger.error("repo_create_failed", idea_id=str(idea_id), repo_name=repo_name, error=str(e))
            await self._record_failure(idea_id, e)
            return None

        try:
            project = await self._record_project(idea, repo)
        except (SQLAlchemyError, ProvisioningFailure) as e:
            logger.error(
                "project_record_failed",
                idea_id=str(idea_id),
                repo=repo.full_name,
                error=str(e),
            )
            await self._record_failure(idea_id, e, repo_url=repo.html_url)
            return None

        hook_id = None
        try:
            hook_id = await self.repo_host.create_webhook(
                repo.full_name, self.webhook_url, WEBHOOK_EVENTS
            )
        except Exception as e:
            logger.warning(
                "webhook_create_failed",
                project_id=str(project.id),
                repo=repo.full_name,
                error=str(e),
                non_fatal=True,
            )

        async with self.database.unit_of_work() as db:
            entry = await log_activity(
                db,
                "project:created",
                {
                    "repoUrl": repo.html_url,
                    "repoName": repo.full_name,
                    "webhookId": hook_id,
                },
                agent_id=idea.author_id,
                idea_id=idea_id,
                project_id=project.id,
            )
        await self.publisher.publish(entry)

        logger.info(
            "project_provisioned",
            idea_id=str(idea_id),
            project_id=str(project.id),
            repo=repo.full_name,
        )
        return project

    async def _record_project(self, idea, repo: CreatedRepository) -> Project:
        async with self.database.unit_of_work() as db:
            projects = ProjectRepository(db)
            project = await projects.create(
                idea_id=idea.id,
                name=idea.title,
                repo_url=repo.html_url,
                repo_full_name=repo.full_name,
                lead_agent_id=idea.author_id,
                status="setup",
            )
            linked = await transition(
                db,
                idea.id,
                IdeaStatus.approved.value,
                IdeaStatus.building.value,
                project_id=project.id,
                repo_url=repo.html_url,
            )
            if not linked:
                # Rolls back the project insert with the rest of this unit of work.
                raise ProvisioningFailure(f"Idea {idea.id} is no longer awaiting a project")
            await projects.add_contributor(project.id, idea.author_id, role="lead")
        return project

    async def _record_failure(
        self,
        idea_id: UUID,
        error: Exception,
        repo_url: str | None = None,
    ) -> None:
        data = {"error": str(error)}
        if repo_url:
            data["repoUrl"] = repo_url
        async with self.database.unit_of_work() as db:
            entry = await log_activity(db, "project:creation_failed", data, idea_id=idea_id)
        await self.publisher.publish(entry)
