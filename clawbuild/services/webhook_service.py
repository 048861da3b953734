"""Webhook reconciliation — apply repository events to project stats and the activity trail.

Counters move by atomic deltas in the database. Deliveries carry no unique
id, so a redelivered event is applied again (double counted).
"""

import enum
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from clawbuild.config import LifecycleConfig
from clawbuild.database import Database
from clawbuild.exceptions import WebhookProcessingError
from clawbuild.logging_config import get_logger
from clawbuild.models import Project
from clawbuild.repositories import ProjectRepository
from clawbuild.services.activity_service import ActivityPublisher, log_activity

logger = get_logger(__name__)


class WebhookOutcome(str, enum.Enum):
    applied = "applied"
    unmatched = "unmatched"  # repository not tracked by any project
    ignored = "ignored"  # event type we do not consume
    failed = "failed"


def _repo_full_name(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise WebhookProcessingError("Webhook payload must be a JSON object")
    full_name = (payload.get("repository") or {}).get("full_name")
    if not full_name:
        raise WebhookProcessingError("Webhook payload has no repository.full_name")
    return full_name


def _action(payload: dict) -> str:
    action = payload.get("action")
    if not action or not isinstance(action, str):
        raise WebhookProcessingError("Webhook payload has no action")
    return action


def _login(obj: dict | None) -> str | None:
    return ((obj or {}).get("user") or {}).get("login")


class WebhookReconciler:
    """Maps inbound repository events onto the project that owns the repository."""

    def __init__(
        self,
        database: Database,
        config: LifecycleConfig,
        publisher: ActivityPublisher | None = None,
    ):
        self.database = database
        self.config = config
        self.publisher = publisher or ActivityPublisher()
        self._handlers: dict[
            str, Callable[[AsyncSession, Project, dict], Awaitable[tuple[str, dict]]]
        ] = {
            "push": self._handle_push,
            "pull_request": self._handle_pull_request,
            "issues": self._handle_issue,
            "issue_comment": self._handle_issue_comment,
        }

    async def handle_event(self, event_type: str | None, payload: Any) -> WebhookOutcome:
        """Apply one delivery. Never raises; failures are logged and reported."""
        handler = self._handlers.get(event_type or "")
        if handler is None:
            logger.debug("webhook_event_ignored", event_type=event_type)
            return WebhookOutcome.ignored

        try:
            repo_full_name = _repo_full_name(payload)
            async with self.database.unit_of_work() as db:
                project = await ProjectRepository(db).get_by_repo_full_name(repo_full_name)
                if project is None:
                    logger.debug("webhook_unmatched", event_type=event_type, repo=repo_full_name)
                    return WebhookOutcome.unmatched

                activity_type, data = await handler(db, project, payload)
                entry = await log_activity(db, activity_type, data, project_id=project.id)
        except Exception as e:
            logger.error("webhook_handler_failed", event_type=event_type, error=str(e))
            return WebhookOutcome.failed

        await self.publisher.publish(entry)
        return WebhookOutcome.applied

    async def _handle_push(self, db: AsyncSession, project: Project, payload: dict):
        commits = payload.get("commits") or []
        if not isinstance(commits, list):
            raise WebhookProcessingError("push payload commits must be a list")
        if commits:
            await ProjectRepository(db).increment_counter(project.id, "commits_count", len(commits))
        return "project:push", {
            "commits": len(commits),
            "pusher": (payload.get("pusher") or {}).get("name"),
            "ref": payload.get("ref"),
        }

    async def _handle_pull_request(self, db: AsyncSession, project: Project, payload: dict):
        action = _action(payload)
        pr = payload.get("pull_request") or {}
        if action == "opened":
            await ProjectRepository(db).increment_counter(project.id, "prs_count", 1)
        return f"project:pr_{action}", {
            "prNumber": pr.get("number"),
            "title": pr.get("title"),
            "author": _login(pr),
        }

    async def _handle_issue(self, db: AsyncSession, project: Project, payload: dict):
        action = _action(payload)
        issue = payload.get("issue") or {}
        if action == "opened":
            await ProjectRepository(db).increment_counter(project.id, "issues_count", 1)
        return f"project:issue_{action}", {
            "issueNumber": issue.get("number"),
            "title": issue.get("title"),
            "author": _login(issue),
        }

    async def _handle_issue_comment(self, db: AsyncSession, project: Project, payload: dict):
        comment = payload.get("comment") or {}
        body = comment.get("body") or ""
        return "project:comment", {
            "issueNumber": (payload.get("issue") or {}).get("number"),
            "author": _login(comment),
            "body": body[: self.config.comment_snippet_length],
        }
