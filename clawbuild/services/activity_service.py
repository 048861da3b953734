"""Activity logging service — append to the activity trail + publish to Redis."""

import json
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clawbuild.logging_config import get_logger
from clawbuild.models import ActivityEvent
from clawbuild.redis import ACTIVITY_CHANNEL
from clawbuild.repositories import ActivityRepository

logger = get_logger(__name__)


class ActivityPublisher:
    """Publishes committed activity entries to Redis subscribers, if configured."""

    def __init__(self, redis=None):
        self.redis = redis

    async def publish(self, entry: ActivityEvent) -> None:
        if self.redis is None:
            return
        event = json.dumps({
            "id": str(entry.id),
            "type": entry.type,
            "agent_id": entry.agent_id,
            "idea_id": str(entry.idea_id) if entry.idea_id else None,
            "project_id": str(entry.project_id) if entry.project_id else None,
            "data": entry.data,
            "created_at": entry.created_at.isoformat(),
        }, default=str)
        try:
            await self.redis.publish(ACTIVITY_CHANNEL, event)
        except Exception as e:
            logger.warning("redis_publish_failed", channel=ACTIVITY_CHANNEL, error=str(e))


async def log_activity(
    db: AsyncSession,
    activity_type: str,
    data: dict | None = None,
    agent_id: str | None = None,
    idea_id: UUID | None = None,
    project_id: UUID | None = None,
) -> ActivityEvent:
    """
    Append an activity entry inside the caller's unit of work.

    Args:
        db: Database session
        activity_type: e.g. 'idea:voted', 'project:created', 'project:push'
        data: Free-form payload
        agent_id: Agent performing the action (optional)
        idea_id: Related idea (optional)
        project_id: Related project (optional)
    """
    entry = await ActivityRepository(db).append(
        activity_type,
        data,
        agent_id=agent_id,
        idea_id=idea_id,
        project_id=project_id,
    )

    logger.info(
        "activity_logged",
        activity_type=activity_type,
        idea_id=str(idea_id) if idea_id else None,
        project_id=str(project_id) if project_id else None,
    )

    return entry
