"""State machine for the idea lifecycle.

voting → approved → building → shipped, with a terminal rejected branch.
Every transition is a conditional update ("set status=B where status=A"),
so concurrent callers racing for the same transition get exactly one winner.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clawbuild.database import Database
from clawbuild.exceptions import InvalidTransition
from clawbuild.logging_config import get_logger
from clawbuild.models import IdeaStatus
from clawbuild.repositories import AgentRepository, IdeaRepository
from clawbuild.services.activity_service import ActivityPublisher, log_activity

logger = get_logger(__name__)

# Map of current_status → list of (target_status, trigger_reason)
VALID_TRANSITIONS: dict[str, list[tuple[str, str]]] = {
    IdeaStatus.voting.value: [
        (IdeaStatus.approved.value, "threshold_reached"),
        (IdeaStatus.rejected.value, "manual_rejection"),
    ],
    IdeaStatus.approved.value: [
        (IdeaStatus.building.value, "project_provisioned"),
    ],
    IdeaStatus.building.value: [
        (IdeaStatus.shipped.value, "project_shipped"),
    ],
}


def can_transition(current: str, target: str) -> bool:
    """Check whether a transition from current to target is valid."""
    allowed = VALID_TRANSITIONS.get(current, [])
    return any(t == target for t, _ in allowed)


def validate_transition(current: str, target: str) -> None:
    """Validate a state transition, raising InvalidTransition if invalid."""
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


async def transition(
    db: AsyncSession,
    idea_id: UUID,
    current: str,
    target: str,
    **fields,
) -> bool:
    """Apply current → target if the idea is still in ``current``.

    Returns False when another writer got there first.
    """
    validate_transition(current, target)
    return await IdeaRepository(db).transition_status(idea_id, current, target, **fields)


class Provisioner(Protocol):
    async def provision(self, idea_id: UUID): ...


class IdeaStateMachine:
    """Owns the automatic approval transition and hands winners to provisioning."""

    def __init__(
        self,
        database: Database,
        provisioner: Provisioner,
        publisher: ActivityPublisher | None = None,
    ):
        self.database = database
        self.provisioner = provisioner
        self.publisher = publisher or ActivityPublisher()

    async def approve(self, idea_id: UUID, score: float, voters: int) -> bool:
        """
        Move a voting idea to approved. At most one caller ever gets True.

        The approval commits before provisioning starts; a provisioning
        failure leaves the idea approved.
        """
        async with self.database.unit_of_work() as db:
            won = await transition(
                db, idea_id, IdeaStatus.voting.value, IdeaStatus.approved.value
            )
            if not won:
                logger.info("approval_race_lost", idea_id=str(idea_id))
                return False

            idea = await IdeaRepository(db).get_by_id(idea_id)
            await AgentRepository(db).increment_counter(idea.author_id, "ideas_approved")
            entry = await log_activity(
                db,
                "idea:approved",
                {"score": score, "voters": voters},
                idea_id=idea_id,
            )

        await self.publisher.publish(entry)
        logger.info("idea_approved", idea_id=str(idea_id), score=score, voters=voters)

        try:
            await self.provisioner.provision(idea_id)
        except Exception as e:
            logger.error("provisioning_crashed", idea_id=str(idea_id), error=str(e))
        return True
