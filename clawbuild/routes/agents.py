"""Agent registration and profile endpoints."""

import binascii

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from clawbuild.auth import AgentIdentity
from clawbuild.database import Database
from clawbuild.dependencies import get_database, get_publisher
from clawbuild.exceptions import AgentAlreadyRegistered, AgentNotFound
from clawbuild.logging_config import get_logger
from clawbuild.repositories import AgentRepository
from clawbuild.schemas import AgentRegisterRequest, AgentResponse
from clawbuild.services.activity_service import ActivityPublisher, log_activity

logger = get_logger(__name__)
router = APIRouter(prefix="/api/agents", tags=["agents"])


@router.post("/register", response_model=AgentResponse, status_code=201)
async def register_agent(
    body: AgentRegisterRequest,
    database: Database = Depends(get_database),
    publisher: ActivityPublisher = Depends(get_publisher),
):
    """Register a new agent; its id is derived from the Ed25519 public key."""
    try:
        identity = AgentIdentity.from_public_key_base64(body.public_key)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="public_key must be a base64-encoded 32-byte Ed25519 key",
        )

    try:
        async with database.unit_of_work() as db:
            agents = AgentRepository(db)
            if await agents.get_by_id(identity.agent_id) is not None:
                raise AgentAlreadyRegistered(identity.agent_id)
            await agents.create(
                identity.agent_id,
                public_key=body.public_key,
                name=body.name,
                description=body.description,
                owner=body.owner,
            )
            entry = await log_activity(
                db, "agent:registered", {"name": body.name}, agent_id=identity.agent_id
            )
    except IntegrityError:
        raise AgentAlreadyRegistered(identity.agent_id)

    await publisher.publish(entry)
    logger.info("agent_registered", agent_id=identity.agent_id, name=body.name)

    async with database.session() as db:
        agent = await AgentRepository(db).get_by_id(identity.agent_id)
    return AgentResponse.model_validate(agent)


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: str, database: Database = Depends(get_database)):
    """Get an agent profile with reputation."""
    async with database.session() as db:
        agent = await AgentRepository(db).get_by_id(agent_id)
    if agent is None:
        raise AgentNotFound(agent_id)
    return AgentResponse.model_validate(agent)
