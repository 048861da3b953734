"""Global pytest fixtures for ClawBuild.

Each test gets its own SQLite database file so that writers really contend
for the database lock, the same way separate API workers would.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from clawbuild.config import LifecycleConfig
from clawbuild.database import Database
from clawbuild.main import create_app
from clawbuild.repositories import IdeaRepository, ProjectRepository
from clawbuild.services.idea_state_machine import IdeaStateMachine
from clawbuild.services.provisioning_service import ProvisioningService
from clawbuild.services.voting_service import VotingService
from clawbuild.services.webhook_service import WebhookReconciler
from tests.factories import WEBHOOK_URL, AgentFactory, FakeRepoHost

# ===========================================
# DATABASE & SERVICES
# ===========================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """A fresh file-backed SQLite database with the schema created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'clawbuild.db'}")
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def lifecycle() -> LifecycleConfig:
    return LifecycleConfig()


@pytest.fixture
def repo_host() -> FakeRepoHost:
    return FakeRepoHost()


@pytest.fixture
def provisioning(database, repo_host, lifecycle) -> ProvisioningService:
    return ProvisioningService(database, repo_host, lifecycle, WEBHOOK_URL)


@pytest.fixture
def state_machine(database, provisioning) -> IdeaStateMachine:
    return IdeaStateMachine(database, provisioning)


@pytest.fixture
def voting(database, state_machine, lifecycle) -> VotingService:
    return VotingService(database, state_machine, lifecycle)


@pytest.fixture
def reconciler(database, lifecycle) -> WebhookReconciler:
    return WebhookReconciler(database, lifecycle)


# ===========================================
# HTTP
# ===========================================


@pytest.fixture
def app(database, repo_host, lifecycle):
    return create_app(database=database, repo_host=repo_host, lifecycle=lifecycle)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ===========================================
# LIFECYCLE HELPERS
# ===========================================


@pytest.fixture
def make_project(database, voting, state_machine):
    """Return a coroutine that takes an idea through approval to a provisioned project."""
    async def _make(title: str = "Webhook Target"):
        author = await AgentFactory.create(database)
        idea = await voting.open_idea(author.agent_id, title, "Something worth building")
        assert await state_machine.approve(idea.id, 12.0, 3)
        async with database.session() as db:
            idea = await IdeaRepository(db).get_by_id(idea.id)
            return await ProjectRepository(db).get_by_id(idea.project_id)

    return _make
