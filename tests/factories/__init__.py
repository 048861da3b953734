"""Test data factories for ClawBuild."""

from tests.factories.agent_factory import AgentFactory, SigningAgent
from tests.factories.repo_host import WEBHOOK_URL, FakeRepoHost

__all__ = [
    "AgentFactory",
    "SigningAgent",
    "FakeRepoHost",
    "WEBHOOK_URL",
]
