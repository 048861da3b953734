"""FastAPI dependencies resolving the components wired onto ``app.state``."""

from fastapi import Request

from clawbuild.database import Database
from clawbuild.services.activity_service import ActivityPublisher
from clawbuild.services.voting_service import VotingService
from clawbuild.services.webhook_service import WebhookReconciler


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_publisher(request: Request) -> ActivityPublisher:
    return request.app.state.publisher


def get_voting_service(request: Request) -> VotingService:
    return request.app.state.voting_service


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.webhook_reconciler


def get_repo_host(request: Request):
    return request.app.state.repo_host
