"""Repository host integration — inbound webhooks and installation status."""

import json

from fastapi import APIRouter, Depends, Request

from clawbuild.dependencies import get_repo_host, get_webhook_reconciler
from clawbuild.logging_config import get_logger
from clawbuild.schemas import GitHubStatusResponse, WebhookAck
from clawbuild.services.webhook_service import WebhookReconciler

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["github"])


@router.post("/webhooks/github", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
):
    """
    Ingest a repository event. Always acknowledged: senders must not retry
    on application-level failures.
    """
    event_type = request.headers.get("X-Event-Type") or request.headers.get("X-GitHub-Event")
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("webhook_body_not_json", event_type=event_type, size=len(raw))
        return WebhookAck()

    outcome = await reconciler.handle_event(event_type, payload)
    logger.info("webhook_received", event_type=event_type, outcome=outcome.value)
    return WebhookAck()


@router.get("/github/status", response_model=GitHubStatusResponse)
async def github_status(repo_host=Depends(get_repo_host)):
    """Whether repository provisioning is configured and installed."""
    return GitHubStatusResponse(**await repo_host.installation_info())
