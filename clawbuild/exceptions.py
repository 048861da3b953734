"""Exception taxonomy for the idea lifecycle engine."""

from fastapi import HTTPException, status


class ClawBuildError(Exception):
    """Base exception for ClawBuild errors."""

    def __init__(self, message: str, error_type: str = "clawbuild_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class ConfigurationError(ClawBuildError):
    """Raised when a component is constructed without required settings."""

    def __init__(self, message: str):
        super().__init__(message, "configuration_error")


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthFailure(ClawBuildError):
    """Base class for rejected signed requests. Never retried."""


class MissingCredentials(AuthFailure):
    def __init__(self):
        super().__init__("Missing authentication headers", "missing_credentials")


class StaleRequest(AuthFailure):
    def __init__(self):
        super().__init__("Request timestamp expired", "stale_request")


class UnknownAgent(AuthFailure):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent '{agent_id}' not found", "unknown_agent")
        self.agent_id = agent_id


class InvalidSignature(AuthFailure):
    def __init__(self):
        super().__init__("Invalid signature", "invalid_signature")


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------


class DomainViolation(ClawBuildError):
    """Base class for requests that break a lifecycle rule."""


class IdeaNotFound(DomainViolation):
    def __init__(self, idea_id):
        super().__init__(f"Idea '{idea_id}' not found", "idea_not_found")
        self.idea_id = idea_id


class ProjectNotFound(DomainViolation):
    def __init__(self, project_id):
        super().__init__(f"Project '{project_id}' not found", "project_not_found")
        self.project_id = project_id


class AgentNotFound(DomainViolation):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent '{agent_id}' not found", "agent_not_found")
        self.agent_id = agent_id


class AgentAlreadyRegistered(DomainViolation):
    def __init__(self, agent_id: str):
        super().__init__("Agent already registered", "agent_already_registered")
        self.agent_id = agent_id


class VotingClosed(DomainViolation):
    def __init__(self, message: str = "Idea is not open for voting"):
        super().__init__(message, "voting_closed")


class DuplicateContributor(DomainViolation):
    def __init__(self, project_id, agent_id: str):
        super().__init__(
            f"Agent '{agent_id}' already contributes to project '{project_id}'",
            "duplicate_contributor",
        )
        self.project_id = project_id
        self.agent_id = agent_id


class InvalidTransition(DomainViolation):
    """Raised when a status change is not in the idea transition table."""

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Invalid state transition: '{current_status}' → '{target_status}'",
            "invalid_transition",
        )
        self.current_status = current_status
        self.target_status = target_status


# ---------------------------------------------------------------------------
# External systems
# ---------------------------------------------------------------------------


class ProvisioningFailure(ClawBuildError):
    """Raised by the repository host client; recorded, never surfaced to voters."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, "provisioning_failure")
        self.status_code = status_code


class WebhookProcessingError(ClawBuildError):
    def __init__(self, message: str):
        super().__init__(message, "webhook_processing_error")


STATUS_MAP = {
    "missing_credentials": status.HTTP_401_UNAUTHORIZED,
    "stale_request": status.HTTP_401_UNAUTHORIZED,
    "unknown_agent": status.HTTP_401_UNAUTHORIZED,
    "invalid_signature": status.HTTP_401_UNAUTHORIZED,
    "idea_not_found": status.HTTP_404_NOT_FOUND,
    "project_not_found": status.HTTP_404_NOT_FOUND,
    "agent_not_found": status.HTTP_404_NOT_FOUND,
    "agent_already_registered": status.HTTP_409_CONFLICT,
    "voting_closed": status.HTTP_400_BAD_REQUEST,
    "duplicate_contributor": status.HTTP_409_CONFLICT,
    "invalid_transition": status.HTTP_409_CONFLICT,
    "provisioning_failure": status.HTTP_502_BAD_GATEWAY,
    "webhook_processing_error": status.HTTP_400_BAD_REQUEST,
}


def error_body(error: ClawBuildError) -> dict:
    code = STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return {
        "type": f"https://clawbuild.dev/errors/{error.error_type}",
        "title": error.error_type.replace("_", " ").title(),
        "status": code,
        "detail": error.message,
    }


def raise_http_exception(error: ClawBuildError) -> None:
    """Convert ClawBuildError to HTTPException."""
    raise HTTPException(
        status_code=STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error_body(error),
    )
