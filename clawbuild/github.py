"""GitHub client for provisioning project repositories and webhooks.

Authenticates either with a static token or as a GitHub App installation
(app JWT exchanged for a short-lived installation token).
"""

import base64
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import jwt

from clawbuild.config import Settings
from clawbuild.exceptions import ProvisioningFailure
from clawbuild.logging_config import get_logger

logger = get_logger(__name__)

WEBHOOK_EVENTS = ["push", "pull_request", "issues", "issue_comment"]

# Refresh installation tokens this long before GitHub expires them.
TOKEN_REFRESH_MARGIN_SECONDS = 300


@dataclass
class CreatedRepository:
    id: int
    name: str
    full_name: str
    html_url: str
    clone_url: str | None = None


class RepositoryHost(Protocol):
    """What the service needs from the external repository host."""

    async def create_repository(
        self,
        name: str,
        description: str,
        private: bool = False,
        has_issues: bool = True,
        has_projects: bool = True,
    ) -> CreatedRepository: ...

    async def create_webhook(
        self,
        repo_full_name: str,
        target_url: str,
        events: list[str],
    ) -> int: ...

    async def installation_info(self) -> dict: ...


class GitHubClient:
    """Thin async wrapper over the GitHub REST API."""

    def __init__(
        self,
        org: str,
        api_url: str = "https://api.github.com",
        token: str | None = None,
        app_id: str | None = None,
        app_private_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.org = org
        self.api_url = api_url.rstrip("/")
        self.app_id = app_id
        self.app_private_key = app_private_key
        self._static_token = token
        self._installation_token: str | None = None
        self._installation_token_expires = 0.0
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitHubClient":
        private_key = settings.github_app_private_key
        if settings.github_app_private_key_base64:
            private_key = base64.b64decode(settings.github_app_private_key_base64).decode()
        return cls(
            org=settings.github_org,
            api_url=settings.github_api_url,
            token=settings.github_token,
            app_id=settings.github_app_id,
            app_private_key=private_key,
            timeout=settings.github_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._static_token or (self.app_id and self.app_private_key))

    async def close(self) -> None:
        await self._client.aclose()

    # -- authentication -----------------------------------------------------

    def _app_jwt(self) -> str:
        now = int(time.time())
        payload = {"iat": now - 60, "exp": now + 540, "iss": str(self.app_id)}
        return jwt.encode(payload, self.app_private_key, algorithm="RS256")

    async def _find_installation_id(self) -> int | None:
        response = await self._client.get(
            "/app/installations",
            headers={"Authorization": f"Bearer {self._app_jwt()}"},
        )
        response.raise_for_status()
        for installation in response.json():
            login = (installation.get("account") or {}).get("login", "")
            if login.lower() == self.org.lower():
                return installation["id"]
        return None

    async def _token(self) -> str:
        if self._static_token:
            return self._static_token
        if not (self.app_id and self.app_private_key):
            raise ProvisioningFailure("No GitHub credentials configured")

        if self._installation_token and time.time() < self._installation_token_expires:
            return self._installation_token

        installation_id = await self._find_installation_id()
        if installation_id is None:
            raise ProvisioningFailure(f"GitHub App not installed on org: {self.org}")

        response = await self._client.post(
            f"/app/installations/{installation_id}/access_tokens",
            headers={"Authorization": f"Bearer {self._app_jwt()}"},
        )
        response.raise_for_status()
        self._installation_token = response.json()["token"]
        # Installation tokens live for one hour.
        self._installation_token_expires = time.time() + 3600 - TOKEN_REFRESH_MARGIN_SECONDS
        logger.info("github_installation_token_refreshed", installation_id=installation_id)
        return self._installation_token

    async def _request(self, method: str, path: str, json: dict | None = None) -> Any:
        try:
            token = await self._token()
            response = await self._client.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProvisioningFailure(
                f"GitHub {method} {path} failed: {e.response.status_code} {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProvisioningFailure(f"GitHub {method} {path} failed: {e}") from e
        return response.json()

    # -- operations ---------------------------------------------------------

    async def create_repository(
        self,
        name: str,
        description: str,
        private: bool = False,
        has_issues: bool = True,
        has_projects: bool = True,
    ) -> CreatedRepository:
        data = await self._request(
            "POST",
            f"/orgs/{self.org}/repos",
            json={
                "name": name,
                "description": description,
                "private": private,
                "has_issues": has_issues,
                "has_projects": has_projects,
                "has_wiki": False,
                "auto_init": True,
            },
        )
        logger.info("github_repo_created", full_name=data["full_name"])
        return CreatedRepository(
            id=data["id"],
            name=data["name"],
            full_name=data["full_name"],
            html_url=data["html_url"],
            clone_url=data.get("clone_url"),
        )

    async def create_webhook(
        self,
        repo_full_name: str,
        target_url: str,
        events: list[str],
    ) -> int:
        data = await self._request(
            "POST",
            f"/repos/{repo_full_name}/hooks",
            json={
                "name": "web",
                "active": True,
                "events": events,
                "config": {"url": target_url, "content_type": "json"},
            },
        )
        logger.info("github_webhook_created", repo=repo_full_name, hook_id=data["id"])
        return data["id"]

    async def installation_info(self) -> dict:
        """Report whether the app is installed on the org. Never raises."""
        info: dict = {"configured": self.configured, "installed": False, "org": self.org}
        if self._static_token:
            info["installed"] = True
            return info
        if not self.configured:
            return info
        try:
            installation_id = await self._find_installation_id()
        except (httpx.HTTPError, jwt.PyJWTError) as e:
            logger.warning("github_installation_lookup_failed", error=str(e))
            return info
        info["installed"] = installation_id is not None
        info["installationId"] = installation_id
        return info
