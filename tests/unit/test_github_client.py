"""Tests for the GitHub client against a mocked transport."""

import base64
import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from clawbuild.config import Settings
from clawbuild.exceptions import ProvisioningFailure
from clawbuild.github import WEBHOOK_EVENTS, GitHubClient


@pytest.fixture(scope="module")
def rsa_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    return key, pem


def repo_json(name: str) -> dict:
    return {
        "id": 99,
        "name": name,
        "full_name": f"clawbuild/{name}",
        "html_url": f"https://github.com/clawbuild/{name}",
        "clone_url": f"https://github.com/clawbuild/{name}.git",
    }


class Recorder:
    """MockTransport handler that records requests and replies from a route table."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get((request.method, request.url.path))
        if reply is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if callable(reply):
            return reply(request)
        status, body = reply
        return httpx.Response(status, json=body)

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


def client_with(recorder: Recorder, **kwargs) -> GitHubClient:
    kwargs.setdefault("org", "clawbuild")
    return GitHubClient(transport=httpx.MockTransport(recorder), **kwargs)


class TestStaticToken:
    @pytest.mark.asyncio
    async def test_create_repository(self):
        recorder = Recorder({("POST", "/orgs/clawbuild/repos"): (201, repo_json("my-repo"))})
        github = client_with(recorder, token="ghp_static")

        created = await github.create_repository("my-repo", "desc")
        await github.close()

        assert created.full_name == "clawbuild/my-repo"
        assert created.html_url == "https://github.com/clawbuild/my-repo"
        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer ghp_static"
        assert json.loads(request.content) == {
            "name": "my-repo",
            "description": "desc",
            "private": False,
            "has_issues": True,
            "has_projects": True,
            "has_wiki": False,
            "auto_init": True,
        }

    @pytest.mark.asyncio
    async def test_create_webhook(self):
        recorder = Recorder({("POST", "/repos/clawbuild/my-repo/hooks"): (201, {"id": 555})})
        github = client_with(recorder, token="ghp_static")

        hook_id = await github.create_webhook("clawbuild/my-repo", "https://cb.test/hook", WEBHOOK_EVENTS)
        await github.close()

        assert hook_id == 555
        body = json.loads(recorder.requests[0].content)
        assert body["events"] == ["push", "pull_request", "issues", "issue_comment"]
        assert body["config"] == {"url": "https://cb.test/hook", "content_type": "json"}
        assert body["active"] is True

    @pytest.mark.asyncio
    async def test_http_error_becomes_provisioning_failure(self):
        recorder = Recorder({
            ("POST", "/orgs/clawbuild/repos"): (422, {"message": "name already exists"}),
        })
        github = client_with(recorder, token="ghp_static")

        with pytest.raises(ProvisioningFailure) as exc_info:
            await github.create_repository("taken", "desc")
        await github.close()

        assert exc_info.value.status_code == 422
        assert "name already exists" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_becomes_provisioning_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        github = GitHubClient(org="clawbuild", token="t", transport=httpx.MockTransport(refuse))
        with pytest.raises(ProvisioningFailure) as exc_info:
            await github.create_repository("x", "y")
        await github.close()
        assert exc_info.value.status_code is None


class TestAppInstallation:
    @pytest.mark.asyncio
    async def test_installation_token_flow(self, rsa_key):
        key, pem = rsa_key
        recorder = Recorder({
            ("GET", "/app/installations"): (200, [
                {"id": 1, "account": {"login": "someone-else"}},
                {"id": 7, "account": {"login": "ClawBuild"}},
            ]),
            ("POST", "/app/installations/7/access_tokens"): (201, {"token": "ghs_install"}),
            ("POST", "/orgs/clawbuild/repos"): (201, repo_json("a")),
        })
        github = client_with(recorder, app_id="12345", app_private_key=pem)

        await github.create_repository("a", "first")
        await github.create_repository("a", "second")
        await github.close()

        assert recorder.paths() == [
            "GET /app/installations",
            "POST /app/installations/7/access_tokens",
            "POST /orgs/clawbuild/repos",
            "POST /orgs/clawbuild/repos",
        ]
        app_token = recorder.requests[0].headers["Authorization"].removeprefix("Bearer ")
        claims = jwt.decode(app_token, key.public_key(), algorithms=["RS256"])
        assert claims["iss"] == "12345"
        assert recorder.requests[2].headers["Authorization"] == "Bearer ghs_install"

    @pytest.mark.asyncio
    async def test_not_installed_on_org(self, rsa_key):
        _, pem = rsa_key
        recorder = Recorder({("GET", "/app/installations"): (200, [])})
        github = client_with(recorder, app_id="12345", app_private_key=pem)

        with pytest.raises(ProvisioningFailure, match="not installed"):
            await github.create_repository("a", "b")
        await github.close()

    @pytest.mark.asyncio
    async def test_no_credentials(self):
        github = client_with(Recorder({}))
        assert not github.configured
        with pytest.raises(ProvisioningFailure, match="No GitHub credentials"):
            await github.create_repository("a", "b")
        await github.close()


class TestInstallationInfo:
    @pytest.mark.asyncio
    async def test_static_token_counts_as_installed(self):
        github = client_with(Recorder({}), token="t")
        assert await github.installation_info() == {
            "configured": True,
            "installed": True,
            "org": "clawbuild",
        }
        await github.close()

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        github = client_with(Recorder({}))
        info = await github.installation_info()
        await github.close()
        assert info == {"configured": False, "installed": False, "org": "clawbuild"}

    @pytest.mark.asyncio
    async def test_app_installed(self, rsa_key):
        _, pem = rsa_key
        recorder = Recorder({
            ("GET", "/app/installations"): (200, [{"id": 7, "account": {"login": "clawbuild"}}]),
        })
        github = client_with(recorder, app_id="1", app_private_key=pem)
        info = await github.installation_info()
        await github.close()
        assert info["installed"] is True
        assert info["installationId"] == 7

    @pytest.mark.asyncio
    async def test_lookup_failure_never_raises(self, rsa_key):
        _, pem = rsa_key
        recorder = Recorder({("GET", "/app/installations"): (401, {"message": "Bad credentials"})})
        github = client_with(recorder, app_id="1", app_private_key=pem)
        info = await github.installation_info()
        await github.close()
        assert info["configured"] is True
        assert info["installed"] is False


class TestFromSettings:
    def test_decodes_base64_private_key(self, rsa_key, monkeypatch):
        _, pem = rsa_key
        monkeypatch.setenv("CLAWBUILD_DATABASE_URL", "sqlite+aiosqlite:///x.db")
        settings = Settings(
            _env_file=None,
            github_org="acme",
            github_app_id="77",
            github_app_private_key_base64=base64.b64encode(pem.encode()).decode(),
        )

        github = GitHubClient.from_settings(settings)
        assert github.org == "acme"
        assert github.app_private_key == pem
        assert github.configured
