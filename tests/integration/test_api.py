"""End-to-end tests through the HTTP API with signed agent requests."""

import json
import time

import pytest

from clawbuild.repositories import AgentRepository
from tests.factories import AgentFactory


async def register(client, agent) -> dict:
    response = await client.post(
        "/api/agents/register",
        json={"public_key": agent.public_key, "name": agent.name},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def registered_agent(client, database, weight: float = 1.0):
    agent = AgentFactory.build()
    await register(client, agent)
    if weight != 1.0:
        async with database.unit_of_work() as db:
            await AgentRepository(db).set_vote_weight(agent.agent_id, weight)
    return agent


async def submit_idea(client, agent, title="Shared Scratchpad", description="Notes for agents"):
    path = "/api/ideas"
    response = await client.post(path, **agent.signed_json("POST", path, {
        "title": title,
        "description": description,
    }))
    assert response.status_code == 201, response.text
    return response.json()


async def vote(client, agent, idea_id, direction="up"):
    path = f"/api/ideas/{idea_id}/vote"
    return await client.post(path, **agent.signed_json("POST", path, {"vote": direction}))


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestAgents:
    @pytest.mark.asyncio
    async def test_register_derives_id_from_key(self, client):
        agent = AgentFactory.build(name="Builder")
        data = await register(client, agent)

        assert data["id"] == agent.agent_id
        assert data["name"] == "Builder"
        assert data["reputation"]["vote_weight"] == 1.0
        assert data["reputation"]["ideas_proposed"] == 0

    @pytest.mark.asyncio
    async def test_register_twice_conflicts(self, client):
        agent = AgentFactory.build()
        await register(client, agent)

        response = await client.post(
            "/api/agents/register",
            json={"public_key": agent.public_key, "name": "again"},
        )
        assert response.status_code == 409
        assert response.json()["detail"]["type"].endswith("/agent_already_registered")

    @pytest.mark.asyncio
    async def test_register_rejects_bad_key(self, client):
        response = await client.post(
            "/api/agents/register",
            json={"public_key": "dG9vIHNob3J0", "name": "bad"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_get_unknown_agent(self, client):
        response = await client.get("/api/agents/" + "0" * 32)
        assert response.status_code == 404
        assert response.json()["detail"]["status"] == 404


class TestSignedRequests:
    @pytest.mark.asyncio
    async def test_unsigned_mutation_rejected(self, client):
        response = await client.post("/api/ideas", json={"title": "t", "description": "d"})
        assert response.status_code == 401
        assert response.json()["detail"]["type"].endswith("/missing_credentials")

    @pytest.mark.asyncio
    async def test_stale_signature_rejected(self, client, database):
        agent = await registered_agent(client, database)
        body = json.dumps({"title": "t", "description": "d"}).encode()
        headers = agent.sign("POST", "/api/ideas", body, timestamp=int(time.time()) - 600)
        headers["Content-Type"] = "application/json"

        response = await client.post("/api/ideas", content=body, headers=headers)
        assert response.status_code == 401
        assert response.json()["detail"]["type"].endswith("/stale_request")

    @pytest.mark.asyncio
    async def test_unregistered_agent_rejected(self, client):
        stranger = AgentFactory.build()
        response = await client.post(
            "/api/ideas", **stranger.signed_json("POST", "/api/ideas", {"title": "t", "description": "d"})
        )
        assert response.status_code == 401
        assert response.json()["detail"]["type"].endswith("/unknown_agent")

    @pytest.mark.asyncio
    async def test_signature_bound_to_path(self, client, database):
        agent = await registered_agent(client, database)
        kwargs = agent.signed_json("POST", "/api/other", {"title": "t", "description": "d"})

        response = await client.post("/api/ideas", **kwargs)
        assert response.status_code == 401
        assert response.json()["detail"]["type"].endswith("/invalid_signature")


class TestIdeaLifecycleApi:
    @pytest.mark.asyncio
    async def test_submit_vote_approve_and_join(self, client, database, repo_host):
        author = await registered_agent(client, database)
        idea = await submit_idea(client, author)
        assert idea["status"] == "voting"
        assert idea["author_id"] == author.agent_id

        voters = [
            await registered_agent(client, database, weight=10.0),
            await registered_agent(client, database),
            await registered_agent(client, database),
        ]
        results = [await vote(client, v, idea["id"]) for v in voters]
        assert all(r.status_code == 200 for r in results)
        final = results[-1].json()
        assert final == {
            "success": True,
            "vote": "up",
            "weight": 1.0,
            "score": 12.0,
            "voters": 3,
            "approved": True,
        }

        detail = (await client.get(f"/api/ideas/{idea['id']}")).json()
        assert detail["status"] == "building"
        assert detail["repo_url"] == "https://github.com/clawbuild/shared-scratchpad"
        assert detail["votes"] == {"up": 12.0, "down": 0.0, "total": 3, "score": 12.0}

        votes = (await client.get(f"/api/ideas/{idea['id']}/votes")).json()
        assert len(votes) == 3
        assert {v["agent_id"] for v in votes} == {v.agent_id for v in voters}

        project_id = detail["project_id"]
        project = (await client.get(f"/api/projects/{project_id}")).json()
        assert project["idea_id"] == idea["id"]
        assert project["contributors"][0]["role"] == "lead"

        joiner = voters[1]
        path = f"/api/projects/{project_id}/join"
        joined = await client.post(path, **joiner.signed_json("POST", path))
        assert joined.status_code == 201
        assert joined.json()["role"] == "contributor"

        again = await client.post(path, **joiner.signed_json("POST", path))
        assert again.status_code == 409

        late = await vote(client, voters[2], idea["id"], "down")
        assert late.status_code == 400
        assert late.json()["detail"]["type"].endswith("/voting_closed")

    @pytest.mark.asyncio
    async def test_vote_on_missing_idea(self, client, database):
        agent = await registered_agent(client, database)
        response = await vote(client, agent, "00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_ideas_filters_by_status(self, client, database):
        author = await registered_agent(client, database)
        await submit_idea(client, author, title="One")
        await submit_idea(client, author, title="Two")

        listed = (await client.get("/api/ideas", params={"status": "voting"})).json()
        assert listed["count"] == 2
        assert (await client.get("/api/ideas", params={"status": "shipped"})).json()["count"] == 0

    @pytest.mark.asyncio
    async def test_join_missing_project(self, client, database):
        agent = await registered_agent(client, database)
        path = "/api/projects/00000000-0000-0000-0000-000000000000/join"
        response = await client.post(path, **agent.signed_json("POST", path))
        assert response.status_code == 404


class TestWebhookEndpoint:
    @pytest.mark.asyncio
    async def test_push_updates_project(self, client, make_project):
        project = await make_project("Hooked")
        payload = {"repository": {"full_name": project.repo_full_name}, "commits": [{"id": "1"}]}

        response = await client.post(
            "/api/webhooks/github", json=payload, headers={"X-GitHub-Event": "push"}
        )
        assert response.status_code == 200
        assert response.json() == {"received": True}

        stats = (await client.get(f"/api/projects/{project.id}")).json()
        assert stats["commits_count"] == 1

        activity = (await client.get(f"/api/projects/{project.id}/activity")).json()
        assert activity["items"][0]["type"] == "project:push"

    @pytest.mark.asyncio
    async def test_x_event_type_header_wins(self, client, make_project):
        project = await make_project("Hooked Again")
        payload = {
            "action": "opened",
            "repository": {"full_name": project.repo_full_name},
            "issue": {"number": 1, "title": "t", "user": {"login": "u"}},
        }

        await client.post(
            "/api/webhooks/github",
            json=payload,
            headers={"X-Event-Type": "issues", "X-GitHub-Event": "push"},
        )

        stats = (await client.get(f"/api/projects/{project.id}")).json()
        assert stats["issues_count"] == 1
        assert stats["commits_count"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [b"not json", b"[]", b'{"repository": {"full_name": "x/y"}}'])
    async def test_always_acknowledged(self, client, body):
        response = await client.post(
            "/api/webhooks/github",
            content=body,
            headers={"X-GitHub-Event": "push", "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json() == {"received": True}


class TestFeedAndStatus:
    @pytest.mark.asyncio
    async def test_feed_newest_first_and_filtered(self, client, database):
        author = await registered_agent(client, database)
        await submit_idea(client, author, title="First")

        feed = (await client.get("/api/feed")).json()
        assert feed["total"] == 2
        assert [e["type"] for e in feed["items"]] == ["idea:created", "agent:registered"]

        only = (await client.get("/api/feed", params={"type": "agent:registered"})).json()
        assert only["total"] == 1
        assert only["items"][0]["agent_id"] == author.agent_id

    @pytest.mark.asyncio
    async def test_github_status(self, client):
        status = (await client.get("/api/github/status")).json()
        assert status == {
            "configured": True,
            "installed": True,
            "org": "clawbuild",
            "installationId": 42,
        }
