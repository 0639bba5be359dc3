"""HTTP API tests."""

import pytest
from fastapi.testclient import TestClient

from branchwork import routes
from branchwork.ai.extract_work import ExtractWorkResponse, WorkItemToCreate
from branchwork.ai.types import GenerationError
from branchwork.api import app
from branchwork.config import get_settings
from branchwork.db.base import get_db
from branchwork.enums import WorkItemType

from .conftest import FakeGenerator


@pytest.fixture
def generator():
    return FakeGenerator(
        responses={
            ExtractWorkResponse: ExtractWorkResponse(
                work_items_to_create=[WorkItemToCreate(title="Export", type=WorkItemType.TASK)]
            )
        }
    )


@pytest.fixture
def client(session_factory, generator):
    """Get a test client wired to the test database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[routes.get_generator] = lambda: generator
    app.dependency_overrides[routes.get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def triggered(monkeypatch):
    calls = []

    def record(branch_id, **kwargs):
        calls.append((branch_id, kwargs))

    monkeypatch.setattr(routes, "trigger_summarization_if_needed", record)
    return calls


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_version(client):
    assert "version" in client.get("/version").json()


def test_title_comes_from_settings(client):
    assert client.get("/openapi.json").json()["info"]["title"] == get_settings().app_name


class TestContextEndpoints:
    def test_context_pack(self, client, tree, add_messages):
        add_messages(tree.branch.id, 5)

        response = client.get(f"/context/{tree.branch.id}", params={"message_limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["project"]["name"] == "Billing"
        assert body["branch"]["message_count"] == 5
        assert [m["content"] for m in body["messages"]] == ["message 3", "message 4"]
        assert body["metadata"]["token_estimate"] > 0

    def test_default_window_follows_settings(self, client, tree, add_messages, monkeypatch):
        add_messages(tree.branch.id, 12)
        monkeypatch.setattr(get_settings(), "context_message_limit", 5)

        response = client.get(f"/context/{tree.branch.id}")

        assert response.status_code == 200
        messages = response.json()["messages"]
        assert len(messages) == 5
        assert messages[-1]["content"] == "message 11"

    def test_timestamps_carry_utc_offset(self, client, tree, add_messages):
        add_messages(tree.branch.id, 1)

        body = client.get(f"/context/{tree.branch.id}").json()

        assert body["messages"][0]["created_at"].endswith(("Z", "+00:00"))

    def test_context_string(self, client, tree):
        response = client.get(f"/context/{tree.branch.id}/string")

        assert response.status_code == 200
        body = response.json()
        assert body["context"].startswith("## Project: Billing")
        assert body["token_estimate"] > 0

    def test_missing_branch_is_404(self, client):
        response = client.get("/context/nope")

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"
        assert response.json()["entity_kind"] == "Branch"

    def test_invalid_limit_is_422(self, client, tree):
        response = client.get(f"/context/{tree.branch.id}", params={"message_limit": 500})
        assert response.status_code == 422


class TestSummaryEndpoints:
    def test_summary_status(self, client, tree, add_messages):
        add_messages(tree.branch.id, 11)

        response = client.get(f"/branches/{tree.branch.id}/summary-status")

        assert response.json() == {
            "needs_summary": True,
            "current_message_count": 11,
            "last_summary_message_count": 0,
        }
        assert client.get("/branches/nope/summary-status").status_code == 404

    def test_summarize_branch(self, client, tree, add_messages):
        add_messages(tree.branch.id, 12)

        response = client.post(f"/branches/{tree.branch.id}/summarize")

        assert response.status_code == 200
        assert response.json()["summary"]["summary"] == "Discussed the rollout plan"
        status = client.get(f"/branches/{tree.branch.id}/summary-status").json()
        assert status["last_summary_message_count"] == 12
        assert status["needs_summary"] is False

    def test_summarize_branch_with_too_few_messages(self, client, tree, add_messages):
        add_messages(tree.branch.id, 2)

        response = client.post(f"/branches/{tree.branch.id}/summarize")

        assert response.json() == {"summary": None}

    def test_summarize_project(self, client, tree):
        response = client.post(f"/projects/{tree.project.id}/summarize")

        assert response.status_code == 200
        assert response.json()["summary"]["current_focus"] == "Data migration"
        assert client.post("/projects/nope/summarize").status_code == 404

    def test_pending_summaries(self, client, tree, add_messages):
        add_messages(tree.branch.id, 10)

        response = client.post("/summaries/pending")

        assert response.json() == {"updated": [tree.branch.id], "failed": [], "skipped": []}

    def test_provider_failure_is_502(self, client, tree, add_messages, generator):
        add_messages(tree.branch.id, 12)
        generator.error = GenerationError("provider down", "fake", code="API_ERROR")

        response = client.post(f"/branches/{tree.branch.id}/summarize")

        assert response.status_code == 502
        assert response.json()["error"] == "API_ERROR"


class TestMessageEndpoints:
    def test_append_triggers_summarization(self, client, tree, triggered, session_factory):
        response = client.post(
            f"/branches/{tree.branch.id}/messages",
            json={"role": "USER", "content": "hello", "user_id": tree.user.id},
        )

        assert response.status_code == 201
        assert response.json()["message"]["content"] == "hello"
        assert len(triggered) == 1
        branch_id, kwargs = triggered[0]
        assert branch_id == tree.branch.id
        assert kwargs["session_factory"] is session_factory
        assert kwargs["timeout_ms"] == 30000

    def test_bulk_append(self, client, tree, triggered):
        response = client.post(
            f"/branches/{tree.branch.id}/messages/bulk",
            json={
                "messages": [
                    {"role": "USER", "content": "one"},
                    {"role": "ASSISTANT", "content": "two"},
                ]
            },
        )

        assert response.status_code == 201
        assert response.json()["count"] == 2
        assert [b for b, _ in triggered] == [tree.branch.id]

    def test_append_to_missing_branch(self, client, triggered):
        response = client.post("/branches/nope/messages", json={"role": "USER", "content": "x"})

        assert response.status_code == 404
        assert triggered == []

    def test_invalid_role_is_422(self, client, tree, triggered):
        response = client.post(
            f"/branches/{tree.branch.id}/messages", json={"role": "ROBOT", "content": "x"}
        )
        assert response.status_code == 422


class TestExtractWorkEndpoint:
    def test_extract_work(self, client, tree):
        response = client.post(
            "/ai/extract-work",
            json={"branch_id": tree.branch.id, "user_text": "Add CSV export"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["work_items_to_create"][0]["title"] == "Export"
        assert body["provider"] == "fake"

    def test_no_provider_is_503(self, client, tree):
        app.dependency_overrides[routes.get_generator] = lambda: None

        response = client.post(
            "/ai/extract-work",
            json={"branch_id": tree.branch.id, "user_text": "Add CSV export"},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "NO_PROVIDER"
