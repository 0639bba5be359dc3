"""CLI tests."""

import pytest
from typer.testing import CliRunner

from branchwork import cli
from branchwork.db.models import BranchModel
from branchwork.db.services import ArtifactService
from branchwork.enums import ArtifactType

from .conftest import FakeGenerator

runner = CliRunner()


@pytest.fixture
def generator(monkeypatch, session_factory):
    generator = FakeGenerator()
    monkeypatch.setattr(cli, "get_session_local", lambda: session_factory)
    monkeypatch.setattr(cli, "build_generator", lambda: generator)
    return generator


def test_context(generator, tree, add_messages, db_session):
    add_messages(tree.branch.id, 4)
    ArtifactService(db_session).create(tree.work_item.id, ArtifactType.PLAN, "Rollout", {"a": 1})

    result = runner.invoke(cli.app, ["context", tree.branch.id, "--limit", "2"])

    assert result.exit_code == 0, result.output
    assert "## Project: Billing" in result.output
    assert "message 3" in result.output
    assert "message 1" not in result.output
    assert "Rollout" in result.output

    bare = runner.invoke(cli.app, ["context", tree.branch.id, "--no-artifacts"])
    assert "## Linked Artifacts" not in bare.output


def test_context_missing_branch(generator):
    result = runner.invoke(cli.app, ["context", "nope"])

    assert result.exit_code == 1
    assert "Branch not found: nope" in result.output


def test_needs_summary(generator, tree, add_messages):
    add_messages(tree.branch.id, 10)

    result = runner.invoke(cli.app, ["needs-summary", tree.branch.id])

    assert result.exit_code == 0, result.output
    assert "yes" in result.output


def test_summarize(generator, tree, add_messages, session_factory):
    add_messages(tree.branch.id, 10)

    result = runner.invoke(cli.app, ["summarize", tree.branch.id])

    assert result.exit_code == 0, result.output
    assert "Discussed the rollout plan" in result.output
    assert "Ship behind a feature flag" in result.output
    db = session_factory()
    assert db.get(BranchModel, tree.branch.id).summary_message_count == 10
    db.close()


def test_summarize_project(generator, tree):
    result = runner.invoke(cli.app, ["summarize-project", tree.project.id])

    assert result.exit_code == 0, result.output
    assert "Billing rewrite" in result.output
    assert "Data migration" in result.output


def test_sweep(generator, tree, add_messages):
    add_messages(tree.branch.id, 10)

    result = runner.invoke(cli.app, ["sweep"])

    assert result.exit_code == 0, result.output
    assert "Updated: 1, skipped: 0, failed: 0" in result.output


def test_serve_delegates_to_server_entry_point(monkeypatch):
    import branchwork.main

    calls = []
    monkeypatch.setattr(branchwork.main, "run", lambda **kwargs: calls.append(kwargs))

    result = runner.invoke(cli.app, ["serve", "--port", "9001", "--dev"])

    assert result.exit_code == 0, result.output
    assert calls == [{"host": None, "port": 9001, "reload": True}]
