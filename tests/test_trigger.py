"""Fire-and-forget trigger tests."""

import asyncio
import threading
import time

import pytest
from structlog.testing import capture_logs

from branchwork.db.models import BranchModel
from branchwork.summarization import trigger_summarization_if_needed
from branchwork.summarization.trigger import _background_tasks

from .conftest import FakeGenerator


def _summary_count(session_factory, branch_id):
    db = session_factory()
    try:
        return db.get(BranchModel, branch_id).summary_message_count
    finally:
        db.close()


async def _drain():
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


class TestTriggerInEventLoop:
    @pytest.mark.asyncio
    async def test_returns_immediately_and_commits_in_background(
        self, session_factory, tree, add_messages
    ):
        add_messages(tree.branch.id, 10)
        generator = FakeGenerator(delay=0.2)

        started = time.monotonic()
        task = trigger_summarization_if_needed(
            tree.branch.id, session_factory=session_factory, generator=generator
        )
        assert time.monotonic() - started < 0.1
        assert isinstance(task, asyncio.Task)
        assert _summary_count(session_factory, tree.branch.id) == 0

        await task
        await _drain()

        assert len(generator.calls) == 1
        assert _summary_count(session_factory, tree.branch.id) == 10

    @pytest.mark.asyncio
    async def test_not_due_does_not_call_generator(self, session_factory, tree, add_messages):
        add_messages(tree.branch.id, 3)
        generator = FakeGenerator()

        await trigger_summarization_if_needed(
            tree.branch.id, session_factory=session_factory, generator=generator
        )
        await _drain()

        assert generator.calls == []

    @pytest.mark.asyncio
    async def test_background_failure_is_logged_not_raised(self, tree):
        def broken_factory():
            raise RuntimeError("database unavailable")

        with capture_logs() as logs:
            task = trigger_summarization_if_needed(
                tree.branch.id, session_factory=broken_factory, generator=FakeGenerator()
            )
            await task
            await _drain()

        events = [entry["event"] for entry in logs]
        assert "background_summarization_failed" in events

    @pytest.mark.asyncio
    async def test_timeout_is_logged_and_work_continues(
        self, session_factory, tree, add_messages
    ):
        add_messages(tree.branch.id, 10)
        generator = FakeGenerator(delay=0.3)

        with capture_logs() as logs:
            task = trigger_summarization_if_needed(
                tree.branch.id,
                session_factory=session_factory,
                generator=generator,
                timeout_ms=50,
            )
            await task
            timeouts = [e for e in logs if e["event"] == "summarization_timeout"]
            assert len(timeouts) == 1
            assert timeouts[0]["log_level"] == "warning"
            assert _summary_count(session_factory, tree.branch.id) == 0

            await _drain()

        assert _summary_count(session_factory, tree.branch.id) == 10


class TestTriggerWithoutEventLoop:
    def test_runs_on_daemon_thread(self, session_factory, tree, add_messages):
        add_messages(tree.branch.id, 10)

        result = trigger_summarization_if_needed(
            tree.branch.id, session_factory=session_factory, generator=FakeGenerator()
        )
        assert result is None

        for thread in threading.enumerate():
            if thread.name == f"summarize-{tree.branch.id}":
                assert thread.daemon
                thread.join(timeout=5)

        assert _summary_count(session_factory, tree.branch.id) == 10
