"""Test configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from branchwork.ai.types import StructuredGenerationResult, TokenUsage
from branchwork.db.base import create_db_engine, init_database
from branchwork.db.services import (
    MessageService,
    ProjectService,
    UserService,
    WorkItemService,
)
from branchwork.enums import MessageRole, WorkItemType
from branchwork.summarization.schemas import BranchSummary, ProjectSummary

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeGenerator:
    """Structured generator that records calls and returns canned data."""

    name = "fake"

    def __init__(
        self,
        responses: Optional[Dict[type, Any]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.responses = {
            BranchSummary: BranchSummary(
                summary="Discussed the rollout plan",
                key_decisions=["Ship behind a feature flag"],
                next_steps=["Write the migration"],
            ),
            ProjectSummary: ProjectSummary(
                summary="Billing rewrite",
                goals=["Replace the legacy invoicer"],
                current_focus="Data migration",
            ),
        }
        self.responses.update(responses or {})
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def generate_structured(
        self,
        messages,
        schema,
        *,
        temperature=None,
        model=None,
        schema_name=None,
        schema_description=None,
    ):
        self.calls.append(
            {
                "messages": messages,
                "schema": schema,
                "temperature": temperature,
                "model": model,
                "schema_name": schema_name,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        data = self.responses[schema]
        return StructuredGenerationResult[schema](
            data=data,
            raw_text=data.model_dump_json(),
            model="fake-model",
            provider=self.name,
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_db_engine("sqlite://")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Get a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def tree(db_session):
    """A project with one work item and its default branch."""
    project = ProjectService(db_session).create("Billing", description="Invoices and payments")
    work_item = WorkItemService(db_session).create(
        project.id,
        "Migrate invoices",
        item_type=WorkItemType.TASK,
        description="Move invoices to the new schema",
    )
    branch = work_item.branches[0]
    user = UserService(db_session).create("Ada", email="ada@example.com")
    return SimpleNamespace(project=project, work_item=work_item, branch=branch, user=user)


@pytest.fixture
def add_messages(db_session):
    """Append ``count`` alternating user/assistant messages, one second apart."""

    def _add(branch_id: str, count: int, start: int = 0, user_id: Optional[str] = None):
        service = MessageService(db_session)
        messages = []
        for i in range(start, start + count):
            role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
            messages.append(
                service.append(
                    branch_id,
                    role=role,
                    content=f"message {i}",
                    user_id=user_id if role == MessageRole.USER else None,
                    created_at=BASE_TIME + timedelta(seconds=i),
                )
            )
        return messages

    return _add


@pytest.fixture
def fake_generator():
    return FakeGenerator()
