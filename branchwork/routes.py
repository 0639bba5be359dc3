"""
Branchwork API routes.

Context retrieval, summarization and message append endpoints. Appending
messages schedules a background summarization check for the branch.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from .ai.extract_work import ExtractWorkOptions, extract_work
from .ai.types import StructuredGenerator
from .config import get_settings
from .context import ContextBuilder, ContextBuilderOptions, ContextPack, format_context
from .db.base import get_db, get_session_local
from .db.services import MessageService
from .enums import ArtifactType, MessageRole
from .summarization import (
    SummarizationConfig,
    SummarizationService,
    trigger_summarization_if_needed,
)

router = APIRouter(tags=["branchwork"])


# =============================================================================
# Dependencies
# =============================================================================


def get_generator(request: Request) -> Optional[StructuredGenerator]:
    """The structured generator selected at startup (None if unconfigured)."""
    return getattr(request.app.state, "generator", None)


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives the request session."""
    return get_session_local()


def get_summarization_config() -> SummarizationConfig:
    return SummarizationConfig.from_settings()


# =============================================================================
# Request bodies
# =============================================================================


class MessageCreate(BaseModel):
    role: MessageRole
    content: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None


class MessagesBulkCreate(BaseModel):
    messages: List[MessageCreate] = Field(..., min_length=1, max_length=500)


class ExtractWorkRequest(BaseModel):
    branch_id: str
    user_text: str = Field(..., min_length=1, max_length=50000)
    options: Optional[ExtractWorkOptions] = None


def _context_options(
    message_limit: Optional[int] = Query(None, ge=1, le=100),
    include_artifacts: bool = True,
    artifact_types: Optional[List[ArtifactType]] = Query(None),
    include_parent_items: bool = True,
    include_branch_summary: bool = True,
) -> ContextBuilderOptions:
    options = ContextBuilderOptions(
        message_limit=message_limit or get_settings().context_message_limit,
        include_artifacts=include_artifacts,
        include_parent_items=include_parent_items,
        include_branch_summary=include_branch_summary,
    )
    if artifact_types:
        options.artifact_types = artifact_types
    return options


# =============================================================================
# Context Endpoints
# =============================================================================


@router.get("/context/{branch_id}", response_model=ContextPack)
def get_context(
    branch_id: str,
    options: ContextBuilderOptions = Depends(_context_options),
    db: Session = Depends(get_db),
) -> ContextPack:
    """Build the context pack for a branch."""
    return ContextBuilder(db, options).build_context(branch_id)


@router.get("/context/{branch_id}/string")
def get_context_string(
    branch_id: str,
    options: ContextBuilderOptions = Depends(_context_options),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Build the context pack for a branch and render it as prompt text."""
    builder = ContextBuilder(db, options)
    pack = builder.build_context(branch_id)
    return {
        "context": format_context(pack),
        "token_estimate": pack.metadata.token_estimate,
    }


# =============================================================================
# Summarization Endpoints
# =============================================================================


@router.get("/branches/{branch_id}/summary-status")
def get_summary_status(
    branch_id: str,
    db: Session = Depends(get_db),
    config: SummarizationConfig = Depends(get_summarization_config),
) -> Dict[str, Any]:
    """Report whether a branch is due for a new summary."""
    service = SummarizationService(db, config=config)
    status = service.summary_status(branch_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Branch not found")

    current, last = status
    return {
        "needs_summary": service.needs_summary(current, last),
        "current_message_count": current,
        "last_summary_message_count": last,
    }


@router.post("/branches/{branch_id}/summarize")
async def summarize_branch(
    branch_id: str,
    db: Session = Depends(get_db),
    generator: Optional[StructuredGenerator] = Depends(get_generator),
    config: SummarizationConfig = Depends(get_summarization_config),
) -> Dict[str, Any]:
    """Summarize a branch now, regardless of the needs-summary check."""
    service = SummarizationService(db, generator=generator, config=config)
    summary = await service.summarize_branch(branch_id)
    return {"summary": summary.model_dump() if summary else None}


@router.post("/projects/{project_id}/summarize")
async def summarize_project(
    project_id: str,
    db: Session = Depends(get_db),
    generator: Optional[StructuredGenerator] = Depends(get_generator),
    config: SummarizationConfig = Depends(get_summarization_config),
) -> Dict[str, Any]:
    """Summarize a project from its most recently updated work items."""
    service = SummarizationService(db, generator=generator, config=config)
    summary = await service.summarize_project(project_id)
    return {"summary": summary.model_dump() if summary else None}


@router.post("/summaries/pending")
async def update_pending_summaries(
    db: Session = Depends(get_db),
    generator: Optional[StructuredGenerator] = Depends(get_generator),
    config: SummarizationConfig = Depends(get_summarization_config),
) -> Dict[str, Any]:
    """Summarize every branch that is due."""
    service = SummarizationService(db, generator=generator, config=config)
    result = await service.update_pending_summaries()
    return result.model_dump()


# =============================================================================
# Message Endpoints
# =============================================================================


def _schedule_summarization(
    branch_id: str,
    session_factory: sessionmaker,
    generator: Optional[StructuredGenerator],
    config: SummarizationConfig,
) -> None:
    trigger_summarization_if_needed(
        branch_id,
        session_factory=session_factory,
        generator=generator,
        config=config,
        timeout_ms=get_settings().summary_trigger_timeout_ms,
    )


@router.post("/branches/{branch_id}/messages", status_code=201)
async def append_message(
    branch_id: str,
    message: MessageCreate,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    generator: Optional[StructuredGenerator] = Depends(get_generator),
    config: SummarizationConfig = Depends(get_summarization_config),
) -> Dict[str, Any]:
    """Append a message to a branch."""
    db_message = MessageService(db).append(
        branch_id,
        role=message.role,
        content=message.content,
        user_id=message.user_id,
        meta=message.meta,
    )
    _schedule_summarization(branch_id, session_factory, generator, config)
    return {"status": "success", "message": db_message.to_dict()}


@router.post("/branches/{branch_id}/messages/bulk", status_code=201)
async def append_messages(
    branch_id: str,
    body: MessagesBulkCreate,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    generator: Optional[StructuredGenerator] = Depends(get_generator),
    config: SummarizationConfig = Depends(get_summarization_config),
) -> Dict[str, Any]:
    """Append several messages to a branch in order."""
    messages = MessageService(db).append_many(
        branch_id, [m.model_dump() for m in body.messages]
    )
    _schedule_summarization(branch_id, session_factory, generator, config)
    return {
        "status": "success",
        "count": len(messages),
        "messages": [m.to_dict() for m in messages],
    }


# =============================================================================
# AI Endpoints
# =============================================================================


@router.post("/ai/extract-work")
async def extract_work_endpoint(
    body: ExtractWorkRequest,
    db: Session = Depends(get_db),
    generator: Optional[StructuredGenerator] = Depends(get_generator),
) -> Dict[str, Any]:
    """Extract work items, artifacts and next actions from free-form text."""
    result = await extract_work(db, generator, body.branch_id, body.user_text, body.options)
    return result.model_dump(mode="json")
