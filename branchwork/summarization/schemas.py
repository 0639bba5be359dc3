"""
Summarization schemas and configuration.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import Settings, get_settings


class BranchSummary(BaseModel):
    """Structured rolling summary of a branch conversation."""

    summary: str = Field(..., description="A concise summary of the conversation so far")
    key_decisions: List[str] = Field(
        default_factory=list, description="Key decisions made in the conversation"
    )
    open_questions: List[str] = Field(
        default_factory=list, description="Unresolved questions or topics"
    )
    next_steps: List[str] = Field(
        default_factory=list,
        description="Suggested next steps based on the conversation",
    )


class ProjectSummary(BaseModel):
    """Structured high-level summary of a project."""

    summary: str = Field(..., description="A high-level summary of the project")
    goals: List[str] = Field(default_factory=list, description="Main project goals")
    current_focus: str = Field(
        "", description="What the project is currently focused on"
    )
    recent_progress: List[str] = Field(
        default_factory=list, description="Recent progress or achievements"
    )


class SummarizationConfig(BaseModel):
    """Thresholds and generation parameters for summarization."""

    model_config = ConfigDict(extra="forbid")

    min_messages_for_summary: int = Field(
        default=10, ge=1, description="Messages required before the first summary"
    )
    summarize_every_n_messages: int = Field(
        default=10, ge=1, description="New messages required before re-summarizing"
    )
    max_messages_to_summarize: int = Field(
        default=50, ge=1, description="Oldest-first cap on messages sent to the model"
    )
    temperature: float = Field(default=0.3, ge=0, le=2)
    model: Optional[str] = Field(default=None, description="Override the provider default")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SummarizationConfig":
        settings = settings or get_settings()
        return cls(
            min_messages_for_summary=settings.summary_min_messages,
            summarize_every_n_messages=settings.summary_every_n_messages,
            max_messages_to_summarize=settings.summary_max_messages,
            temperature=settings.summary_temperature,
            model=settings.summary_model,
        )


class PendingSummaryResult(BaseModel):
    """Outcome of a sweep over all branches."""

    updated: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    # Qualified, but nothing was committed (race lost, provider missing, too few messages)
    skipped: List[str] = Field(default_factory=list)
