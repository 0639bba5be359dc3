"""
Context pack schemas.

A ``ContextPack`` is an ephemeral read model assembled per request from a
branch, its work item and project, a window of recent messages and the
latest artifact of each requested type. It is never persisted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums import ArtifactType

DEFAULT_ARTIFACT_TYPES = [
    ArtifactType.PLAN,
    ArtifactType.SPEC,
    ArtifactType.DECISION,
    ArtifactType.CHECKLIST,
]


class ContextBuilderOptions(BaseModel):
    """Knobs for ``ContextBuilder.build_context``."""

    model_config = ConfigDict(extra="forbid")

    message_limit: int = Field(
        default=20, ge=1, le=100, description="Size of the recent-message window"
    )
    include_artifacts: bool = Field(default=True)
    artifact_types: List[ArtifactType] = Field(
        default_factory=lambda: list(DEFAULT_ARTIFACT_TYPES),
        description="Artifact types to fetch (latest version of each)",
    )
    include_parent_items: bool = Field(default=True)
    include_branch_summary: bool = Field(default=True)


class ProjectContext(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    summary: Optional[str] = None


class ParentItem(BaseModel):
    """A direct parent of the work item (one PARENT_CHILD edge)."""

    id: str
    type: str
    title: str


class WorkItemContext(BaseModel):
    id: str
    type: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    acceptance_criteria: Optional[str] = None
    # Immediate parents only; not a root-to-node ancestor path
    parent_items: List[ParentItem] = Field(default_factory=list)


class BranchContext(BaseModel):
    id: str
    name: Optional[str] = None
    summary: Optional[str] = None
    message_count: int = 0
    is_default: bool = False


class ContextMessage(BaseModel):
    id: str
    role: str
    content: str
    created_at: datetime
    user_name: Optional[str] = None


class ArtifactSummary(BaseModel):
    id: str
    type: str
    title: str
    version: int
    content: Any = None
    updated_at: datetime


class ContextArtifacts(BaseModel):
    """Latest artifact per type, plus all of them in type order."""

    plan: Optional[ArtifactSummary] = None
    spec: Optional[ArtifactSummary] = None
    decision: Optional[ArtifactSummary] = None
    checklist: Optional[ArtifactSummary] = None
    all: List[ArtifactSummary] = Field(default_factory=list)


class ContextMetadata(BaseModel):
    generated_at: datetime
    token_estimate: int


class ContextPack(BaseModel):
    """Bounded snapshot of everything an AI call needs about a branch."""

    project: ProjectContext
    work_item: WorkItemContext
    branch: BranchContext
    messages: List[ContextMessage] = Field(default_factory=list)
    artifacts: ContextArtifacts = Field(default_factory=ContextArtifacts)
    metadata: ContextMetadata
