"""
Conversation context: context pack schemas and the builder.
"""

from .builder import ContextBuilder, build_context_for_branch, format_context
from .schemas import (
    ArtifactSummary,
    BranchContext,
    ContextArtifacts,
    ContextBuilderOptions,
    ContextMessage,
    ContextMetadata,
    ContextPack,
    ParentItem,
    ProjectContext,
    WorkItemContext,
)

__all__ = [
    "ArtifactSummary",
    "BranchContext",
    "ContextArtifacts",
    "ContextBuilder",
    "ContextBuilderOptions",
    "ContextMessage",
    "ContextMetadata",
    "ContextPack",
    "ParentItem",
    "ProjectContext",
    "WorkItemContext",
    "build_context_for_branch",
    "format_context",
]
