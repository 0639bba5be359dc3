"""
Branchwork

Conversation context and rolling summarization for branching
project-management chats.
"""

import importlib.metadata

__version__ = importlib.metadata.version("branchwork")

from .context import ContextBuilder, ContextBuilderOptions, ContextPack
from .errors import NotFoundError
from .summarization import (
    BranchSummary,
    ProjectSummary,
    SummarizationConfig,
    SummarizationService,
    trigger_summarization_if_needed,
)

__all__ = [
    "BranchSummary",
    "ContextBuilder",
    "ContextBuilderOptions",
    "ContextPack",
    "NotFoundError",
    "ProjectSummary",
    "SummarizationConfig",
    "SummarizationService",
    "trigger_summarization_if_needed",
]
