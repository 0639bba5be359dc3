"""
Rolling summarization of branches and projects.
"""

from .schemas import (
    BranchSummary,
    PendingSummaryResult,
    ProjectSummary,
    SummarizationConfig,
)
from .service import SummarizationService, maybe_summarize_branch
from .trigger import trigger_summarization_if_needed

__all__ = [
    "BranchSummary",
    "PendingSummaryResult",
    "ProjectSummary",
    "SummarizationConfig",
    "SummarizationService",
    "maybe_summarize_branch",
    "trigger_summarization_if_needed",
]
