"""
Summarization service.

Decides when a branch needs a fresh rolling summary, generates it through
the structured-generation capability and commits it under optimistic
concurrency control.

The lock token is ``BranchModel.summary_message_count`` together with
``summary_updated_at``. It is read before
the (slow) generation call and the commit is an UPDATE conditioned on the
column still holding that value. Concurrent summarizers may all pay for a
generation call, but only one of them commits per epoch; the others see
zero affected rows and return None.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import desc, func, select, update
from sqlalchemy.orm import Session, joinedload

from ..ai.types import (
    AIProviderError,
    ChatMessage,
    ProviderUnavailableError,
    StructuredGenerator,
)
from ..db.models import BranchModel, MessageModel, ProjectModel, WorkItemModel
from ..errors import NotFoundError
from ..formatting import (
    format_branch_summary,
    format_project_summary,
    format_transcript,
)
from ..primitives import utc_now
from .schemas import (
    BranchSummary,
    PendingSummaryResult,
    ProjectSummary,
    SummarizationConfig,
)

logger = structlog.get_logger()

PROJECT_WORK_ITEM_LIMIT = 20

BRANCH_SYSTEM_PROMPT = """You are a conversation summarizer. Analyze the following conversation about a {item_type} titled "{title}" and provide a structured summary.

{previous_summary}Focus on:
1. The main points discussed
2. Any decisions that were made
3. Open questions or unresolved topics
4. Suggested next steps

Be concise but comprehensive."""

PROJECT_SYSTEM_PROMPT = """You are a project summarizer. Analyze the following project information and provide a high-level summary suitable for providing context to AI assistants working on the project.

Be concise but informative. Focus on what would be most useful for understanding the project's purpose and current state."""


def _message_count_subquery():
    """Correlated count of non-deleted messages per branch."""
    return (
        select(func.count(MessageModel.id))
        .where(
            MessageModel.branch_id == BranchModel.id,
            MessageModel.deleted_at.is_(None),
        )
        .correlate(BranchModel)
        .scalar_subquery()
    )


class SummarizationService:
    """Generate and store branch and project summaries."""

    def __init__(
        self,
        db: Session,
        generator: Optional[StructuredGenerator] = None,
        config: Optional[SummarizationConfig] = None,
    ):
        self.db = db
        self.generator = generator
        self.config = config or SummarizationConfig()

    # ------------------------------------------------------------------
    # Needs-summary predicate
    # ------------------------------------------------------------------

    def needs_summary(self, current_count: int, summary_message_count: int) -> bool:
        """Decide from counts alone whether a branch should be re-summarized."""
        if summary_message_count == 0:
            return current_count >= self.config.min_messages_for_summary
        return (
            current_count - summary_message_count
        ) >= self.config.summarize_every_n_messages

    def summary_status(self, branch_id: str) -> Optional[Tuple[int, int]]:
        """Return ``(current_count, summary_message_count)`` or None if missing.

        One aggregate query; no message bodies are loaded.
        """
        row = (
            self.db.query(BranchModel.summary_message_count, _message_count_subquery())
            .filter(BranchModel.id == branch_id, BranchModel.deleted_at.is_(None))
            .first()
        )
        if row is None:
            return None
        summary_count, current_count = row
        return current_count, summary_count

    def branch_needs_summary(self, branch_id: str) -> bool:
        """Cheap pre-check. A missing branch never needs a summary."""
        status = self.summary_status(branch_id)
        if status is None:
            return False
        return self.needs_summary(*status)

    # ------------------------------------------------------------------
    # Branch summarization
    # ------------------------------------------------------------------

    async def summarize_branch(self, branch_id: str) -> Optional[BranchSummary]:
        """Generate and commit a rolling summary for a branch.

        Returns None when no provider is configured, when the branch has too
        few messages, or when another summarizer committed first.

        Raises:
            NotFoundError: if the branch does not exist.
            AIProviderError: if generation fails.
        """
        log = logger.bind(branch_id=branch_id)
        if self.generator is None:
            log.warning("summarization_skipped_no_provider")
            return None

        branch = (
            self.db.query(BranchModel)
            .options(joinedload(BranchModel.work_item))
            .filter(BranchModel.id == branch_id, BranchModel.deleted_at.is_(None))
            .first()
        )
        if branch is None:
            raise NotFoundError("Branch", branch_id)

        messages = (
            self.db.query(MessageModel)
            .options(joinedload(MessageModel.user))
            .filter(MessageModel.branch_id == branch_id, MessageModel.deleted_at.is_(None))
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            .limit(self.config.max_messages_to_summarize)
            .all()
        )
        if len(messages) < self.config.min_messages_for_summary:
            log.debug("summarization_skipped_too_few_messages", messages=len(messages))
            return None

        # Optimistic-lock token
        expected_count = branch.summary_message_count
        expected_updated_at = branch.summary_updated_at
        previous_summary = branch.summary
        work_item = branch.work_item

        if previous_summary and len(messages) == expected_count:
            # Capped window already summarized; nothing new to send
            log.debug("summarization_skipped_window_unchanged", messages=len(messages))
            return None

        prompt = self._branch_prompt(work_item, previous_summary, messages)
        try:
            result = await self.generator.generate_structured(
                prompt,
                BranchSummary,
                temperature=self.config.temperature,
                model=self.config.model,
                schema_name="BranchSummary",
            )
        except ProviderUnavailableError:
            log.warning("summarization_skipped_no_provider")
            return None
        except AIProviderError as e:
            log.error("branch_summarization_failed", error=str(e))
            raise

        summary = result.data
        committed = self._commit_branch_summary(
            branch_id,
            expected_count=expected_count,
            expected_updated_at=expected_updated_at,
            summary_text=format_branch_summary(summary),
            message_count=len(messages),
        )
        if not committed:
            log.info("summarization_superseded", expected_count=expected_count)
            return None

        log.info("branch_summarized", message_count=len(messages))
        return summary

    def _commit_branch_summary(
        self,
        branch_id: str,
        expected_count: int,
        expected_updated_at: Optional[datetime],
        summary_text: str,
        message_count: int,
    ) -> bool:
        """Write the summary only if nobody advanced it since we read it.

        The timestamp is part of the token so that a write storing the
        same capped count still invalidates concurrent readers.
        """
        if expected_updated_at is None:
            updated_at_matches = BranchModel.summary_updated_at.is_(None)
        else:
            updated_at_matches = BranchModel.summary_updated_at == expected_updated_at
        result = self.db.execute(
            update(BranchModel)
            .where(
                BranchModel.id == branch_id,
                BranchModel.summary_message_count == expected_count,
                updated_at_matches,
            )
            .values(
                summary=summary_text,
                summary_updated_at=utc_now(),
                summary_message_count=message_count,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0

    @staticmethod
    def _branch_prompt(
        work_item: WorkItemModel,
        previous_summary: Optional[str],
        messages: List[MessageModel],
    ) -> List[ChatMessage]:
        transcript = format_transcript(
            (m.role, m.user.name if m.user else None, m.content) for m in messages
        )
        previous = f"Previous summary: {previous_summary}\n\n" if previous_summary else ""
        system = BRANCH_SYSTEM_PROMPT.format(
            item_type=work_item.type.lower(),
            title=work_item.title,
            previous_summary=previous,
        )
        return [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=f"Summarize this conversation:\n\n{transcript}"),
        ]

    # ------------------------------------------------------------------
    # Project summarization
    # ------------------------------------------------------------------

    async def summarize_project(self, project_id: str) -> Optional[ProjectSummary]:
        """Generate and store a summary for a project.

        The write is unconditional (last writer wins); see DESIGN.md.

        Raises:
            NotFoundError: if the project does not exist.
            AIProviderError: if generation fails.
        """
        log = logger.bind(project_id=project_id)
        if self.generator is None:
            log.warning("summarization_skipped_no_provider")
            return None

        project = (
            self.db.query(ProjectModel)
            .filter(ProjectModel.id == project_id, ProjectModel.deleted_at.is_(None))
            .first()
        )
        if project is None:
            raise NotFoundError("Project", project_id)

        work_items = (
            self.db.query(WorkItemModel)
            .filter(
                WorkItemModel.project_id == project_id,
                WorkItemModel.deleted_at.is_(None),
            )
            .order_by(desc(WorkItemModel.updated_at))
            .limit(PROJECT_WORK_ITEM_LIMIT)
            .all()
        )
        items_text = "\n".join(
            f"- [{wi.type}] {wi.title} ({wi.status})"
            + (f": {wi.description}" if wi.description else "")
            for wi in work_items
        )
        prompt = [
            ChatMessage(role="system", content=PROJECT_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=(
                    f"Project: {project.name}\n"
                    f"Description: {project.description or 'No description'}\n\n"
                    f"Recent Work Items:\n{items_text}\n\n"
                    "Generate a summary of this project."
                ),
            ),
        ]

        try:
            result = await self.generator.generate_structured(
                prompt,
                ProjectSummary,
                temperature=self.config.temperature,
                model=self.config.model,
                schema_name="ProjectSummary",
            )
        except ProviderUnavailableError:
            log.warning("summarization_skipped_no_provider")
            return None
        except AIProviderError as e:
            log.error("project_summarization_failed", error=str(e))
            raise

        project.summary = format_project_summary(result.data)
        project.summary_updated_at = utc_now()
        self.db.commit()

        log.info("project_summarized", work_items=len(work_items))
        return result.data

    # ------------------------------------------------------------------
    # Batch sweep
    # ------------------------------------------------------------------

    async def update_pending_summaries(self) -> PendingSummaryResult:
        """Summarize every branch that qualifies, one after another.

        A failing branch is recorded and the sweep continues.
        """
        rows = (
            self.db.query(
                BranchModel.id,
                BranchModel.summary_message_count,
                _message_count_subquery(),
            )
            .filter(BranchModel.deleted_at.is_(None))
            .order_by(BranchModel.created_at.asc())
            .all()
        )

        outcome = PendingSummaryResult()
        for branch_id, summary_count, current_count in rows:
            if not self.needs_summary(current_count, summary_count):
                continue

            try:
                summary = await self.summarize_branch(branch_id)
            except Exception as e:
                logger.error("pending_summary_failed", branch_id=branch_id, error=str(e))
                self.db.rollback()
                outcome.failed.append(branch_id)
                continue

            if summary is None:
                outcome.skipped.append(branch_id)
            else:
                outcome.updated.append(branch_id)

        logger.info(
            "pending_summaries_updated",
            updated=len(outcome.updated),
            failed=len(outcome.failed),
            skipped=len(outcome.skipped),
        )
        return outcome


async def maybe_summarize_branch(service: SummarizationService, branch_id: str) -> bool:
    """Summarize ``branch_id`` if it qualifies. True if a summary was committed."""
    if not service.branch_needs_summary(branch_id):
        return False
    return await service.summarize_branch(branch_id) is not None
