"""
Context builder.

Assembles a ``ContextPack`` for a branch and renders it as prompt text.
This is a pure read path: it never writes and never retries.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import desc, func
from sqlalchemy.orm import Session, joinedload, selectinload

from ..db.models import (
    ArtifactModel,
    BranchModel,
    MessageModel,
    WorkItemEdgeModel,
    WorkItemModel,
)
from ..enums import ArtifactType, EdgeType
from ..errors import NotFoundError
from ..formatting import (
    estimate_tokens,
    serialize_compact,
    serialize_indented,
    speaker_label,
)
from ..primitives import utc_now
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

logger = structlog.get_logger()


class ContextBuilder:
    """Build context packs for conversation branches."""

    def __init__(self, db: Session, options: Optional[ContextBuilderOptions] = None):
        self.db = db
        self.options = options or ContextBuilderOptions()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_context(
        self, branch_id: str, options: Optional[ContextBuilderOptions] = None
    ) -> ContextPack:
        """Build the context pack for ``branch_id``.

        Raises:
            NotFoundError: if the branch does not exist or is soft-deleted.
        """
        options = options or self.options
        branch = self._load_branch(branch_id)
        work_item = branch.work_item
        project = work_item.project

        parent_items = (
            self._parent_items(work_item) if options.include_parent_items else []
        )
        messages = self._recent_messages(branch_id, options.message_limit)
        message_count = self._message_count(branch_id)
        artifacts = (
            self._latest_artifacts(work_item.id, options.artifact_types)
            if options.include_artifacts
            else ContextArtifacts()
        )
        branch_summary = branch.summary if options.include_branch_summary else None

        token_estimate = estimate_tokens(
            project.name,
            project.description,
            project.summary,
            work_item.title,
            work_item.description,
            work_item.acceptance_criteria,
            branch_summary,
            *(m.content for m in messages),
            *(serialize_compact(a.content) for a in artifacts.all),
        )

        logger.debug(
            "context_built",
            branch_id=branch_id,
            messages=len(messages),
            artifacts=len(artifacts.all),
            token_estimate=token_estimate,
        )

        return ContextPack(
            project=ProjectContext(
                id=project.id,
                name=project.name,
                description=project.description,
                summary=project.summary,
            ),
            work_item=WorkItemContext(
                id=work_item.id,
                type=work_item.type,
                title=work_item.title,
                description=work_item.description,
                status=work_item.status,
                priority=work_item.priority,
                acceptance_criteria=work_item.acceptance_criteria,
                parent_items=parent_items,
            ),
            branch=BranchContext(
                id=branch.id,
                name=branch.name,
                summary=branch_summary,
                message_count=message_count,
                is_default=branch.is_default,
            ),
            messages=messages,
            artifacts=artifacts,
            metadata=ContextMetadata(generated_at=utc_now(), token_estimate=token_estimate),
        )

    def build_context_string(
        self, branch_id: str, options: Optional[ContextBuilderOptions] = None
    ) -> str:
        """Build the context pack and render it as prompt text."""
        return format_context(self.build_context(branch_id, options))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _load_branch(self, branch_id: str) -> BranchModel:
        # branch -> work item -> project (+ parent edges) in one round trip
        branch = (
            self.db.query(BranchModel)
            .options(
                joinedload(BranchModel.work_item).joinedload(WorkItemModel.project),
                joinedload(BranchModel.work_item)
                .selectinload(WorkItemModel.parent_edges)
                .joinedload(WorkItemEdgeModel.parent),
            )
            .filter(BranchModel.id == branch_id, BranchModel.deleted_at.is_(None))
            .first()
        )
        if branch is None:
            raise NotFoundError("Branch", branch_id)
        return branch

    @staticmethod
    def _parent_items(work_item: WorkItemModel) -> List[ParentItem]:
        edges = sorted(
            (
                edge
                for edge in work_item.parent_edges
                if edge.deleted_at is None
                and edge.edge_type == EdgeType.PARENT_CHILD.value
            ),
            key=lambda edge: edge.created_at,
        )
        return [
            ParentItem(id=edge.parent.id, type=edge.parent.type, title=edge.parent.title)
            for edge in edges
        ]

    def _recent_messages(self, branch_id: str, limit: int) -> List[ContextMessage]:
        rows = (
            self.db.query(MessageModel)
            .options(joinedload(MessageModel.user))
            .filter(MessageModel.branch_id == branch_id, MessageModel.deleted_at.is_(None))
            .order_by(desc(MessageModel.created_at), desc(MessageModel.id))
            .limit(limit)
            .all()
        )
        # Newest-first fetch bounds the window; reverse for chronological order
        rows.reverse()
        return [
            ContextMessage(
                id=m.id,
                role=m.role,
                content=m.content,
                created_at=m.created_at,
                user_name=m.user.name if m.user else None,
            )
            for m in rows
        ]

    def _message_count(self, branch_id: str) -> int:
        return (
            self.db.query(func.count(MessageModel.id))
            .filter(MessageModel.branch_id == branch_id, MessageModel.deleted_at.is_(None))
            .scalar()
        )

    def _latest_artifacts(
        self, work_item_id: str, artifact_types: Iterable[ArtifactType]
    ) -> ContextArtifacts:
        type_values = [ArtifactType(t).value for t in artifact_types]
        if not type_values:
            return ContextArtifacts()

        rows = (
            self.db.query(ArtifactModel)
            .filter(
                ArtifactModel.work_item_id == work_item_id,
                ArtifactModel.deleted_at.is_(None),
                ArtifactModel.type.in_(type_values),
            )
            .order_by(
                ArtifactModel.type.asc(),
                desc(ArtifactModel.version),
                desc(ArtifactModel.updated_at),
            )
            .all()
        )

        # First row per type wins: highest version, then most recently updated
        by_type: Dict[str, ArtifactSummary] = {}
        for row in rows:
            if row.type not in by_type:
                by_type[row.type] = ArtifactSummary(
                    id=row.id,
                    type=row.type,
                    title=row.title,
                    version=row.version,
                    content=row.content,
                    updated_at=row.updated_at,
                )

        return ContextArtifacts(
            plan=by_type.get(ArtifactType.PLAN.value),
            spec=by_type.get(ArtifactType.SPEC.value),
            decision=by_type.get(ArtifactType.DECISION.value),
            checklist=by_type.get(ArtifactType.CHECKLIST.value),
            all=list(by_type.values()),
        )


def format_context(context: ContextPack) -> str:
    """Render a context pack as a deterministic prompt section.

    Section order: project, work item, parent items, conversation summary,
    linked artifacts, recent conversation. Empty sections are left out.
    """
    lines: List[str] = [f"## Project: {context.project.name}"]
    if context.project.description:
        lines.append(f"Description: {context.project.description}")
    if context.project.summary:
        lines.append(f"Summary: {context.project.summary}")

    item = context.work_item
    lines += [
        "",
        f"## Work Item: {item.title}",
        f"Type: {item.type} | Status: {item.status} | Priority: {item.priority}",
    ]
    if item.description:
        lines.append(f"Description: {item.description}")
    if item.acceptance_criteria:
        lines.append(f"Acceptance Criteria:\n{item.acceptance_criteria}")

    if item.parent_items:
        lines += ["", "### Parent Items:"]
        lines += [f"- [{parent.type}] {parent.title}" for parent in item.parent_items]

    if context.branch.summary:
        lines += ["", "## Conversation Summary", context.branch.summary]

    if context.artifacts.all:
        lines += ["", "## Linked Artifacts"]
        for artifact in context.artifacts.all:
            lines += [
                f"### {artifact.type}: {artifact.title} (v{artifact.version})",
                "```json",
                serialize_indented(artifact.content),
                "```",
            ]

    if context.messages:
        lines += ["", "## Recent Conversation"]
        lines += [
            f"**{speaker_label(m.role, m.user_name)}**: {m.content}"
            for m in context.messages
        ]

    return "\n".join(lines)


def build_context_for_branch(
    db: Session, branch_id: str, options: Optional[ContextBuilderOptions] = None
) -> ContextPack:
    """Build a context pack with a one-off builder."""
    return ContextBuilder(db, options).build_context(branch_id)
