"""
Database services for Branchwork.

Plain CRUD over the relational schema. Each service wraps a ``Session``;
lookups ignore soft-deleted rows and raise ``NotFoundError`` where the
caller passed an identifier that must exist.

None of these services writes ``BranchModel.summary``,
``summary_updated_at`` or ``summary_message_count``. Those columns are
committed only by ``SummarizationService`` through its conditional update.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..enums import ArtifactType, EdgeType, MessageRole, WorkItemType
from ..errors import NotFoundError
from ..primitives import generate_ulid, utc_now
from .models import (
    ArtifactModel,
    BranchModel,
    MessageModel,
    ProjectModel,
    UserModel,
    WorkItemEdgeModel,
    WorkItemModel,
)

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_NAME = "main"


def _value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


class UserService:
    """Service for managing message authors."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: Optional[str], email: Optional[str] = None) -> UserModel:
        """Create a new user."""
        user = UserModel(id=generate_ulid(), name=name, email=email)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get(self, user_id: str) -> Optional[UserModel]:
        """Get a user by ID."""
        return self.db.query(UserModel).filter(UserModel.id == user_id).first()


class ProjectService:
    """Service for managing projects."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, description: Optional[str] = None) -> ProjectModel:
        """Create a new project."""
        project = ProjectModel(id=generate_ulid(), name=name, description=description)
        self.db.add(project)
        self.db.commit()
        self.db.refresh(project)
        return project

    def get(self, project_id: str) -> Optional[ProjectModel]:
        """Get a non-deleted project by ID."""
        return (
            self.db.query(ProjectModel)
            .filter(ProjectModel.id == project_id, ProjectModel.deleted_at.is_(None))
            .first()
        )


class WorkItemService:
    """Service for managing work items and their edges."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        project_id: str,
        title: str,
        item_type: WorkItemType = WorkItemType.TASK,
        parent_id: Optional[str] = None,
        **kwargs,
    ) -> WorkItemModel:
        """Create a work item together with its default branch.

        When ``parent_id`` is given a PARENT_CHILD edge is created as well.
        """
        if ProjectService(self.db).get(project_id) is None:
            raise NotFoundError("Project", project_id)
        if parent_id and self.get(parent_id) is None:
            raise NotFoundError("WorkItem", parent_id)

        item = WorkItemModel(
            id=generate_ulid(),
            project_id=project_id,
            type=_value(item_type),
            title=title,
            description=kwargs.get("description"),
            acceptance_criteria=kwargs.get("acceptance_criteria"),
            status=_value(kwargs.get("status", "OPEN")),
            priority=_value(kwargs.get("priority", "MEDIUM")),
            position=kwargs.get("position", 0),
        )
        self.db.add(item)
        self.db.add(
            BranchModel(
                id=generate_ulid(),
                work_item=item,
                name=DEFAULT_BRANCH_NAME,
                is_default=True,
            )
        )
        if parent_id:
            self.db.add(
                WorkItemEdgeModel(
                    id=generate_ulid(),
                    parent_id=parent_id,
                    child_id=item.id,
                    edge_type=EdgeType.PARENT_CHILD.value,
                )
            )

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(item)
        return item

    def get(self, work_item_id: str) -> Optional[WorkItemModel]:
        """Get a non-deleted work item by ID."""
        return (
            self.db.query(WorkItemModel)
            .filter(
                WorkItemModel.id == work_item_id,
                WorkItemModel.deleted_at.is_(None),
            )
            .first()
        )

    def add_edge(
        self,
        parent_id: str,
        child_id: str,
        edge_type: EdgeType = EdgeType.PARENT_CHILD,
    ) -> WorkItemEdgeModel:
        """Link two work items."""
        for item_id in (parent_id, child_id):
            if self.get(item_id) is None:
                raise NotFoundError("WorkItem", item_id)

        edge = WorkItemEdgeModel(
            id=generate_ulid(),
            parent_id=parent_id,
            child_id=child_id,
            edge_type=_value(edge_type),
        )
        self.db.add(edge)
        self.db.commit()
        self.db.refresh(edge)
        return edge

    def remove_edge(self, edge_id: str) -> bool:
        """Soft-delete an edge. Returns False if it does not exist."""
        edge = (
            self.db.query(WorkItemEdgeModel)
            .filter(
                WorkItemEdgeModel.id == edge_id,
                WorkItemEdgeModel.deleted_at.is_(None),
            )
            .first()
        )
        if not edge:
            return False

        edge.deleted_at = utc_now()
        self.db.commit()
        return True


class BranchService:
    """Service for managing conversation branches."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, branch_id: str) -> Optional[BranchModel]:
        """Get a non-deleted branch by ID."""
        return (
            self.db.query(BranchModel)
            .filter(BranchModel.id == branch_id, BranchModel.deleted_at.is_(None))
            .first()
        )

    def get_default(self, work_item_id: str) -> Optional[BranchModel]:
        """Get the default branch of a work item."""
        return (
            self.db.query(BranchModel)
            .filter(
                BranchModel.work_item_id == work_item_id,
                BranchModel.is_default.is_(True),
                BranchModel.deleted_at.is_(None),
            )
            .first()
        )

    def list_for_work_item(self, work_item_id: str) -> List[BranchModel]:
        """List non-deleted branches of a work item, default first."""
        return (
            self.db.query(BranchModel)
            .filter(
                BranchModel.work_item_id == work_item_id,
                BranchModel.deleted_at.is_(None),
            )
            .order_by(BranchModel.is_default.desc(), BranchModel.created_at.asc())
            .all()
        )

    def create(self, work_item_id: str, name: str) -> BranchModel:
        """Create an additional (non-default) branch for a work item."""
        if WorkItemService(self.db).get(work_item_id) is None:
            raise NotFoundError("WorkItem", work_item_id)

        branch = BranchModel(
            id=generate_ulid(),
            work_item_id=work_item_id,
            name=name,
            is_default=False,
        )
        self.db.add(branch)
        self.db.commit()
        self.db.refresh(branch)
        return branch

    def fork(
        self,
        source_branch_id: str,
        name: str,
        fork_point_message_id: Optional[str] = None,
    ) -> BranchModel:
        """Fork a branch, optionally at a specific message of the source."""
        source = self.get(source_branch_id)
        if source is None:
            raise NotFoundError("Branch", source_branch_id)

        if fork_point_message_id is not None:
            fork_point = (
                self.db.query(MessageModel)
                .filter(
                    MessageModel.id == fork_point_message_id,
                    MessageModel.branch_id == source_branch_id,
                )
                .first()
            )
            if fork_point is None:
                raise NotFoundError("Message", fork_point_message_id)

        branch = BranchModel(
            id=generate_ulid(),
            work_item_id=source.work_item_id,
            name=name,
            is_default=False,
            forked_from_id=source.id,
            fork_point_message_id=fork_point_message_id,
        )
        self.db.add(branch)
        self.db.commit()
        self.db.refresh(branch)
        logger.info(f"Forked branch {source.id} into {branch.id}")
        return branch

    def soft_delete(self, branch_id: str) -> bool:
        """Soft-delete a branch. The default branch cannot be deleted."""
        branch = self.get(branch_id)
        if branch is None:
            return False
        if branch.is_default:
            raise ValueError("The default branch of a work item cannot be deleted")

        branch.deleted_at = utc_now()
        self.db.commit()
        return True


class MessageService:
    """Service for appending and editing branch messages."""

    def __init__(self, db: Session):
        self.db = db

    def _require_branch(self, branch_id: str) -> BranchModel:
        branch = BranchService(self.db).get(branch_id)
        if branch is None:
            raise NotFoundError("Branch", branch_id)
        return branch

    def append(
        self,
        branch_id: str,
        role: MessageRole,
        content: str,
        user_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageModel:
        """Append a message to the end of a branch."""
        self._require_branch(branch_id)

        message = MessageModel(
            id=generate_ulid(),
            branch_id=branch_id,
            role=_value(role),
            content=content,
            meta=meta,
            user_id=user_id,
            created_at=created_at or utc_now(),
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def append_many(
        self, branch_id: str, items: Iterable[Dict[str, Any]]
    ) -> List[MessageModel]:
        """Append several messages in one transaction, preserving their order.

        Each item is a dict with ``role``, ``content`` and optional
        ``user_id``/``meta``.
        """
        self._require_branch(branch_id)

        # Distinct, increasing timestamps keep the batch order stable
        base = utc_now()
        messages = [
            MessageModel(
                id=generate_ulid(),
                branch_id=branch_id,
                role=_value(item["role"]),
                content=item["content"],
                meta=item.get("meta"),
                user_id=item.get("user_id"),
                created_at=base + timedelta(microseconds=offset),
            )
            for offset, item in enumerate(items)
        ]
        self.db.add_all(messages)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return messages

    def get(self, message_id: str) -> Optional[MessageModel]:
        """Get a non-deleted message by ID."""
        return (
            self.db.query(MessageModel)
            .filter(MessageModel.id == message_id, MessageModel.deleted_at.is_(None))
            .first()
        )

    def update(
        self,
        message_id: str,
        content: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> MessageModel:
        """Rewrite a message's content (and optionally metadata) in place."""
        message = self.get(message_id)
        if message is None:
            raise NotFoundError("Message", message_id)

        message.content = content
        if meta is not None:
            message.meta = meta
        self.db.commit()
        self.db.refresh(message)
        return message

    def soft_delete(self, message_id: str) -> bool:
        """Soft-delete a message."""
        message = self.get(message_id)
        if message is None:
            return False

        message.deleted_at = utc_now()
        self.db.commit()
        return True

    def count_for_branch(self, branch_id: str) -> int:
        """Count non-deleted messages of a branch."""
        return (
            self.db.query(func.count(MessageModel.id))
            .filter(
                MessageModel.branch_id == branch_id,
                MessageModel.deleted_at.is_(None),
            )
            .scalar()
        )


class ArtifactService:
    """Service for managing versioned artifacts."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        work_item_id: str,
        artifact_type: ArtifactType,
        title: str,
        content: Dict[str, Any],
        branch_id: Optional[str] = None,
    ) -> ArtifactModel:
        """Create an artifact at version 1."""
        if WorkItemService(self.db).get(work_item_id) is None:
            raise NotFoundError("WorkItem", work_item_id)

        artifact = ArtifactModel(
            id=generate_ulid(),
            work_item_id=work_item_id,
            branch_id=branch_id,
            type=_value(artifact_type),
            title=title,
            content=content,
            version=1,
        )
        self.db.add(artifact)
        self.db.commit()
        self.db.refresh(artifact)
        return artifact

    def get(self, artifact_id: str) -> Optional[ArtifactModel]:
        """Get a non-deleted artifact by ID."""
        return (
            self.db.query(ArtifactModel)
            .filter(ArtifactModel.id == artifact_id, ArtifactModel.deleted_at.is_(None))
            .first()
        )

    def update(
        self,
        artifact_id: str,
        title: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> ArtifactModel:
        """Update an artifact and bump its version."""
        artifact = self.get(artifact_id)
        if artifact is None:
            raise NotFoundError("Artifact", artifact_id)

        if title is not None:
            artifact.title = title
        if content is not None:
            artifact.content = content
        artifact.version = artifact.version + 1
        artifact.updated_at = utc_now()
        self.db.commit()
        self.db.refresh(artifact)
        return artifact

    def soft_delete(self, artifact_id: str) -> bool:
        """Soft-delete an artifact."""
        artifact = self.get(artifact_id)
        if artifact is None:
            return False

        artifact.deleted_at = utc_now()
        self.db.commit()
        return True
