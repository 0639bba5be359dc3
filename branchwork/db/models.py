"""
SQLAlchemy models for projects, work items, branches, messages and artifacts.

Soft deletion is modelled with a nullable ``deleted_at`` column on every
table that users can remove; readers filter on ``deleted_at IS NULL``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from ..enums import (
    ArtifactType,
    EdgeType,
    MessageRole,
    WorkItemPriority,
    WorkItemStatus,
    WorkItemType,
)
from ..primitives import utc_now
from .base import Base


def _enum(enum_cls, name: str) -> Enum:
    return Enum(*[member.value for member in enum_cls], name=name)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite drops the offset on storage, so naive values read back are
    stamped as UTC; aware values are converted to UTC before binding.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


message_role_enum = _enum(MessageRole, "message_role")
artifact_type_enum = _enum(ArtifactType, "artifact_type")
work_item_type_enum = _enum(WorkItemType, "work_item_type")
work_item_status_enum = _enum(WorkItemStatus, "work_item_status")
work_item_priority_enum = _enum(WorkItemPriority, "work_item_priority")
edge_type_enum = _enum(EdgeType, "work_item_edge_type")


class UserModel(Base):
    """Message author. Only the display name is used by the core."""

    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=True)
    email = Column(String(320), nullable=True, unique=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": _iso(self.created_at),
        }


class ProjectModel(Base):
    """SQLAlchemy model for projects."""

    __tablename__ = "projects"

    id = Column(String(128), primary_key=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)

    # Rolling project summary (formatted text)
    summary = Column(Text, nullable=True)
    summary_updated_at = Column(UTCDateTime(), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at = Column(UTCDateTime(), nullable=True)

    work_items = relationship("WorkItemModel", back_populates="project")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "summary": self.summary,
            "summary_updated_at": _iso(self.summary_updated_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


class WorkItemModel(Base):
    """SQLAlchemy model for work items (epics, tasks, bugs, ...)."""

    __tablename__ = "work_items"

    id = Column(String(128), primary_key=True)
    project_id = Column(
        String(128), ForeignKey("projects.id"), nullable=False, index=True
    )

    type = Column(work_item_type_enum, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    acceptance_criteria = Column(Text, nullable=True)
    status = Column(work_item_status_enum, nullable=False, default="OPEN", index=True)
    priority = Column(work_item_priority_enum, nullable=False, default="MEDIUM")
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at = Column(UTCDateTime(), nullable=True)

    project = relationship("ProjectModel", back_populates="work_items")
    branches = relationship("BranchModel", back_populates="work_item")
    # Edges pointing at this item from its parents
    parent_edges = relationship(
        "WorkItemEdgeModel",
        foreign_keys="WorkItemEdgeModel.child_id",
        back_populates="child",
    )
    child_edges = relationship(
        "WorkItemEdgeModel",
        foreign_keys="WorkItemEdgeModel.parent_id",
        back_populates="parent",
    )

    __table_args__ = (Index("ix_work_items_project_updated", "project_id", "updated_at"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "acceptance_criteria": self.acceptance_criteria,
            "status": self.status,
            "priority": self.priority,
            "position": self.position,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


class WorkItemEdgeModel(Base):
    """Directed relation between two work items."""

    __tablename__ = "work_item_edges"

    id = Column(String(128), primary_key=True)
    parent_id = Column(
        String(128), ForeignKey("work_items.id"), nullable=False, index=True
    )
    child_id = Column(
        String(128), ForeignKey("work_items.id"), nullable=False, index=True
    )
    edge_type = Column(edge_type_enum, nullable=False, default="PARENT_CHILD")

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    deleted_at = Column(UTCDateTime(), nullable=True)

    parent = relationship(
        "WorkItemModel", foreign_keys=[parent_id], back_populates="child_edges"
    )
    child = relationship(
        "WorkItemModel", foreign_keys=[child_id], back_populates="parent_edges"
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "child_id": self.child_id,
            "edge_type": self.edge_type,
            "created_at": _iso(self.created_at),
            "deleted_at": _iso(self.deleted_at),
        }


class BranchModel(Base):
    """A conversation thread attached to a work item.

    ``summary_message_count`` is the message count at which ``summary`` was
    generated and doubles as the optimistic-lock token for summary commits.
    """

    __tablename__ = "branches"

    id = Column(String(128), primary_key=True)
    work_item_id = Column(
        String(128), ForeignKey("work_items.id"), nullable=False, index=True
    )
    name = Column(String(100), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)

    # Fork lineage (weak references)
    forked_from_id = Column(String(128), ForeignKey("branches.id"), nullable=True)
    fork_point_message_id = Column(String(128), nullable=True)

    # Rolling summary, written only through the conditional commit
    summary = Column(Text, nullable=True)
    summary_updated_at = Column(UTCDateTime(), nullable=True)
    summary_message_count = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at = Column(UTCDateTime(), nullable=True)

    work_item = relationship("WorkItemModel", back_populates="branches")
    messages = relationship("MessageModel", back_populates="branch")
    forked_from = relationship("BranchModel", remote_side=[id])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "name": self.name,
            "is_default": self.is_default,
            "forked_from_id": self.forked_from_id,
            "fork_point_message_id": self.fork_point_message_id,
            "summary": self.summary,
            "summary_updated_at": _iso(self.summary_updated_at),
            "summary_message_count": self.summary_message_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


class MessageModel(Base):
    """An append-only entry in a branch's conversation."""

    __tablename__ = "messages"

    id = Column(String(128), primary_key=True)
    branch_id = Column(String(128), ForeignKey("branches.id"), nullable=False)
    role = Column(message_role_enum, nullable=False)
    content = Column(Text, nullable=False)
    meta = Column(JSON, nullable=True)
    user_id = Column(String(128), ForeignKey("users.id"), nullable=True)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at = Column(UTCDateTime(), nullable=True)

    branch = relationship("BranchModel", back_populates="messages")
    user = relationship("UserModel")

    __table_args__ = (Index("ix_messages_branch_created", "branch_id", "created_at"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "role": self.role,
            "content": self.content,
            "meta": self.meta,
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


class ArtifactModel(Base):
    """A versioned structured document attached to a work item."""

    __tablename__ = "artifacts"

    id = Column(String(128), primary_key=True)
    work_item_id = Column(
        String(128), ForeignKey("work_items.id"), nullable=False, index=True
    )
    branch_id = Column(String(128), ForeignKey("branches.id"), nullable=True)
    type = Column(artifact_type_enum, nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at = Column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
    deleted_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (Index("ix_artifacts_work_item_type", "work_item_id", "type"),)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "branch_id": self.branch_id,
            "type": self.type,
            "title": self.title,
            "content": self.content,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }
