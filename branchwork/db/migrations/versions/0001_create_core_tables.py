"""Create core tables (users, projects, work items, branches, messages, artifacts)

Revision ID: 0001_create_core_tables
Revises:
Create Date: 2026-10-18

branches.summary_message_count starts at 0 ("never summarized") and is the
token the summary commit compares against.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_create_core_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True, with_deleted: bool = True):
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        )
    ]
    if with_updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            )
        )
    if with_deleted:
        columns.append(sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("name", sa.String(length=256), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True, unique=True),
        *_timestamps(with_updated=False, with_deleted=False),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("summary_updated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "work_items",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column(
            "project_id", sa.String(length=128), sa.ForeignKey("projects.id"), nullable=False
        ),
        sa.Column(
            "type",
            sa.Enum("EPIC", "SPRINT", "TASK", "BUG", "IDEA", name="work_item_type"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("acceptance_criteria", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "OPEN",
                "IN_PROGRESS",
                "IN_REVIEW",
                "BLOCKED",
                "DONE",
                "CANCELLED",
                name="work_item_status",
            ),
            nullable=False,
            server_default="OPEN",
        ),
        sa.Column(
            "priority",
            sa.Enum("LOW", "MEDIUM", "HIGH", "URGENT", name="work_item_priority"),
            nullable=False,
            server_default="MEDIUM",
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_work_items_project_id", "work_items", ["project_id"])
    op.create_index("ix_work_items_type", "work_items", ["type"])
    op.create_index("ix_work_items_status", "work_items", ["status"])
    op.create_index(
        "ix_work_items_project_updated", "work_items", ["project_id", "updated_at"]
    )

    op.create_table(
        "work_item_edges",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column(
            "parent_id", sa.String(length=128), sa.ForeignKey("work_items.id"), nullable=False
        ),
        sa.Column(
            "child_id", sa.String(length=128), sa.ForeignKey("work_items.id"), nullable=False
        ),
        sa.Column(
            "edge_type",
            sa.Enum(
                "PARENT_CHILD",
                "BLOCKS",
                "RELATES_TO",
                "DUPLICATES",
                name="work_item_edge_type",
            ),
            nullable=False,
            server_default="PARENT_CHILD",
        ),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_work_item_edges_parent_id", "work_item_edges", ["parent_id"])
    op.create_index("ix_work_item_edges_child_id", "work_item_edges", ["child_id"])

    op.create_table(
        "branches",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column(
            "work_item_id",
            sa.String(length=128),
            sa.ForeignKey("work_items.id"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "forked_from_id", sa.String(length=128), sa.ForeignKey("branches.id"), nullable=True
        ),
        sa.Column("fork_point_message_id", sa.String(length=128), nullable=True),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("summary_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "summary_message_count", sa.Integer, nullable=False, server_default="0"
        ),
        *_timestamps(),
    )
    op.create_index("ix_branches_work_item_id", "branches", ["work_item_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column(
            "branch_id", sa.String(length=128), sa.ForeignKey("branches.id"), nullable=False
        ),
        sa.Column(
            "role",
            sa.Enum("USER", "ASSISTANT", "TOOL", "SYSTEM", name="message_role"),
            nullable=False,
        ),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("meta", sa.JSON, nullable=True),
        sa.Column(
            "user_id", sa.String(length=128), sa.ForeignKey("users.id"), nullable=True
        ),
        *_timestamps(),
    )
    op.create_index("ix_messages_branch_created", "messages", ["branch_id", "created_at"])

    op.create_table(
        "artifacts",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column(
            "work_item_id",
            sa.String(length=128),
            sa.ForeignKey("work_items.id"),
            nullable=False,
        ),
        sa.Column(
            "branch_id", sa.String(length=128), sa.ForeignKey("branches.id"), nullable=True
        ),
        sa.Column(
            "type",
            sa.Enum(
                "PLAN", "SPEC", "CHECKLIST", "DECISION", "CODE", "NOTE", name="artifact_type"
            ),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.JSON, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_artifacts_work_item_id", "artifacts", ["work_item_id"])
    op.create_index("ix_artifacts_work_item_type", "artifacts", ["work_item_id", "type"])


def downgrade() -> None:
    op.drop_table("artifacts")
    op.drop_table("messages")
    op.drop_table("branches")
    op.drop_table("work_item_edges")
    op.drop_table("work_items")
    op.drop_table("projects")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "artifact_type",
            "message_role",
            "work_item_edge_type",
            "work_item_priority",
            "work_item_status",
            "work_item_type",
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
