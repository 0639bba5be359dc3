"""
Database package for Branchwork.
"""

from .base import Base, get_db, get_engine, get_session_local, init_database
from .models import (
    ArtifactModel,
    BranchModel,
    MessageModel,
    ProjectModel,
    UserModel,
    WorkItemEdgeModel,
    WorkItemModel,
)

__all__ = [
    "Base",
    "get_db",
    "get_engine",
    "get_session_local",
    "init_database",
    "ArtifactModel",
    "BranchModel",
    "MessageModel",
    "ProjectModel",
    "UserModel",
    "WorkItemEdgeModel",
    "WorkItemModel",
]
