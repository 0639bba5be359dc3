"""
Enumerations shared by the store, the context pack and the AI schemas.

Values are the upper-case strings persisted in the database.
"""

from enum import Enum


class MessageRole(str, Enum):
    """Author role of a conversation message."""

    USER = "USER"
    ASSISTANT = "ASSISTANT"
    TOOL = "TOOL"
    SYSTEM = "SYSTEM"


class ArtifactType(str, Enum):
    """Kind of versioned document attached to a work item."""

    PLAN = "PLAN"
    SPEC = "SPEC"
    CHECKLIST = "CHECKLIST"
    DECISION = "DECISION"
    CODE = "CODE"
    NOTE = "NOTE"


class WorkItemType(str, Enum):
    EPIC = "EPIC"
    SPRINT = "SPRINT"
    TASK = "TASK"
    BUG = "BUG"
    IDEA = "IDEA"


class WorkItemStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    BLOCKED = "BLOCKED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class WorkItemPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class EdgeType(str, Enum):
    """Relation between two work items (parent -> child direction)."""

    PARENT_CHILD = "PARENT_CHILD"
    BLOCKS = "BLOCKS"
    RELATES_TO = "RELATES_TO"
    DUPLICATES = "DUPLICATES"
