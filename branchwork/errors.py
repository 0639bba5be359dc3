"""Error types raised by the Branchwork service layer."""

from typing import Any, Dict


class NotFoundError(Exception):
    """Raised when a referenced entity does not exist (or is soft-deleted)."""

    def __init__(self, entity_kind: str, entity_id: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.message = f"{entity_kind} not found: {entity_id}"
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "NOT_FOUND",
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "message": self.message,
        }
