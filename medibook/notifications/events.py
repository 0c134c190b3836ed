"""Change events published after a mutation commits."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    """Kinds of committed mutations."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    """One committed row mutation.

    ``record`` is the JSON form of the row after the change; ``old_record``
    the row before it (updates and deletes only). Subscribers treat the
    event as a hint and re-read when they need authoritative state.
    """

    table: str
    event_type: ChangeType
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: Optional[dict[str, Any]] = None
    committed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor_id: Optional[str] = None

    def matches(self, filters: dict[str, Any]) -> bool:
        """True when every filter column equals the row's value (string-compared)."""
        row = self.record or self.old_record or {}
        for column, expected in filters.items():
            if column not in row or str(row[column]) != str(expected):
                return False
        return True
