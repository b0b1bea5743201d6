"""
Shared data types for taskledger.

This module contains dataclasses used across the parser, board projector
and sync engine to avoid circular imports.
"""

from dataclasses import dataclass, field

# Task / board statuses
STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in-progress"
STATUS_COMPLETED = "completed"
STATUS_BLOCKED = "blocked"

BOARD_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_BLOCKED)


class TrackerError(Exception):
    """An external tracker call failed (unreachable, unauthenticated, timed out)."""
    pass


@dataclass
class Task:
    """A single task line from a migration's task log."""
    id: str                   # T001-002
    migration_id: str         # 001
    sequence: int             # 2
    description: str          # Display form, code spans removed
    raw_description: str      # Exactly as written in the log
    status: str               # pending, blocked, completed
    story: str | None = None  # [US1] grouping label
    line_number: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status,
            "story": self.story,
        }


@dataclass
class BoardColumn:
    """One column of a projected board."""
    name: str
    status: str  # Logical status this column shows
    tasks: list[Task] = field(default_factory=list)
    wip_limit: int | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "wipLimit": self.wip_limit,
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class BoardStatus:
    """Column view of one migration. Recomputed on every request, never stored."""
    feature_name: str
    migration_id: str
    columns: list[BoardColumn]

    def column_for(self, status: str) -> BoardColumn | None:
        for col in self.columns:
            if col.status == status:
                return col
        return None

    def all_tasks(self) -> list[Task]:
        return [t for col in self.columns for t in col.tasks]

    def to_dict(self) -> dict:
        return {
            "featureName": self.feature_name,
            "migrationId": self.migration_id,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass
class WipViolation:
    column: str
    current: int
    limit: int


@dataclass
class FlowSuggestion:
    task_id: str
    description: str
    reason: str
    score: float


@dataclass
class SyncResult:
    """Aggregate outcome of a push. Errors are human-readable, one per failed task."""
    synced: int = 0
    created: int = 0
    moved: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ExternalItem:
    """An item created on the external tracker."""
    id: str   # Issue number
    url: str


@dataclass
class BoardItem:
    """An item listed from the external board."""
    item_id: str
    title: str
    status: str
    source_ref: str | None = None  # Issue URL, None for drafts


@dataclass
class BoardColumnOption:
    """One option of the board's single-select Status field."""
    name: str
    option_id: str
    field_id: str = ""
