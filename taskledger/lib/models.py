"""
Persisted data models for features and migrations.

Field names are snake_case in Python and camelCase in _meta.json;
to_dict()/from_dict() convert between the two.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

MIGRATION_PENDING = "pending"
MIGRATION_IN_PROGRESS = "in-progress"
MIGRATION_COMPLETED = "completed"


def format_timestamp(when: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp for metadata fields."""
    when = when or datetime.now(timezone.utc)
    return when.isoformat()


def session_timestamp(when: datetime | None = None) -> str:
    """Local timestamp used in migration folder names: 2026-01-10_14-30-45."""
    when = when or datetime.now()
    return when.strftime("%Y-%m-%d_%H-%M-%S")


@dataclass
class PlainSummary:
    """Expectation given as free text."""
    text: str

    @property
    def summary(self) -> str:
        return self.text


@dataclass
class StructuredExpectation:
    """Expectation with explicit must / must-not lists."""
    summary: str
    must: list[str] = field(default_factory=list)
    must_not: list[str] = field(default_factory=list)


Expectation = Union[PlainSummary, StructuredExpectation]


def expectation_from_json(value) -> Optional[Expectation]:
    """Resolve the stored expectation (string or object) into a tagged variant."""
    if value is None:
        return None
    if isinstance(value, str):
        return PlainSummary(value) if value.strip() else None
    if isinstance(value, dict):
        return StructuredExpectation(
            summary=value.get("summary", ""),
            must=list(value.get("must", [])),
            must_not=list(value.get("mustNot", [])),
        )
    raise ValueError(f"Unsupported expectation value: {value!r}")


def expectation_to_json(expectation: Optional[Expectation]):
    if expectation is None:
        return None
    if isinstance(expectation, PlainSummary):
        return expectation.text
    return {
        "summary": expectation.summary,
        "must": list(expectation.must),
        "mustNot": list(expectation.must_not),
    }


@dataclass
class CommitRecord:
    migration: str
    hash: str
    message: str
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "migration": self.migration,
            "hash": self.hash,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CommitRecord":
        return cls(
            migration=data["migration"],
            hash=data["hash"],
            message=data.get("message", ""),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class Migration:
    """One bounded increment of work within a feature."""
    id: str                            # 001
    timestamp: str                     # 2026-01-10_14-30-45
    folder: str                        # 001_2026-01-10_14-30-45
    status: str = MIGRATION_PENDING
    parent: str | None = None
    tasks_total: int = 0
    tasks_completed: int = 0
    created_at: str = ""
    completed_at: str | None = None
    expectation: Optional[Expectation] = None

    @property
    def tasks_pending(self) -> int:
        return max(self.tasks_total - self.tasks_completed, 0)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "folder": self.folder,
            "status": self.status,
            "tasksTotal": self.tasks_total,
            "tasksCompleted": self.tasks_completed,
            "createdAt": self.created_at,
        }
        if self.parent is not None:
            data["parent"] = self.parent
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        if self.expectation is not None:
            data["expectation"] = expectation_to_json(self.expectation)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Migration":
        return cls(
            id=data["id"],
            timestamp=data.get("timestamp", ""),
            folder=data["folder"],
            status=data.get("status", MIGRATION_PENDING),
            parent=data.get("parent"),
            tasks_total=int(data.get("tasksTotal", 0)),
            tasks_completed=int(data.get("tasksCompleted", 0)),
            created_at=data.get("createdAt", ""),
            completed_at=data.get("completedAt"),
            expectation=expectation_from_json(data.get("expectation")),
        )


@dataclass
class Feature:
    """Top-level unit of work. Owns the migration map and commit history."""
    feature_id: str
    feature_name: str
    branch: str
    created_at: str
    current_migration: str | None = None
    migrations: dict[str, Migration] = field(default_factory=dict)
    commits: list[CommitRecord] = field(default_factory=list)
    expectation: Optional[Expectation] = None

    @property
    def display_name(self) -> str:
        return f"{self.feature_id}-{self.feature_name}"

    def effective_expectation(self, migration_id: str | None = None) -> Optional[Expectation]:
        """Migration-level override if set, else the feature expectation."""
        if migration_id and migration_id in self.migrations:
            override = self.migrations[migration_id].expectation
            if override is not None:
                return override
        return self.expectation

    def to_dict(self) -> dict:
        data = {
            "featureId": self.feature_id,
            "featureName": self.feature_name,
            "branch": self.branch,
            "createdAt": self.created_at,
            "currentMigration": self.current_migration,
            "migrations": {mid: m.to_dict() for mid, m in self.migrations.items()},
            "commits": [c.to_dict() for c in self.commits],
        }
        if self.expectation is not None:
            data["expectation"] = expectation_to_json(self.expectation)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Feature":
        return cls(
            feature_id=data["featureId"],
            feature_name=data["featureName"],
            branch=data["branch"],
            created_at=data.get("createdAt", ""),
            current_migration=data.get("currentMigration"),
            migrations={
                mid: Migration.from_dict(m) for mid, m in data.get("migrations", {}).items()
            },
            commits=[CommitRecord.from_dict(c) for c in data.get("commits", [])],
            expectation=expectation_from_json(data.get("expectation")),
        )
