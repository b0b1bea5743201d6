"""Migration state manager.

Owns a feature's _meta.json: the migration map, task counts and commit
history. The loaded Feature is an explicit object passed into every
operation; the manager keeps no hidden copy of it between calls.

Every mutating operation ends with a full rewrite of _meta.json.
Callers that also read first (CLI commands) hold feature_lock() around
the whole cycle.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from taskledger.lib.models import (
    MIGRATION_COMPLETED,
    CommitRecord,
    Expectation,
    Feature,
    Migration,
    format_timestamp,
    session_timestamp,
)
from taskledger.lib.state_files import write_json
from taskledger.lib.taskparse import (
    MarkdownTaskLedger,
    ParseResult,
    TaskInput,
    parse_task_id,
)
from taskledger.lib.types import STATUS_COMPLETED, Task
from taskledger.lib.validate import validate_file
from taskledger.workflow.fsm import MigrationFSM

logger = logging.getLogger(__name__)

META_FILE = "_meta.json"
MIGRATION_FOLDER_RE = re.compile(r'^(\d{3})_(\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})$')


class LedgerError(Exception):
    """Base class for precondition failures. Raised before any write."""
    pass


class NotOnFeatureContext(LedgerError):
    def __init__(self, detail: str = "No feature loaded"):
        super().__init__(detail)


class FeatureMetaMissing(LedgerError):
    def __init__(self, feature_dir: Path):
        self.feature_dir = feature_dir
        super().__init__(f"{META_FILE} not found in {feature_dir}")


class MigrationNotFound(LedgerError):
    def __init__(self, migration_id: str):
        self.migration_id = migration_id
        super().__init__(f"Migration {migration_id} not found")


class MalformedTaskId(LedgerError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Invalid task ID format '{task_id}'. Expected: T001-001")


class TaskNotFound(LedgerError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


@dataclass
class AppendResult:
    migration: Migration
    tasks: list[Task]
    warnings: list[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    task_id: str
    migration: Migration
    already_completed: bool = False
    migration_completed: bool = False  # This call moved the migration to completed


@dataclass
class FeatureSummary:
    feature_id: str
    feature_name: str
    current_migration: str | None
    total_migrations: int
    completed_migrations: int
    pending_tasks: int
    completed_tasks: int

    def to_dict(self) -> dict:
        return {
            "featureId": self.feature_id,
            "featureName": self.feature_name,
            "currentMigration": self.current_migration,
            "totalMigrations": self.total_migrations,
            "completedMigrations": self.completed_migrations,
            "pendingTasks": self.pending_tasks,
            "completedTasks": self.completed_tasks,
        }


def next_migration_id(feature: Feature) -> str:
    """max existing id + 1, zero padded. Ids are never reused."""
    ids = [int(mid) for mid in feature.migrations]
    return f"{max(ids, default=0) + 1:03d}"


def parse_migration_folder(folder: str) -> tuple[str, str] | None:
    """Split 001_2026-01-10_14-30-45 into ("001", "2026-01-10_14-30-45")."""
    match = MIGRATION_FOLDER_RE.match(folder)
    if not match:
        return None
    return match.group(1), match.group(2)


class MigrationManager:
    """Feature/migration lifecycle for one feature directory."""

    def __init__(self, feature_dir: Path, ledger: MarkdownTaskLedger | None = None):
        self.feature_dir = feature_dir
        self.meta_path = feature_dir / META_FILE
        self.ledger = ledger or MarkdownTaskLedger()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def init_feature(
        self,
        feature_id: str,
        feature_name: str,
        branch: str,
        expectation: Expectation | None = None,
    ) -> Feature:
        """Create and persist a feature with no migrations."""
        feature = Feature(
            feature_id=feature_id,
            feature_name=feature_name,
            branch=branch,
            created_at=format_timestamp(),
            expectation=expectation,
        )
        self.save(feature)
        logger.info(f"[LEDGER] initialized feature {feature.display_name}")
        return feature

    def load(self) -> Feature | None:
        """Load _meta.json, or None if the feature has no metadata yet."""
        if not self.meta_path.exists():
            return None
        return Feature.from_dict(validate_file(self.meta_path, "feature"))

    def require(self) -> Feature:
        feature = self.load()
        if feature is None:
            raise FeatureMetaMissing(self.feature_dir)
        return feature

    def save(self, feature: Feature) -> None:
        """Rewrite _meta.json in full."""
        write_json(self.meta_path, feature.to_dict(), "feature")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _get(self, feature: Feature | None, migration_id: str) -> Migration:
        if feature is None:
            raise NotOnFeatureContext()
        migration = feature.migrations.get(migration_id)
        if migration is None:
            raise MigrationNotFound(migration_id)
        return migration

    def create_migration(self, feature: Feature | None, expectation: Expectation | None = None) -> Migration:
        """Allocate the next migration, create its folder and task log.

        The new migration starts pending and becomes the feature's current one.
        """
        if feature is None:
            raise NotOnFeatureContext()

        migration_id = next_migration_id(feature)
        timestamp = session_timestamp()
        migration = Migration(
            id=migration_id,
            timestamp=timestamp,
            folder=f"{migration_id}_{timestamp}",
            parent=feature.current_migration,
            created_at=format_timestamp(),
            expectation=expectation,
        )

        self.ledger.create(self.feature_dir / migration.folder, migration_id, timestamp, migration.parent)

        feature.migrations[migration_id] = migration
        feature.current_migration = migration_id
        self.save(feature)

        logger.info(f"[LEDGER] {feature.display_name}: created migration {migration_id}")
        return migration

    def append_tasks(self, feature: Feature | None, migration_id: str, inputs: list[TaskInput]) -> AppendResult:
        """Append tasks to a migration's log and bump its total.

        The first append moves a pending migration to in-progress. Appending
        to a completed migration is allowed by the log format; it is flagged
        as a warning and the migration stays completed.
        """
        migration = self._get(feature, migration_id)
        migration_dir = self.feature_dir / migration.folder
        if not self.ledger.exists(migration_dir):
            raise LedgerError(f"Task log not found for migration {migration_id}")

        result = AppendResult(migration=migration, tasks=[])
        if not inputs:
            return result

        if migration.status == MIGRATION_COMPLETED:
            warning = (
                f"Migration {migration_id} is already completed; "
                f"{len(inputs)} task(s) appended without reopening it"
            )
            logger.warning(f"[LEDGER] {warning}")
            result.warnings.append(warning)

        result.tasks = self.ledger.append(migration_dir, migration_id, inputs)
        migration.tasks_total += len(result.tasks)
        MigrationFSM(migration).ensure_started()
        self.save(feature)
        return result

    def update_task_counts(self, feature: Feature | None, migration_id: str, total: int, completed: int) -> Migration:
        """Set a migration's counts and recompute its status.

        Counts are clamped so 0 <= completed <= total. Reaching
        completed >= total > 0 completes the migration; nothing ever
        un-completes it.
        """
        migration = self._get(feature, migration_id)

        total = max(total, 0)
        clamped = min(max(completed, 0), total)
        if clamped != completed:
            logger.warning(
                f"[LEDGER] migration {migration_id}: completed={completed} outside 0..{total}, "
                f"clamping to {clamped}"
            )

        migration.tasks_total = total
        migration.tasks_completed = clamped

        if total > 0 and clamped >= total:
            MigrationFSM(migration).ensure_completed()

        self.save(feature)
        return migration

    def recount(self, feature: Feature, migration_id: str) -> Migration:
        """Re-derive counts from the task log."""
        migration = self._get(feature, migration_id)
        parsed = self.read_tasks(migration)
        if parsed.total and migration.status != MIGRATION_COMPLETED:
            MigrationFSM(migration).ensure_started()
        return self.update_task_counts(feature, migration_id, parsed.total, parsed.completed)

    def complete_task(self, feature: Feature | None, task_id: str) -> CompletionResult:
        """Check a task off and update the owning migration."""
        if feature is None:
            raise NotOnFeatureContext()
        parsed_id = parse_task_id(task_id)
        if parsed_id is None:
            raise MalformedTaskId(task_id)

        migration = self._get(feature, parsed_id[0])
        task = self.read_tasks(migration).get(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        if task.status == STATUS_COMPLETED:
            return CompletionResult(task_id=task_id, migration=migration, already_completed=True)

        was_completed = migration.status == MIGRATION_COMPLETED
        self.ledger.set_status(self.feature_dir / migration.folder, task_id, STATUS_COMPLETED)
        self.recount(feature, migration.id)

        return CompletionResult(
            task_id=task_id,
            migration=migration,
            migration_completed=not was_completed and migration.status == MIGRATION_COMPLETED,
        )

    def set_task_status(self, feature: Feature | None, task_id: str, status: str) -> Migration:
        """Rewrite a task's marker for a board move and recount."""
        if feature is None:
            raise NotOnFeatureContext()
        parsed_id = parse_task_id(task_id)
        if parsed_id is None:
            raise MalformedTaskId(task_id)

        migration = self._get(feature, parsed_id[0])
        if not self.ledger.set_status(self.feature_dir / migration.folder, task_id, status):
            raise TaskNotFound(task_id)
        return self.recount(feature, migration.id)

    def record_commit(self, feature: Feature | None, migration_id: str, commit_hash: str, message: str) -> CommitRecord:
        """Append to the feature's commit history. No status change."""
        self._get(feature, migration_id)
        record = CommitRecord(
            migration=migration_id,
            hash=commit_hash,
            message=message,
            timestamp=format_timestamp(),
        )
        feature.commits.append(record)
        self.save(feature)
        return record

    # ------------------------------------------------------------------
    # Queries (never mutate)
    # ------------------------------------------------------------------

    def get_current(self, feature: Feature) -> Migration | None:
        if not feature.current_migration:
            return None
        return feature.migrations.get(feature.current_migration)

    def get_by_id(self, feature: Feature, migration_id: str) -> Migration | None:
        return feature.migrations.get(migration_id)

    def list_all(self, feature: Feature) -> list[Migration]:
        return sorted(feature.migrations.values(), key=lambda m: m.id)

    def list_pending(self, feature: Feature) -> list[Migration]:
        return [m for m in self.list_all(feature) if m.status != MIGRATION_COMPLETED]

    def list_up_to(self, feature: Feature, migration_id: str) -> list[Migration]:
        return [m for m in self.list_all(feature) if m.id <= migration_id]

    def migration_dir(self, migration: Migration) -> Path:
        return self.feature_dir / migration.folder

    def read_tasks(self, migration: Migration) -> ParseResult:
        """Parse a migration's task log. Missing log -> empty result."""
        migration_dir = self.migration_dir(migration)
        if not self.ledger.exists(migration_dir):
            return ParseResult()
        return self.ledger.parse(migration_dir)

    def get_status(self, feature: Feature) -> FeatureSummary:
        migrations = list(feature.migrations.values())
        return FeatureSummary(
            feature_id=feature.feature_id,
            feature_name=feature.feature_name,
            current_migration=feature.current_migration,
            total_migrations=len(migrations),
            completed_migrations=sum(1 for m in migrations if m.status == MIGRATION_COMPLETED),
            pending_tasks=sum(m.tasks_pending for m in migrations),
            completed_tasks=sum(min(m.tasks_completed, m.tasks_total) for m in migrations),
        )

    def scan_migration_folders(self) -> list[str]:
        """Migration folders present on disk, sorted."""
        if not self.feature_dir.exists():
            return []
        return sorted(
            d.name for d in self.feature_dir.iterdir()
            if d.is_dir() and parse_migration_folder(d.name)
        )
