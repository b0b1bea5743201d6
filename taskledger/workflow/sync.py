"""
Board synchronization with an external tracker.

Pushes a projected board to the tracker (create missing items, move
existing ones to their column) and records which external item mirrors
which task in a per-migration mapping file. Local state is the source of
truth: tracker failures are collected per task and never roll back
anything already written locally.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Protocol

from taskledger.lib.config import ENGINE_BOTH, ENGINE_GITHUB, SYNC_TASKS_CREATE, TrackerConfig
from taskledger.lib.models import MIGRATION_COMPLETED, Feature, format_timestamp
from taskledger.lib.state_files import write_json
from taskledger.lib.types import (
    STATUS_IN_PROGRESS,
    BoardColumnOption,
    BoardItem,
    BoardStatus,
    ExternalItem,
    SyncResult,
    TrackerError,
)
from taskledger.lib.validate import validate_file

logger = logging.getLogger(__name__)

SYNC_FILE = ".tracker-sync.json"


class Tracker(Protocol):
    """What the sync engine needs from an external tracker.

    Every method raises TrackerError on failure.
    """

    def available(self) -> bool: ...

    def create_item(self, title: str, body: str, labels: list[str] | None = None) -> ExternalItem: ...

    def add_item_to_board(self, board_id: str, item_url: str) -> str: ...

    def move_item(self, board_id: str, item_id: str, field_id: str, option_id: str) -> None: ...

    def list_board_items(self, owner: str, board_number: int) -> list[BoardItem]: ...

    def get_item(self, item_ref: str) -> dict: ...

    def comment_on_item(self, item_ref: str, text: str) -> None: ...

    def close_item(self, item_ref: str) -> None: ...

    def get_board_columns(self, board_id: str) -> list[BoardColumnOption]: ...


@dataclass
class TaskSyncEntry:
    external_issue_id: str
    external_item_id: str | None  # None until the item is on the board
    external_url: str

    def to_dict(self) -> dict:
        return {
            "externalIssueId": self.external_issue_id,
            "externalItemId": self.external_item_id,
            "externalUrl": self.external_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskSyncEntry":
        return cls(
            external_issue_id=str(data["externalIssueId"]),
            external_item_id=data.get("externalItemId"),
            external_url=data["externalUrl"],
        )


@dataclass
class SourceRef:
    """The external request a feature was started from."""
    external_issue_id: str
    external_url: str
    title: str = ""
    closed: bool = False

    def to_dict(self) -> dict:
        return {
            "externalIssueId": self.external_issue_id,
            "externalUrl": self.external_url,
            "title": self.title,
            "closed": self.closed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SourceRef":
        return cls(
            external_issue_id=str(data["externalIssueId"]),
            external_url=data["externalUrl"],
            title=data.get("title", ""),
            closed=bool(data.get("closed", False)),
        )


@dataclass
class SyncMapping:
    """Contents of a .tracker-sync.json file."""
    last_synced_at: str = ""
    tasks: dict[str, TaskSyncEntry] = field(default_factory=dict)
    source: SourceRef | None = None

    def to_dict(self) -> dict:
        data = {
            "lastSyncedAt": self.last_synced_at,
            "tasks": {tid: e.to_dict() for tid, e in sorted(self.tasks.items())},
        }
        if self.source is not None:
            data["source"] = self.source.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SyncMapping":
        source = data.get("source")
        return cls(
            last_synced_at=data.get("lastSyncedAt", ""),
            tasks={tid: TaskSyncEntry.from_dict(e) for tid, e in data.get("tasks", {}).items()},
            source=SourceRef.from_dict(source) if source else None,
        )


@dataclass
class PullResult:
    items: list[BoardItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def load_mapping(path: Path) -> SyncMapping:
    """Load a mapping file, or an empty mapping if there is none."""
    if not path.exists():
        return SyncMapping()
    return SyncMapping.from_dict(validate_file(path, "sync_mapping"))


def save_mapping(path: Path, mapping: SyncMapping) -> None:
    write_json(path, mapping.to_dict(), "sync_mapping")


class SyncEngine:
    """Mirrors boards to a tracker according to the tracker config."""

    def __init__(self, tracker: Tracker, config: TrackerConfig):
        self.tracker = tracker
        self.config = config

    @property
    def enabled(self) -> bool:
        if self.config.engine not in (ENGINE_GITHUB, ENGINE_BOTH):
            return False
        if self.config.project is None:
            return False
        return self.tracker.available()

    def column_options(self) -> tuple[str, dict[str, str]]:
        """Status field id and column name -> option id.

        Taken from ledger.yaml when configured, otherwise read from the
        board's Status field.
        """
        if self.config.column_options:
            return self.config.field_id, dict(self.config.column_options)
        try:
            columns = self.tracker.get_board_columns(self.config.project.id)
        except TrackerError as e:
            logger.warning(f"[SYNC] could not read board columns: {e}")
            return self.config.field_id, {}
        field_id = self.config.field_id or (columns[0].field_id if columns else "")
        return field_id, {c.name: c.option_id for c in columns}

    def sync_to_external(
        self,
        board: BoardStatus,
        migration_dir: Path,
        feature_label: str,
        only: Iterable[str] | None = None,
        create_missing: bool | None = None,
    ) -> SyncResult:
        """Push a board to the tracker.

        Walks columns in board order. An unmapped task gets an item created
        (when the sync_tasks policy or create_missing allows it), added to
        the board and moved to its column; a mapped task is moved. Once a
        task has a mapping entry it never gets a second item, even if the
        push that created it failed halfway. The mapping is only rewritten
        when at least one tracker call succeeded.
        """
        result = SyncResult()
        if not self.enabled:
            logger.debug("[SYNC] tracker sync disabled, skipping push")
            return result

        if create_missing is None:
            create_missing = self.config.sync_tasks == SYNC_TASKS_CREATE
        only = set(only) if only is not None else None

        mapping_path = migration_dir / SYNC_FILE
        mapping = load_mapping(mapping_path)
        board_id = self.config.project.id
        field_id, options = self.column_options()
        labels = [self.config.task_label] if self.config.task_label else None
        changed = False

        for col in board.columns:
            option_id = options.get(col.name)
            for task in col.tasks:
                if only is not None and task.id not in only:
                    continue

                entry = mapping.tasks.get(task.id)
                created = False
                if entry is None:
                    if not create_missing:
                        result.synced += 1
                        continue
                    try:
                        item = self.tracker.create_item(
                            f"{task.id} {task.description}",
                            f"Task from migration {board.migration_id}\n\nFeature: {feature_label}",
                            labels,
                        )
                    except TrackerError as e:
                        result.errors.append(f"{task.id}: failed to create item: {e}")
                        continue
                    entry = TaskSyncEntry(external_issue_id=item.id, external_item_id=None, external_url=item.url)
                    mapping.tasks[task.id] = entry
                    changed = True
                    created = True
                    result.created += 1
                    logger.info(f"[SYNC] created {item.url} for {task.id}")

                if entry.external_item_id is None:
                    try:
                        entry.external_item_id = self.tracker.add_item_to_board(board_id, entry.external_url)
                        changed = True
                    except TrackerError as e:
                        result.errors.append(f"{task.id}: failed to add to board: {e}")
                        continue

                if option_id:
                    try:
                        self.tracker.move_item(board_id, entry.external_item_id, field_id, option_id)
                        if not created:
                            result.moved += 1
                        changed = True
                    except TrackerError as e:
                        result.errors.append(f"{task.id}: failed to move to '{col.name}': {e}")
                else:
                    logger.debug(f"[SYNC] no option id for column '{col.name}', not moving {task.id}")

                if not created:
                    result.synced += 1

        if changed:
            mapping.last_synced_at = format_timestamp()
            save_mapping(mapping_path, mapping)

        logger.info(
            f"[SYNC] push: synced={result.synced} created={result.created} "
            f"moved={result.moved} errors={len(result.errors)}"
        )
        return result

    def sync_from_external(self) -> PullResult:
        """List the board's items. Nothing local is changed."""
        result = PullResult()
        if not self.enabled:
            return result
        if not self.config.owner:
            result.errors.append("tracker.owner is not configured")
            return result
        try:
            result.items = self.tracker.list_board_items(self.config.owner, self.config.project.number)
        except TrackerError as e:
            result.errors.append(f"failed to list board items: {e}")
        return result

    def remote_in_progress(self, pull: PullResult, mapping: SyncMapping) -> set[str]:
        """Task ids whose board item sits in the in-progress column."""
        column = self.config.column_name(STATUS_IN_PROGRESS).lower()
        by_item = {e.external_item_id: tid for tid, e in mapping.tasks.items() if e.external_item_id}
        by_url = {e.external_url: tid for tid, e in mapping.tasks.items()}

        ids = set()
        for item in pull.items:
            if item.status.lower() != column:
                continue
            task_id = by_item.get(item.item_id) or by_url.get(item.source_ref or "")
            if task_id:
                ids.add(task_id)
        return ids

    def link_source(self, feature_dir: Path, issue_id: str, url: str, title: str = "") -> SourceRef:
        """Record the request a feature was started from."""
        path = feature_dir / SYNC_FILE
        mapping = load_mapping(path)
        mapping.source = SourceRef(external_issue_id=str(issue_id), external_url=url, title=title)
        save_mapping(path, mapping)
        return mapping.source

    def announce_migration(self, feature_dir: Path, migration_id: str) -> str | None:
        """Comment on the source request that a migration started.

        Best effort: returns an error message instead of raising.
        """
        mapping = load_mapping(feature_dir / SYNC_FILE)
        if mapping.source is None or not self.enabled:
            return None
        try:
            self.tracker.comment_on_item(
                mapping.source.external_issue_id,
                f"Migration {migration_id} started from this issue",
            )
        except TrackerError as e:
            logger.warning(f"[SYNC] could not comment on #{mapping.source.external_issue_id}: {e}")
            return f"Failed to comment on #{mapping.source.external_issue_id}: {e}"
        return None

    def close_source_if_done(self, feature: Feature, feature_dir: Path) -> str | None:
        """Close the source request once every migration is completed.

        One-way: a closed source is never reopened. Returns an error
        message when the tracker call fails, else None.
        """
        path = feature_dir / SYNC_FILE
        mapping = load_mapping(path)
        source = mapping.source
        if source is None or source.closed or not self.enabled:
            return None
        if not feature.migrations:
            return None
        if any(m.status != MIGRATION_COMPLETED for m in feature.migrations.values()):
            return None

        try:
            self.tracker.comment_on_item(
                source.external_issue_id,
                f"All migrations for {feature.display_name} are completed.",
            )
            self.tracker.close_item(source.external_issue_id)
        except TrackerError as e:
            logger.warning(f"[SYNC] could not close #{source.external_issue_id}: {e}")
            return f"Failed to close #{source.external_issue_id}: {e}"

        source.closed = True
        save_mapping(path, mapping)
        logger.info(f"[SYNC] closed source #{source.external_issue_id} for {feature.display_name}")
        return None
