"""Tests for taskledger.workflow.migrations module."""

import json
import logging

import pytest

from taskledger.lib.models import PlainSummary
from taskledger.lib.taskparse import TaskInput
from taskledger.lib.validate import ValidationError
from taskledger.workflow.migrations import (
    META_FILE,
    FeatureMetaMissing,
    MalformedTaskId,
    MigrationManager,
    MigrationNotFound,
    NotOnFeatureContext,
    TaskNotFound,
    next_migration_id,
    parse_migration_folder,
)


def tasks(*descriptions):
    return [TaskInput(d) for d in descriptions]


class TestLoadSave:
    """Test feature metadata persistence."""

    def test_load_without_meta_returns_none(self, manager):
        assert manager.load() is None

    def test_require_without_meta_raises(self, manager):
        with pytest.raises(FeatureMetaMissing):
            manager.require()

    def test_init_feature_persists(self, manager, feature):
        data = json.loads((manager.feature_dir / META_FILE).read_text())
        assert data["featureId"] == "001"
        assert data["featureName"] == "login"
        assert data["migrations"] == {}
        assert manager.load() == feature

    def test_invalid_meta_rejected_on_load(self, manager):
        (manager.feature_dir / META_FILE).write_text(json.dumps({"featureId": "001"}))
        with pytest.raises(ValidationError):
            manager.load()


class TestCreateMigration:
    """Test create_migration."""

    def test_first_migration_is_001(self, manager, feature):
        migration = manager.create_migration(feature)
        assert migration.id == "001"
        assert migration.parent is None
        assert migration.status == "pending"
        assert migration.tasks_total == 0
        assert feature.current_migration == "001"
        assert (manager.migration_dir(migration) / "tasks.md").exists()
        assert parse_migration_folder(migration.folder)[0] == "001"

    def test_next_migration_links_parent(self, manager, feature):
        manager.create_migration(feature)
        second = manager.create_migration(feature)
        assert second.id == "002"
        assert second.parent == "001"
        assert manager.load().current_migration == "002"

    def test_ids_are_max_plus_one(self, manager, feature):
        manager.create_migration(feature)
        manager.create_migration(feature)
        del feature.migrations["001"]
        assert next_migration_id(feature) == "003"

    def test_no_feature_raises(self, manager):
        with pytest.raises(NotOnFeatureContext):
            manager.create_migration(None)

    def test_migration_expectation_override(self, manager, feature):
        migration = manager.create_migration(feature, PlainSummary("Only the API"))
        reloaded = manager.load()
        assert reloaded.effective_expectation(migration.id).summary == "Only the API"


class TestAppendTasks:
    """Test append_tasks."""

    def test_first_append_starts_migration(self, manager, feature):
        migration = manager.create_migration(feature)
        result = manager.append_tasks(feature, migration.id, tasks("A", "B"))

        assert [t.id for t in result.tasks] == ["T001-001", "T001-002"]
        assert migration.status == "in-progress"
        assert migration.tasks_total == 2
        assert result.warnings == []

        stored = manager.load().migrations["001"]
        assert stored.status == "in-progress"
        assert stored.tasks_total == 2

    def test_unknown_migration(self, manager, feature):
        with pytest.raises(MigrationNotFound):
            manager.append_tasks(feature, "009", tasks("A"))

    def test_empty_input_changes_nothing(self, manager, feature):
        migration = manager.create_migration(feature)
        result = manager.append_tasks(feature, migration.id, [])
        assert result.tasks == []
        assert migration.status == "pending"

    def test_append_to_completed_warns_and_stays_completed(self, manager, feature, caplog):
        migration = manager.create_migration(feature)
        manager.append_tasks(feature, migration.id, tasks("A"))
        manager.complete_task(feature, "T001-001")
        assert migration.status == "completed"

        caplog.set_level(logging.WARNING)
        result = manager.append_tasks(feature, migration.id, tasks("Late"))

        assert result.tasks[0].id == "T001-002"
        assert result.warnings
        assert "already completed" in caplog.text
        assert migration.status == "completed"
        assert migration.tasks_total == 2


class TestUpdateTaskCounts:
    """Test update_task_counts invariants."""

    def test_completes_when_all_done(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.update_task_counts(feature, migration.id, 3, 3)
        assert migration.status == "completed"
        assert migration.completed_at

    def test_zero_total_never_completes(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.update_task_counts(feature, migration.id, 0, 0)
        assert migration.status == "pending"

    def test_clamps_completed_above_total(self, manager, feature, caplog):
        migration = manager.create_migration(feature)
        caplog.set_level(logging.WARNING)
        manager.update_task_counts(feature, migration.id, 2, 5)
        assert migration.tasks_completed == 2
        assert "clamping" in caplog.text

    def test_clamps_negative(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.update_task_counts(feature, migration.id, 2, -1)
        assert migration.tasks_completed == 0

    def test_never_uncompletes(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.update_task_counts(feature, migration.id, 2, 2)
        completed_at = migration.completed_at
        manager.update_task_counts(feature, migration.id, 3, 1)
        assert migration.status == "completed"
        assert migration.completed_at == completed_at
        assert migration.tasks_completed <= migration.tasks_total

    def test_unknown_migration(self, manager, feature):
        with pytest.raises(MigrationNotFound):
            manager.update_task_counts(feature, "042", 1, 1)


class TestCompleteTask:
    """Test complete_task."""

    def test_lifecycle_scenario(self, manager, feature):
        """pending -> in-progress -> completed, then a no-op second completion."""
        migration = manager.create_migration(feature)
        assert migration.status == "pending"

        manager.append_tasks(feature, migration.id, tasks("A", "B"))
        assert migration.status == "in-progress"
        assert migration.tasks_total == 2

        first = manager.complete_task(feature, "T001-001")
        assert not first.already_completed
        assert not first.migration_completed
        assert migration.tasks_completed == 1

        second = manager.complete_task(feature, "T001-002")
        assert second.migration_completed
        assert migration.status == "completed"
        assert migration.completed_at

        again = manager.complete_task(feature, "T001-002")
        assert again.already_completed
        assert migration.tasks_completed == 2

    def test_already_completed_writes_nothing(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.append_tasks(feature, migration.id, tasks("A", "B"))
        manager.complete_task(feature, "T001-001")

        meta = manager.meta_path.read_text()
        log = (manager.migration_dir(migration) / "tasks.md").read_text()
        manager.complete_task(feature, "T001-001")
        assert manager.meta_path.read_text() == meta
        assert (manager.migration_dir(migration) / "tasks.md").read_text() == log

    def test_malformed_id(self, manager, feature):
        with pytest.raises(MalformedTaskId):
            manager.complete_task(feature, "T1-1")

    def test_unknown_migration(self, manager, feature):
        manager.create_migration(feature)
        with pytest.raises(MigrationNotFound):
            manager.complete_task(feature, "T005-001")

    def test_unknown_task(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.append_tasks(feature, migration.id, tasks("A"))
        with pytest.raises(TaskNotFound):
            manager.complete_task(feature, "T001-002")

    def test_counts_follow_log(self, manager, feature):
        """Counts are re-derived from the log, including hand-checked tasks."""
        migration = manager.create_migration(feature)
        manager.append_tasks(feature, migration.id, tasks("A", "B", "C"))
        path = manager.migration_dir(migration) / "tasks.md"
        path.write_text(path.read_text().replace("- [ ] T001-002", "- [x] T001-002"))

        manager.complete_task(feature, "T001-001")
        assert migration.tasks_completed == 2
        assert migration.tasks_total == 3

    def test_markup_in_description_does_not_hide_tasks(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.append_tasks(feature, migration.id, tasks("Write docs", "Strip <!-- markers", "Ship"))

        result = manager.complete_task(feature, "T001-001")
        assert not result.migration_completed
        assert migration.status == "in-progress"
        assert (migration.tasks_completed, migration.tasks_total) == (1, 3)
        assert not manager.complete_task(feature, "T001-003").already_completed


class TestSetTaskStatus:

    def test_block_and_unblock(self, manager, feature):
        migration = manager.create_migration(feature)
        manager.append_tasks(feature, migration.id, tasks("A"))

        manager.set_task_status(feature, "T001-001", "blocked")
        assert manager.read_tasks(migration).get("T001-001").status == "blocked"

        manager.set_task_status(feature, "T001-001", "pending")
        assert manager.read_tasks(migration).get("T001-001").status == "pending"

    def test_unknown_task(self, manager, feature):
        manager.create_migration(feature)
        with pytest.raises(TaskNotFound):
            manager.set_task_status(feature, "T001-001", "completed")


class TestRecordCommit:

    def test_appends_commit_without_status_change(self, manager, feature):
        migration = manager.create_migration(feature)
        record = manager.record_commit(feature, migration.id, "abc1234", "feat: login")
        assert record.hash == "abc1234"
        assert migration.status == "pending"
        assert manager.load().commits[0].message == "feat: login"

    def test_unknown_migration(self, manager, feature):
        with pytest.raises(MigrationNotFound):
            manager.record_commit(feature, "001", "abc", "msg")


class TestQueries:
    """Queries never mutate."""

    def test_listing(self, manager, feature):
        m1 = manager.create_migration(feature)
        manager.append_tasks(feature, m1.id, tasks("A"))
        manager.complete_task(feature, "T001-001")
        manager.create_migration(feature)
        manager.create_migration(feature)

        assert [m.id for m in manager.list_all(feature)] == ["001", "002", "003"]
        assert [m.id for m in manager.list_pending(feature)] == ["002", "003"]
        assert [m.id for m in manager.list_up_to(feature, "002")] == ["001", "002"]
        assert manager.get_current(feature).id == "003"
        assert manager.get_by_id(feature, "042") is None
        assert len(manager.scan_migration_folders()) == 3

    def test_get_status_aggregates(self, manager, feature):
        m1 = manager.create_migration(feature)
        manager.append_tasks(feature, m1.id, tasks("A", "B"))
        manager.complete_task(feature, "T001-001")

        summary = manager.get_status(feature)
        assert summary.total_migrations == 1
        assert summary.completed_migrations == 0
        assert summary.completed_tasks == 1
        assert summary.pending_tasks == 1
        assert summary.to_dict()["currentMigration"] == "001"

    def test_get_current_without_migrations(self, manager, feature):
        assert manager.get_current(feature) is None
