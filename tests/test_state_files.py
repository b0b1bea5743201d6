"""Tests for taskledger.lib.state_files and taskledger.lib.validate."""

import json
import os
from unittest.mock import patch

import pytest

from taskledger.lib.locking import LockTimeout, feature_lock, is_locked
from taskledger.lib.state_files import write_json, write_text_atomic
from taskledger.lib.validate import ValidationError, validate, validate_file


class TestAtomicWrite:
    """Test write_text_atomic."""

    def test_creates_parent_and_writes(self, tmp_path):
        path = tmp_path / "a" / "b.txt"
        write_text_atomic(path, "hello\n")
        assert path.read_text() == "hello\n"

    def test_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "tasks.md"
        write_text_atomic(path, "one")
        write_text_atomic(path, "two")
        assert path.read_text() == "two"
        assert os.listdir(tmp_path) == ["tasks.md"]

    def test_failed_replace_keeps_old_content(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text("original")
        with patch("taskledger.lib.state_files.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                write_text_atomic(path, "new")
        assert path.read_text() == "original"
        assert os.listdir(tmp_path) == ["tasks.md"]


class TestJsonFiles:

    def test_write(self, tmp_path):
        path = tmp_path / "data.json"
        write_json(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}
        assert path.read_text().endswith("\n")

    def test_invalid_data_never_written(self, tmp_path):
        path = tmp_path / ".tracker-sync.json"
        with pytest.raises(ValidationError, match="Refusing to write"):
            write_json(path, {"tasks": {}}, "sync_mapping")
        assert not path.exists()


class TestValidate:
    """Test schema validation helpers."""

    def test_error_names_path(self):
        with pytest.raises(ValidationError) as exc:
            validate({"lastSyncedAt": "", "tasks": {"T001-001": {"externalIssueId": 5}}}, "sync_mapping")
        assert exc.value.schema_name == "sync_mapping"
        assert exc.value.path.startswith("tasks.T001-001")

    def test_unknown_schema(self):
        with pytest.raises(ValidationError, match="Schema file not found"):
            validate({}, "nope")

    def test_validate_file_missing(self, tmp_path):
        with pytest.raises(ValidationError, match="File not found"):
            validate_file(tmp_path / "x.json", "sync_mapping")

    def test_validate_file_bad_json(self, tmp_path):
        path = tmp_path / "x.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError, match="Invalid JSON"):
            validate_file(path, "sync_mapping")

    def test_validate_file_ok(self, tmp_path):
        path = tmp_path / "x.json"
        path.write_text(json.dumps({"lastSyncedAt": "", "tasks": {}}))
        assert validate_file(path, "sync_mapping")["tasks"] == {}


class TestFeatureLock:
    """Test per-feature locking."""

    def test_lock_and_release(self, tmp_path):
        assert not is_locked(tmp_path)
        with feature_lock(tmp_path):
            assert is_locked(tmp_path)
            assert (tmp_path / ".lock").read_text().strip() == str(os.getpid())
        assert not is_locked(tmp_path)
        # Lock file stays behind
        assert (tmp_path / ".lock").exists()

    def test_second_holder_times_out(self, tmp_path):
        with feature_lock(tmp_path):
            with pytest.raises(LockTimeout):
                with feature_lock(tmp_path, timeout=0.2):
                    pass

    def test_released_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with feature_lock(tmp_path):
                raise RuntimeError("boom")
        with feature_lock(tmp_path, timeout=0.2):
            pass
