"""Tests for taskledger.lib.config module."""

import pytest

from taskledger.lib.config import (
    CONFIG_FILE,
    DEFAULT_COLUMN_MAPPING,
    VALID_ENGINES,
    LedgerConfig,
    find_feature_dir,
    list_feature_dirs,
    load_config,
)
from taskledger.lib.validate import ValidationError


def write_config(root, text):
    (root / CONFIG_FILE).write_text(text)


class TestLoadConfig:
    """Test load_config."""

    def test_defaults_without_file(self, tmp_path):
        config = load_config(tmp_path)
        assert config.specs_path == tmp_path / ".ledger"
        assert config.tracker.engine == "local"
        assert config.tracker.project is None
        assert config.tracker.column_mapping == DEFAULT_COLUMN_MAPPING
        assert config.tracker.wip_limits == {}
        assert config.tracker.wip_enforcement == "warn"
        assert config.tracker.auto_sync == "ask"
        assert config.tracker.sync_tasks == "off"

    def test_empty_file_is_defaults(self, tmp_path):
        write_config(tmp_path, "")
        assert load_config(tmp_path).tracker.engine == "local"

    def test_full_tracker_section(self, tmp_path):
        write_config(tmp_path, """
specs_dir: plans
lock_timeout: 5
tracker:
  engine: both
  owner: acme
  repo: app
  project: {number: 3, id: PVT_kwDOA}
  columns:
    field_id: PVTSSF_1
    options: {Todo: f75ad846, "In Progress": 47fc9ee4, Done: 98236657}
  column_mapping: {completed: Shipped}
  wip_limits: {In Progress: 2, Todo: 0}
  wip_enforcement: block
  auto_sync: auto
  sync_tasks: create
  labels: {task: ledger-task}
""")
        config = load_config(tmp_path)
        tracker = config.tracker

        assert config.specs_path == tmp_path / "plans"
        assert config.lock_timeout == 5
        assert tracker.engine == "both"
        assert tracker.project.number == 3
        assert tracker.project.id == "PVT_kwDOA"
        assert tracker.field_id == "PVTSSF_1"
        assert tracker.column_options["In Progress"] == "47fc9ee4"
        assert tracker.column_name("completed") == "Shipped"
        assert tracker.column_name("pending") == "Todo"
        # Zero means no limit
        assert tracker.wip_limits == {"In Progress": 2}
        assert tracker.wip_limit("In Progress") == 2
        assert tracker.wip_limit("Todo") is None
        assert tracker.wip_enforcement == "block"
        assert tracker.auto_sync == "auto"
        assert tracker.sync_tasks == "create"
        assert tracker.task_label == "ledger-task"

    def test_bare_off_and_on(self, tmp_path):
        """YAML reads off/on as booleans; they still mean the mode names."""
        write_config(tmp_path, "tracker:\n  auto_sync: off\n  sync_tasks: on\n")
        tracker = load_config(tmp_path).tracker
        assert tracker.auto_sync == "off"
        assert tracker.sync_tasks == "create"

    def test_unknown_enum_warns_and_defaults(self, tmp_path, caplog):
        write_config(tmp_path, "tracker:\n  engine: jira\n  wip_enforcement: strict\n")
        tracker = load_config(tmp_path).tracker
        assert tracker.engine == "local"
        assert tracker.wip_enforcement == "warn"
        assert "Unknown engine 'jira'" in caplog.text
        assert "Unknown wip_enforcement 'strict'" in caplog.text

    def test_unknown_status_in_mapping_ignored(self, tmp_path, caplog):
        write_config(tmp_path, "tracker:\n  column_mapping: {review: Review}\n")
        tracker = load_config(tmp_path).tracker
        assert tracker.column_mapping == DEFAULT_COLUMN_MAPPING
        assert "unknown status 'review'" in caplog.text

    def test_invalid_yaml(self, tmp_path):
        write_config(tmp_path, "tracker: [unclosed\n")
        with pytest.raises(ValidationError, match="Invalid YAML"):
            load_config(tmp_path)

    def test_non_mapping_rejected(self, tmp_path):
        write_config(tmp_path, "- a\n- b\n")
        with pytest.raises(ValidationError):
            load_config(tmp_path)

    def test_schema_violation(self, tmp_path):
        write_config(tmp_path, "tracker:\n  project: {number: three, id: x}\n")
        with pytest.raises(ValidationError):
            load_config(tmp_path)

    def test_negative_wip_limit_rejected(self, tmp_path):
        write_config(tmp_path, "tracker:\n  wip_limits: {Todo: -1}\n")
        with pytest.raises(ValidationError):
            load_config(tmp_path)


class TestValidEngines:

    def test_contains_expected_engines(self):
        assert VALID_ENGINES == {"local", "github", "both"}


class TestFindFeatureDir:
    """Test feature directory resolution."""

    @pytest.fixture
    def config(self, tmp_path):
        specs = tmp_path / ".ledger"
        for name in ("001-login", "002-billing", "notes"):
            (specs / name).mkdir(parents=True)
        return LedgerConfig(root=tmp_path)

    def test_lists_feature_dirs_only(self, config):
        assert [d.name for d in list_feature_dirs(config)] == ["001-login", "002-billing"]

    def test_prefers_branch(self, config):
        assert find_feature_dir(config, "001-login").name == "001-login"

    def test_falls_back_to_newest(self, config):
        assert find_feature_dir(config, "main").name == "002-billing"
        assert find_feature_dir(config, None).name == "002-billing"
        assert find_feature_dir(config, "009-missing").name == "002-billing"

    def test_none_without_features(self, tmp_path):
        assert find_feature_dir(LedgerConfig(root=tmp_path), "001-login") is None
