"""
Configuration loaders for taskledger.

Loads ledger.yaml from the project root. If no config file exists, returns
defaults: local-only engine, default column names, no WIP limits.

Example ledger.yaml:

    specs_dir: .ledger
    tracker:
      engine: both
      owner: acme
      project: {number: 3, id: PVT_kwDOA}
      columns:
        field_id: PVTSSF_lADOA
        options: {Todo: f75ad846, "In Progress": 47fc9ee4, Done: 98236657}
      wip_limits: {In Progress: 2}
      wip_enforcement: block
      sync_tasks: create
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from taskledger.lib import validate
from taskledger.lib.types import (
    STATUS_BLOCKED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
)

logger = logging.getLogger(__name__)

CONFIG_FILE = "ledger.yaml"
DEFAULT_SPECS_DIR = ".ledger"
DEFAULT_LOCK_TIMEOUT = 30

# Task engine modes
ENGINE_LOCAL = "local"
ENGINE_GITHUB = "github"
ENGINE_BOTH = "both"
VALID_ENGINES = {ENGINE_LOCAL, ENGINE_GITHUB, ENGINE_BOTH}

# WIP enforcement
WIP_WARN = "warn"
WIP_BLOCK = "block"
VALID_WIP_ENFORCEMENT = {WIP_WARN, WIP_BLOCK}

# Sync after a board move
AUTO_SYNC_ASK = "ask"
AUTO_SYNC_AUTO = "auto"
AUTO_SYNC_OFF = "off"
VALID_AUTO_SYNC = {AUTO_SYNC_ASK, AUTO_SYNC_AUTO, AUTO_SYNC_OFF}

# Whether a push creates tracker items for unmapped tasks
SYNC_TASKS_OFF = "off"
SYNC_TASKS_CREATE = "create"
VALID_SYNC_TASKS = {SYNC_TASKS_OFF, SYNC_TASKS_CREATE}

DEFAULT_COLUMN_MAPPING = {
    STATUS_PENDING: "Todo",
    STATUS_IN_PROGRESS: "In Progress",
    STATUS_COMPLETED: "Done",
    STATUS_BLOCKED: "Blocked",
}

FEATURE_DIR_RE = re.compile(r'^\d{3}-')


@dataclass
class BoardProject:
    """The external board (GitHub Project) tasks are mirrored to."""
    number: int
    id: str
    title: str = ""


@dataclass
class TrackerConfig:
    engine: str = ENGINE_LOCAL
    owner: str = ""
    repo: str = ""
    project: BoardProject | None = None
    field_id: str = ""                                          # Status field on the board
    column_options: dict[str, str] = field(default_factory=dict)  # column name -> option id
    column_mapping: dict[str, str] = field(default_factory=lambda: DEFAULT_COLUMN_MAPPING.copy())
    wip_limits: dict[str, int] = field(default_factory=dict)    # column name -> limit
    wip_enforcement: str = WIP_WARN
    auto_sync: str = AUTO_SYNC_ASK
    sync_tasks: str = SYNC_TASKS_OFF
    task_label: str | None = None

    def column_name(self, status: str) -> str:
        return self.column_mapping.get(status) or DEFAULT_COLUMN_MAPPING[status]

    def wip_limit(self, column_name: str) -> int | None:
        limit = self.wip_limits.get(column_name)
        return limit if limit else None


@dataclass
class LedgerConfig:
    """Project-level configuration from ledger.yaml"""
    root: Path
    specs_dir: str = DEFAULT_SPECS_DIR
    lock_timeout: int = DEFAULT_LOCK_TIMEOUT
    tracker: TrackerConfig = field(default_factory=TrackerConfig)

    @property
    def specs_path(self) -> Path:
        return self.root / self.specs_dir


def _yaml_switch(value):
    """YAML 1.1 reads bare on/off as booleans; map them back to mode strings."""
    if value is False:
        return "off"
    if value is True:
        return "on"
    return value


def _choice(raw: dict, key: str, valid: set[str], default: str, aliases: dict | None = None) -> str:
    value = raw.get(key)
    if value is None:
        return default
    value = _yaml_switch(value)
    if aliases and value in aliases:
        value = aliases[value]
    if value not in valid:
        logger.warning(f"Unknown {key} '{value}' in {CONFIG_FILE}, using '{default}'")
        return default
    return value


def _load_tracker(raw: dict) -> TrackerConfig:
    project = None
    if raw.get("project"):
        p = raw["project"]
        project = BoardProject(number=int(p["number"]), id=str(p["id"]), title=p.get("title", ""))

    columns = raw.get("columns") or {}
    mapping = DEFAULT_COLUMN_MAPPING.copy()
    for status, name in (raw.get("column_mapping") or {}).items():
        if status not in mapping:
            logger.warning(f"Ignoring column_mapping for unknown status '{status}'")
            continue
        if name:
            mapping[status] = name

    return TrackerConfig(
        engine=_choice(raw, "engine", VALID_ENGINES, ENGINE_LOCAL),
        owner=raw.get("owner", ""),
        repo=raw.get("repo", ""),
        project=project,
        field_id=columns.get("field_id", ""),
        column_options=dict(columns.get("options") or {}),
        column_mapping=mapping,
        wip_limits={k: int(v) for k, v in (raw.get("wip_limits") or {}).items() if v},
        wip_enforcement=_choice(raw, "wip_enforcement", VALID_WIP_ENFORCEMENT, WIP_WARN),
        auto_sync=_choice(raw, "auto_sync", VALID_AUTO_SYNC, AUTO_SYNC_ASK),
        sync_tasks=_choice(raw, "sync_tasks", VALID_SYNC_TASKS, SYNC_TASKS_OFF,
                           aliases={"on": SYNC_TASKS_CREATE}),
        task_label=(raw.get("labels") or {}).get("task"),
    )


def load_config(root: Path) -> LedgerConfig:
    """Load ledger.yaml from root and return LedgerConfig.

    Missing file -> defaults. Malformed YAML or schema violations raise
    validate.ValidationError so a broken config never silently degrades
    to local-only mode.
    """
    config_path = root / CONFIG_FILE
    if not config_path.exists():
        return LedgerConfig(root=root)

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise validate.ValidationError("config", f"Invalid YAML in {config_path}: {e}") from None

    if not isinstance(data, dict):
        raise validate.ValidationError("config", f"{config_path} must contain a mapping")

    tracker_raw = data.get("tracker") or {}
    for key in ("engine", "wip_enforcement", "auto_sync", "sync_tasks"):
        if key in tracker_raw:
            tracker_raw[key] = _yaml_switch(tracker_raw[key])
    validate.validate(data, "config")

    return LedgerConfig(
        root=root,
        specs_dir=data.get("specs_dir", DEFAULT_SPECS_DIR),
        lock_timeout=int(data.get("lock_timeout", DEFAULT_LOCK_TIMEOUT)),
        tracker=_load_tracker(tracker_raw),
    )


def list_feature_dirs(config: LedgerConfig) -> list[Path]:
    """All feature directories (NNN-name), oldest first."""
    specs = config.specs_path
    if not specs.exists():
        return []
    return sorted(
        d for d in specs.iterdir()
        if d.is_dir() and FEATURE_DIR_RE.match(d.name)
    )


def find_feature_dir(config: LedgerConfig, branch: str | None) -> Path | None:
    """Resolve the feature the user is working on.

    Prefers the feature matching the current git branch; otherwise falls
    back to the newest feature directory.
    """
    specs = config.specs_path
    if branch and FEATURE_DIR_RE.match(branch):
        candidate = specs / branch
        if candidate.is_dir():
            return candidate

    features = list_feature_dirs(config)
    if features:
        return features[-1]
    return None
