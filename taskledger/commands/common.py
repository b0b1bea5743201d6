"""Helpers shared by the ledger commands."""

import json
from pathlib import Path

from taskledger.git import get_current_branch, has_git
from taskledger.lib.config import LedgerConfig, find_feature_dir
from taskledger.lib.github import GitHubTracker
from taskledger.workflow.sync import SyncEngine

# Everything after this line on stdout is a single JSON document for scripts
OUTPUT_MARKER = "---LEDGER-OUTPUT---"


def print_output(data: dict | list) -> None:
    print()
    print(OUTPUT_MARKER)
    print(json.dumps(data, indent=2))


def current_branch(config: LedgerConfig) -> str | None:
    if not has_git(config.root):
        return None
    return get_current_branch(config.root)


def resolve_feature_dir(config: LedgerConfig) -> Path | None:
    """Feature directory for the current context, or None (error printed)."""
    if not config.specs_path.exists():
        print(f"ERROR: No specs directory at {config.specs_path}. Run 'ledger feature new' first.")
        return None

    feature_dir = find_feature_dir(config, current_branch(config))
    if feature_dir is None:
        print(f"ERROR: No features found in {config.specs_path}")
        return None
    return feature_dir


def make_sync_engine(config: LedgerConfig) -> SyncEngine:
    tracker_cfg = config.tracker
    repo = f"{tracker_cfg.owner}/{tracker_cfg.repo}" if tracker_cfg.owner and tracker_cfg.repo else None
    return SyncEngine(GitHubTracker(repo=repo, cwd=config.root), tracker_cfg)


def print_sync_result(result) -> None:
    print(f"Synced: {result.synced} | Created: {result.created} | Moved: {result.moved}")
    for error in result.errors:
        print(f"  [WARN] {error}")
