"""
ledger status - Feature progress at a glance.
"""

import json

from taskledger.commands.common import resolve_feature_dir
from taskledger.lib.config import LedgerConfig
from taskledger.lib.locking import is_locked
from taskledger.workflow.board import check_wip_limits, load_board, suggest_next
from taskledger.workflow.migrations import MigrationManager


def cmd_status(args, config: LedgerConfig) -> int:
    """Show migration progress, WIP health and the next task."""
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    manager = MigrationManager(feature_dir)
    feature = manager.require()
    summary = manager.get_status(feature)
    board = load_board(manager, feature, config.tracker)
    known = {m.folder for m in feature.migrations.values()}
    untracked = [f for f in manager.scan_migration_folders() if f not in known]
    open_ids = [m.id for m in manager.list_pending(feature)]

    if args.json:
        data = summary.to_dict()
        data["wipViolations"] = [v.__dict__ for v in check_wip_limits(board)] if board else []
        data["next"] = [s.task_id for s in suggest_next(board)] if board else []
        data["untrackedFolders"] = untracked
        data["openMigrations"] = open_ids
        print(json.dumps(data, indent=2))
        return 0

    print(f"Feature: {feature.display_name}")
    print("=" * 60)
    print(f"Branch:      {feature.branch}")
    if is_locked(feature_dir):
        print("Lock:        held by another ledger command")
    print(f"Migrations:  {summary.completed_migrations}/{summary.total_migrations} completed")
    if open_ids:
        print(f"Open:        {', '.join(open_ids)}")
    print(f"Tasks:       {summary.completed_tasks} done, {summary.pending_tasks} pending")
    for folder in untracked:
        print(f"  [WARN] Migration folder {folder} is not in _meta.json")

    expectation = feature.effective_expectation(feature.current_migration)
    if expectation is not None:
        print(f"Expectation: {expectation.summary}")
    print()

    current = manager.get_current(feature)
    if current is None:
        print("No migrations yet. Run 'ledger migrate new'.")
        return 0

    print(f"Current migration: {current.id} ({current.status})")
    print(f"  Progress: {current.tasks_completed}/{current.tasks_total}")

    if board is None:
        return 0

    violations = check_wip_limits(board)
    for v in violations:
        print(f"  WIP: \"{v.column}\" {v.current}/{v.limit}")
    if not violations:
        print("  WIP: OK")

    suggestions = suggest_next(board)
    if suggestions:
        top = suggestions[0]
        print(f"  Next: {top.task_id} \"{top.description}\" ({top.reason})")
    return 0
