"""
ledger migrate - Start and list migrations of the current feature.
"""

import json

from taskledger.commands.common import make_sync_engine, print_output, resolve_feature_dir
from taskledger.lib.config import LedgerConfig
from taskledger.lib.locking import feature_lock
from taskledger.lib.models import PlainSummary
from taskledger.lib.types import TrackerError
from taskledger.workflow.migrations import MigrationManager, MigrationNotFound


def cmd_migrate_new(args, config: LedgerConfig) -> int:
    """Open the next migration, optionally started from a tracker issue."""
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    engine = None
    issue = None
    if args.from_issue:
        engine = make_sync_engine(config)
        if not engine.enabled:
            print("ERROR: Tracker sync not enabled. Configure tracker in ledger.yaml first.")
            return 1
        try:
            issue = engine.tracker.get_item(args.from_issue)
        except TrackerError as e:
            print(f"ERROR: Could not fetch issue {args.from_issue}: {e}")
            return 1

    expectation = PlainSummary(args.expect) if args.expect else None

    with feature_lock(feature_dir, config.lock_timeout):
        manager = MigrationManager(feature_dir)
        feature = manager.require()
        migration = manager.create_migration(feature, expectation)

        if issue is not None:
            engine.link_source(feature_dir, str(issue["number"]), issue["url"], issue.get("title", ""))

    print(f"Created migration {migration.id} for {feature.display_name}")
    print(f"  Parent:  {migration.parent or 'none'}")
    print(f"  Task log: {manager.ledger.path(manager.migration_dir(migration))}")

    warnings = []
    if issue is not None:
        print(f"  Source:  #{issue['number']} {issue.get('title', '')}")
        error = engine.announce_migration(feature_dir, migration.id)
        if error:
            warnings.append(error)
            print(f"  [WARN] {error}")

    print_output({
        "featureId": feature.feature_id,
        "migrationId": migration.id,
        "parent": migration.parent,
        "folder": migration.folder,
        "source": issue["url"] if issue else None,
        "warnings": warnings,
    })
    return 0


def cmd_migrate_list(args, config: LedgerConfig) -> int:
    """List the current feature's migrations."""
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    manager = MigrationManager(feature_dir)
    feature = manager.require()
    if args.up_to:
        if manager.get_by_id(feature, args.up_to) is None:
            raise MigrationNotFound(args.up_to)
        migrations = manager.list_up_to(feature, args.up_to)
    else:
        migrations = manager.list_all(feature)

    if args.json:
        print(json.dumps([m.to_dict() for m in migrations], indent=2))
        return 0

    print(f"Migrations: {feature.display_name}")
    print("-" * 60)
    if not migrations:
        print("  none (run 'ledger migrate new')")
        return 0

    for m in migrations:
        marker = "*" if m.id == feature.current_migration else " "
        progress = f"{m.tasks_completed}/{m.tasks_total}"
        print(f" {marker} {m.id}  {m.status:<12} {progress:>7}  parent={m.parent or '-'}  {m.folder}")
    return 0
