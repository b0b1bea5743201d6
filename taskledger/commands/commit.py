"""
ledger commit record - Attach a git commit to a migration.
"""

from taskledger.commands.common import resolve_feature_dir
from taskledger.git import get_commit_sha
from taskledger.lib.config import LedgerConfig
from taskledger.lib.locking import feature_lock
from taskledger.workflow.migrations import MigrationManager


def cmd_commit_record(args, config: LedgerConfig) -> int:
    """Record a commit (default: HEAD) against a migration (default: current)."""
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    commit_hash = args.hash or get_commit_sha(config.root, short=True)
    if not commit_hash:
        print("ERROR: Could not determine commit hash. Pass --hash.")
        return 1

    with feature_lock(feature_dir, config.lock_timeout):
        manager = MigrationManager(feature_dir)
        feature = manager.require()
        migration_id = args.migration or feature.current_migration
        if not migration_id:
            print("ERROR: No current migration. Pass --migration.")
            return 1
        record = manager.record_commit(feature, migration_id, commit_hash, args.message)

    print(f"Recorded {record.hash} on migration {record.migration}: {record.message}")
    return 0
