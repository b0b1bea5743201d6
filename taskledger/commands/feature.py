"""
ledger feature new - Start tracking a feature.
"""

from taskledger.commands.common import print_output
from taskledger.git import make_feature_branch, parse_feature_branch
from taskledger.lib.config import LedgerConfig, list_feature_dirs
from taskledger.lib.locking import feature_lock
from taskledger.lib.models import PlainSummary, StructuredExpectation
from taskledger.workflow.migrations import MigrationManager


def next_feature_id(config: LedgerConfig) -> str:
    ids = [int(d.name[:3]) for d in list_feature_dirs(config)]
    return f"{max(ids, default=0) + 1:03d}"


def _expectation(args):
    if args.must or args.must_not:
        return StructuredExpectation(
            summary=args.expect or "",
            must=list(args.must or []),
            must_not=list(args.must_not or []),
        )
    if args.expect:
        return PlainSummary(args.expect)
    return None


def cmd_feature_new(args, config: LedgerConfig) -> int:
    """Create <specs_dir>/NNN-name with an empty _meta.json."""
    feature_id = next_feature_id(config)
    try:
        branch = make_feature_branch(feature_id, args.name)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2

    feature_dir = config.specs_path / branch
    if feature_dir.exists():
        print(f"ERROR: Feature directory already exists: {feature_dir}")
        return 1

    with feature_lock(feature_dir, config.lock_timeout):
        feature = MigrationManager(feature_dir).init_feature(
            feature_id=feature_id,
            feature_name=parse_feature_branch(branch)[1],
            branch=branch,
            expectation=_expectation(args),
        )

    print(f"Created feature {feature.display_name}")
    print(f"  Directory: {feature_dir}")
    print()
    print("Next steps:")
    print(f"  git checkout -b {branch}")
    print("  ledger migrate new")

    print_output({
        "featureId": feature.feature_id,
        "featureName": feature.feature_name,
        "branch": branch,
        "featureDir": str(feature_dir),
    })
    return 0
