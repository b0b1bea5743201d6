#!/usr/bin/env python3
"""ledger CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from taskledger.lib.config import load_config
from taskledger.lib.locking import LockTimeout
from taskledger.lib.validate import ValidationError
from taskledger.workflow.migrations import LedgerError
from taskledger.commands import board as cmd_board_module
from taskledger.commands import commit as cmd_commit_module
from taskledger.commands import feature as cmd_feature_module
from taskledger.commands import migrate as cmd_migrate_module
from taskledger.commands import status as cmd_status_module
from taskledger.commands import tasks as cmd_tasks_module


def get_config(args):
    """Load ledger.yaml from --root or the working directory."""
    root = Path(args.root).resolve() if args.root else Path.cwd()
    try:
        return load_config(root)
    except ValidationError as e:
        print(f"ERROR: {e}")
        sys.exit(2)


def run_command(func, args) -> int:
    """Run a command, turning precondition failures into exit code 1."""
    config = get_config(args)
    try:
        return func(args, config)
    except (LedgerError, LockTimeout) as e:
        print(f"ERROR: {e}")
        return 1
    except ValidationError as e:
        print(f"ERROR: {e}")
        return 2


def cmd_feature_new(args):
    return run_command(cmd_feature_module.cmd_feature_new, args)


def cmd_migrate_new(args):
    return run_command(cmd_migrate_module.cmd_migrate_new, args)


def cmd_migrate_list(args):
    return run_command(cmd_migrate_module.cmd_migrate_list, args)


def cmd_tasks_add(args):
    return run_command(cmd_tasks_module.cmd_tasks_add, args)


def cmd_tasks_complete(args):
    return run_command(cmd_tasks_module.cmd_tasks_complete, args)


def cmd_board(args):
    return run_command(cmd_board_module.cmd_board, args)


def cmd_status(args):
    return run_command(cmd_status_module.cmd_status, args)


def cmd_commit_record(args):
    return run_command(cmd_commit_module.cmd_commit_record, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ledger', description='Task ledger and Kanban board for feature migrations')
    parser.add_argument('--root', '-C', help='Project root (default: current directory)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # ledger feature
    p_feature = subparsers.add_parser('feature', help='Manage features')
    feature_sub = p_feature.add_subparsers(dest='feature_cmd', required=True)

    # ledger feature new
    p_feature_new = feature_sub.add_parser('new', help='Create a feature')
    p_feature_new.add_argument('name', help='Feature name (slugified into the branch name)')
    p_feature_new.add_argument('--expect', '-e', help='What the feature should achieve')
    p_feature_new.add_argument('--must', action='append', help='Required outcome (repeatable)')
    p_feature_new.add_argument('--must-not', action='append', help='Forbidden outcome (repeatable)')
    p_feature_new.set_defaults(func=cmd_feature_new)

    # ledger migrate
    p_migrate = subparsers.add_parser('migrate', help='Manage migrations of the current feature')
    p_migrate.set_defaults(func=cmd_migrate_list, json=False, up_to=None)
    migrate_sub = p_migrate.add_subparsers(dest='migrate_cmd')

    # ledger migrate new
    p_migrate_new = migrate_sub.add_parser('new', help='Start the next migration')
    p_migrate_new.add_argument('--from-issue', help='Issue number or URL the migration starts from')
    p_migrate_new.add_argument('--expect', '-e', help='Expectation override for this migration')
    p_migrate_new.set_defaults(func=cmd_migrate_new)

    # ledger migrate list
    p_migrate_list = migrate_sub.add_parser('list', help='List migrations')
    p_migrate_list.add_argument('--json', action='store_true', help='JSON output')
    p_migrate_list.add_argument('--up-to', metavar='ID', help='Only migrations up to and including ID')
    p_migrate_list.set_defaults(func=cmd_migrate_list)

    # ledger tasks
    p_tasks = subparsers.add_parser('tasks', help='Manage tasks of the current migration')
    tasks_sub = p_tasks.add_subparsers(dest='tasks_cmd', required=True)

    # ledger tasks add
    p_tasks_add = tasks_sub.add_parser('add', help='Append tasks')
    p_tasks_add.add_argument('tasks', nargs='?', help='JSON list of tasks (reads stdin if omitted or "-")')
    p_tasks_add.add_argument('--migration', help='Migration ID (default: current)')
    p_tasks_add.add_argument('--push', action='store_true', help='Create tracker items for the new tasks')
    p_tasks_add.set_defaults(func=cmd_tasks_add)

    # ledger tasks complete
    p_tasks_complete = tasks_sub.add_parser('complete', help='Mark a task completed')
    p_tasks_complete.add_argument('id', help='Task ID (e.g., T001-002)')
    p_tasks_complete.set_defaults(func=cmd_tasks_complete)

    # ledger board
    p_board = subparsers.add_parser('board', help='Show the Kanban board')
    p_board.add_argument('--all', action='store_true', help='Boards of every feature')
    p_board.add_argument('--json', action='store_true', help='JSON output')
    p_board.add_argument('--move', nargs=2, metavar=('ID', 'COLUMN'), help='Move a task to a column')
    p_board.add_argument('--sync', action='store_true', help='Push the board to the tracker')
    p_board.add_argument('--pull', action='store_true', help='Show the board with tracker state overlaid')
    p_board.set_defaults(func=cmd_board)

    # ledger status
    p_status = subparsers.add_parser('status', help='Show feature progress')
    p_status.add_argument('--json', action='store_true', help='JSON output')
    p_status.set_defaults(func=cmd_status)

    # ledger commit
    p_commit = subparsers.add_parser('commit', help='Commit history')
    commit_sub = p_commit.add_subparsers(dest='commit_cmd', required=True)

    # ledger commit record
    p_commit_record = commit_sub.add_parser('record', help='Record a commit against a migration')
    p_commit_record.add_argument('--hash', help='Commit hash (default: HEAD)')
    p_commit_record.add_argument('--migration', help='Migration ID (default: current)')
    p_commit_record.add_argument('--message', '-m', required=True, help='Commit message')
    p_commit_record.set_defaults(func=cmd_commit_record)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
