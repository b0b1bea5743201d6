"""
ledger board - Show, move and sync the Kanban board.
"""

import json

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskledger.commands.common import (
    make_sync_engine,
    print_sync_result,
    resolve_feature_dir,
)
from taskledger.lib.config import AUTO_SYNC_ASK, AUTO_SYNC_OFF, LedgerConfig, list_feature_dirs
from taskledger.lib.locking import feature_lock
from taskledger.lib.taskparse import parse_task_id
from taskledger.lib.types import STATUS_COMPLETED, STATUS_IN_PROGRESS, BoardStatus
from taskledger.workflow.board import check_wip_limits, load_board, move_task, suggest_next
from taskledger.workflow.migrations import META_FILE, MigrationManager
from taskledger.workflow.sync import SYNC_FILE, load_mapping

DESCRIPTION_WIDTH = 40


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[:width - 3] + "..."


def render_board(board: BoardStatus, console: Console | None = None) -> None:
    console = console or Console()

    table = Table(title=escape(f"Kanban: {board.feature_name} (Migration {board.migration_id})"))
    for col in board.columns:
        count = f"{len(col.tasks)}/{col.wip_limit}" if col.wip_limit else f"{len(col.tasks)}"
        table.add_column(escape(f"{col.name} [{count}]"), overflow="fold")

    rows = max((len(col.tasks) for col in board.columns), default=0)
    for i in range(rows):
        cells = []
        for col in board.columns:
            if i < len(col.tasks):
                task = col.tasks[i]
                cells.append(escape(f"{task.id} {_truncate(task.description, DESCRIPTION_WIDTH)}"))
            else:
                cells.append("")
        table.add_row(*cells)

    console.print(table)
    if rows == 0:
        console.print("  (no tasks)")

    violations = check_wip_limits(board)
    for v in violations:
        console.print(f"[red]WIP: \"{escape(v.column)}\" has {v.current}/{v.limit} items[/red]")
    if not violations:
        console.print("WIP: OK")

    suggestions = suggest_next(board)
    if suggestions:
        top = suggestions[0]
        console.print(escape(f"Next: {top.task_id} \"{_truncate(top.description, DESCRIPTION_WIDTH)}\" ({top.reason})"))


def _confirm(prompt: str) -> bool:
    try:
        answer = input(prompt).strip().lower()
    except EOFError:
        return False
    return answer in ("", "y", "yes")


def _auto_sync_wanted(config: LedgerConfig) -> bool:
    if config.tracker.auto_sync == AUTO_SYNC_OFF:
        return False
    if config.tracker.auto_sync == AUTO_SYNC_ASK:
        return _confirm("Sync this change to the tracker? [Y/n] ")
    return True


def _cmd_move(args, config: LedgerConfig) -> int:
    task_id, column = args.move
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    with feature_lock(feature_dir, config.lock_timeout):
        manager = MigrationManager(feature_dir)
        feature = manager.require()
        result = move_task(manager, feature, task_id, column, config.tracker)

        print(f"Moved {task_id} to \"{result.column}\"")
        if result.warning:
            print(f"  [WARN] {result.warning}")

        engine = make_sync_engine(config)
        if not engine.enabled:
            return 0

        if _auto_sync_wanted(config):
            # in-progress is not written to the log, so overlay the moved task
            in_progress = {task_id} if result.status == STATUS_IN_PROGRESS else ()
            migration = manager.get_by_id(feature, parse_task_id(task_id)[0])
            board = load_board(manager, feature, config.tracker, migration.id, in_progress=in_progress)
            sync = engine.sync_to_external(board, manager.migration_dir(migration), feature.display_name, only=[task_id])
            print_sync_result(sync)

        if result.status == STATUS_COMPLETED:
            error = engine.close_source_if_done(feature, feature_dir)
            if error:
                print(f"  [WARN] {error}")
    return 0


def _cmd_sync(args, config: LedgerConfig) -> int:
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    engine = make_sync_engine(config)
    if not engine.enabled:
        print("ERROR: Tracker sync not enabled. Configure tracker in ledger.yaml first.")
        return 1

    with feature_lock(feature_dir, config.lock_timeout):
        manager = MigrationManager(feature_dir)
        feature = manager.require()
        board = load_board(manager, feature, config.tracker)
        if board is None:
            print("ERROR: No active migration with tasks")
            return 1

        print("Syncing board with tracker...")
        migration = manager.get_current(feature)
        sync = engine.sync_to_external(board, manager.migration_dir(migration), feature.display_name)
    print_sync_result(sync)
    return 0


def _cmd_pull(args, config: LedgerConfig) -> int:
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    engine = make_sync_engine(config)
    if not engine.enabled:
        print("ERROR: Tracker sync not enabled. Configure tracker in ledger.yaml first.")
        return 1

    manager = MigrationManager(feature_dir)
    feature = manager.require()
    migration = manager.get_current(feature)
    if migration is None:
        print("ERROR: No current migration")
        return 1

    pull = engine.sync_from_external()
    for error in pull.errors:
        print(f"  [WARN] {error}")
    print(f"Board items: {len(pull.items)}")

    mapping = load_mapping(manager.migration_dir(migration) / SYNC_FILE)
    in_progress = engine.remote_in_progress(pull, mapping)
    board = load_board(manager, feature, config.tracker, in_progress=in_progress)
    if board is None:
        print("ERROR: No active migration with tasks")
        return 1

    if args.json:
        print(json.dumps(board.to_dict(), indent=2))
    else:
        render_board(board)
    return 0


def _cmd_all(args, config: LedgerConfig) -> int:
    boards = []
    for feature_dir in list_feature_dirs(config):
        if not (feature_dir / META_FILE).exists():
            continue
        manager = MigrationManager(feature_dir)
        board = load_board(manager, manager.require(), config.tracker)
        if board is not None:
            boards.append(board)

    if args.json:
        print(json.dumps([b.to_dict() for b in boards], indent=2))
        return 0

    if not boards:
        print("No active boards found.")
        return 0

    console = Console()
    for board in boards:
        render_board(board, console)
        console.print()
    return 0


def cmd_board(args, config: LedgerConfig) -> int:
    """Show the current board, or move / sync / pull."""
    if args.move:
        return _cmd_move(args, config)
    if args.sync:
        return _cmd_sync(args, config)
    if args.pull:
        return _cmd_pull(args, config)
    if args.all:
        return _cmd_all(args, config)

    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    manager = MigrationManager(feature_dir)
    board = load_board(manager, manager.require(), config.tracker)
    if board is None:
        print("No active migration with tasks. Run 'ledger migrate new' then 'ledger tasks add' first.")
        return 0

    if args.json:
        print(json.dumps(board.to_dict(), indent=2))
    else:
        render_board(board)
    return 0
