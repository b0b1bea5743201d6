"""
ledger tasks - Add tasks to the current migration and check them off.
"""

import json
import sys

from taskledger.commands.common import (
    make_sync_engine,
    print_output,
    print_sync_result,
    resolve_feature_dir,
)
from taskledger.lib.config import WIP_BLOCK, LedgerConfig
from taskledger.lib.locking import feature_lock
from taskledger.lib.taskparse import TaskInput
from taskledger.lib.types import STATUS_PENDING
from taskledger.workflow.board import check_capacity, load_board, suggest_next
from taskledger.workflow.migrations import MigrationManager, MigrationNotFound


def parse_task_inputs(raw: str) -> list[TaskInput]:
    """Tasks from JSON: a list of strings or {"description", "story"} objects.

    Raises:
        ValueError: If the JSON is malformed or a task has no description.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid tasks JSON: {e}") from None

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError("Tasks JSON must be a list")

    inputs = []
    for item in data:
        if isinstance(item, str):
            item = {"description": item}
        if not isinstance(item, dict):
            raise ValueError(f"Unsupported task entry: {item!r}")
        inputs.append(TaskInput.from_dict(item))
    return inputs


def cmd_tasks_add(args, config: LedgerConfig) -> int:
    """Append tasks to a migration (default: current), optionally pushing them."""
    raw = args.tasks if args.tasks and args.tasks != "-" else sys.stdin.read()
    try:
        inputs = parse_task_inputs(raw)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2
    if not inputs:
        print("ERROR: No tasks given")
        return 2

    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    with feature_lock(feature_dir, config.lock_timeout):
        manager = MigrationManager(feature_dir)
        feature = manager.require()
        if args.migration:
            migration = manager.get_by_id(feature, args.migration)
            if migration is None:
                raise MigrationNotFound(args.migration)
        else:
            migration = manager.get_current(feature)
            if migration is None:
                print("ERROR: No current migration. Run 'ledger migrate new' first.")
                return 1

        warnings = []
        board = load_board(manager, feature, config.tracker, migration.id)
        violation = check_capacity(board, STATUS_PENDING, len(inputs)) if board else None
        if violation:
            message = f"WIP: '{violation.column}' would have {violation.current}/{violation.limit} items"
            if config.tracker.wip_enforcement == WIP_BLOCK:
                print(f"ERROR: {message}")
                return 1
            warnings.append(message)

        result = manager.append_tasks(feature, migration.id, inputs)
        warnings.extend(result.warnings)

        sync = None
        if args.push:
            engine = make_sync_engine(config)
            if engine.enabled:
                board = load_board(manager, feature, config.tracker, migration.id)
                sync = engine.sync_to_external(
                    board,
                    manager.migration_dir(migration),
                    feature.display_name,
                    only=[t.id for t in result.tasks],
                    create_missing=True,
                )
            else:
                warnings.append("Tracker sync not enabled, tasks not pushed")

    print(f"Added {len(result.tasks)} task(s) to migration {migration.id}")
    for task in result.tasks:
        story = f"[{task.story}] " if task.story else ""
        print(f"  + {task.id} {story}{task.description}")
    for warning in warnings:
        print(f"  [WARN] {warning}")
    if sync is not None:
        print_sync_result(sync)

    print_output({
        "migrationId": migration.id,
        "added": [t.id for t in result.tasks],
        "tasksTotal": migration.tasks_total,
        "status": migration.status,
        "warnings": warnings,
        "sync": None if sync is None else {
            "created": sync.created,
            "errors": sync.errors,
        },
    })
    return 0


def cmd_tasks_complete(args, config: LedgerConfig) -> int:
    """Check a task off, sync it and suggest what to do next."""
    feature_dir = resolve_feature_dir(config)
    if feature_dir is None:
        return 1

    sync_errors = []
    with feature_lock(feature_dir, config.lock_timeout):
        manager = MigrationManager(feature_dir)
        feature = manager.require()
        result = manager.complete_task(feature, args.id)
        migration = result.migration

        if not result.already_completed:
            engine = make_sync_engine(config)
            if engine.enabled:
                board = load_board(manager, feature, config.tracker, migration.id)
                if board is not None:
                    sync = engine.sync_to_external(
                        board, manager.migration_dir(migration), feature.display_name, only=[args.id]
                    )
                    sync_errors.extend(sync.errors)
                error = engine.close_source_if_done(feature, feature_dir)
                if error:
                    sync_errors.append(error)

        current = load_board(manager, feature, config.tracker)
        suggestions = suggest_next(current) if current else []

    if result.already_completed:
        print(f"{args.id} is already completed")
    else:
        print(f"Completed {args.id} ({migration.tasks_completed}/{migration.tasks_total})")
        if result.migration_completed:
            print(f"Migration {migration.id} completed")
    for error in sync_errors:
        print(f"  [WARN] {error}")
    if suggestions:
        top = suggestions[0]
        print(f"Next: {top.task_id} \"{top.description}\" ({top.reason})")

    print_output({
        "taskId": args.id,
        "alreadyCompleted": result.already_completed,
        "migration": {
            "id": migration.id,
            "status": migration.status,
            "tasksCompleted": migration.tasks_completed,
            "tasksTotal": migration.tasks_total,
        },
        "next": [s.task_id for s in suggestions],
        "syncErrors": sync_errors,
    })
    return 0
