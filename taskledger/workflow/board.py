"""
Board projection for taskledger.

Projects a migration's tasks onto Kanban columns, checks WIP limits and
suggests what to pick up next. Boards are derived on every call and
never stored; the only board mutation is move_task(), which rewrites the
task's marker in the log.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from taskledger.lib.config import WIP_BLOCK, TrackerConfig
from taskledger.lib.models import Feature
from taskledger.lib.taskparse import parse_task_id
from taskledger.lib.types import (
    BOARD_STATUSES,
    STATUS_BLOCKED,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    BoardColumn,
    BoardStatus,
    FlowSuggestion,
    Task,
    WipViolation,
)
from taskledger.workflow.migrations import (
    LedgerError,
    MalformedTaskId,
    MigrationManager,
    MigrationNotFound,
    TaskNotFound,
)

logger = logging.getLogger(__name__)

WIP_REACHED_REASON = "WIP limit reached, finish current work first"
NEXT_IN_QUEUE_REASON = "Next in queue"
MAX_SUGGESTIONS = 3


class WipLimitExceeded(LedgerError):
    def __init__(self, column: str, current: int, limit: int):
        self.column = column
        self.current = current
        self.limit = limit
        super().__init__(f"WIP limit for '{column}' is {limit} ({current} already there)")


class UnknownColumn(LedgerError):
    def __init__(self, target: str, valid: Iterable[str]):
        self.target = target
        super().__init__(f"Unknown column '{target}'. Valid: {', '.join(valid)}")


@dataclass
class MoveResult:
    task_id: str
    status: str
    column: str
    warning: str | None = None


def build_board(
    feature: Feature,
    migration_id: str,
    tasks: list[Task],
    config: TrackerConfig,
    in_progress: Iterable[str] = (),
) -> BoardStatus:
    """Project tasks onto columns.

    Column order is pending, in-progress, [blocked], completed; the blocked
    column only appears when it has tasks. Open tasks listed in
    in_progress are shown in the in-progress column.
    """
    in_progress = set(in_progress)
    buckets = {status: [] for status in (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_BLOCKED, STATUS_COMPLETED)}

    for task in tasks:
        if task.status != STATUS_COMPLETED and task.id in in_progress:
            buckets[STATUS_IN_PROGRESS].append(task)
        else:
            buckets[task.status].append(task)

    order = [STATUS_PENDING, STATUS_IN_PROGRESS]
    if buckets[STATUS_BLOCKED]:
        order.append(STATUS_BLOCKED)
    order.append(STATUS_COMPLETED)

    columns = []
    for status in order:
        name = config.column_name(status)
        columns.append(BoardColumn(
            name=name,
            status=status,
            tasks=buckets[status],
            wip_limit=config.wip_limit(name),
        ))

    return BoardStatus(
        feature_name=feature.display_name,
        migration_id=migration_id,
        columns=columns,
    )


def load_board(
    manager: MigrationManager,
    feature: Feature,
    config: TrackerConfig,
    migration_id: str | None = None,
    in_progress: Iterable[str] = (),
) -> BoardStatus | None:
    """Board for a migration (default: the current one).

    Returns None when there is no such migration or it has no task log.
    """
    migration_id = migration_id or feature.current_migration
    if not migration_id:
        return None
    migration = feature.migrations.get(migration_id)
    if migration is None:
        return None
    if not manager.ledger.exists(manager.migration_dir(migration)):
        return None

    parsed = manager.read_tasks(migration)
    return build_board(feature, migration_id, parsed.tasks, config, in_progress)


def check_wip_limits(board: BoardStatus) -> list[WipViolation]:
    """One violation per column holding more tasks than its limit."""
    violations = []
    for col in board.columns:
        if col.wip_limit and len(col.tasks) > col.wip_limit:
            violations.append(WipViolation(column=col.name, current=len(col.tasks), limit=col.wip_limit))
    return violations


def check_capacity(board: BoardStatus, status: str, incoming: int = 1) -> WipViolation | None:
    """Would adding `incoming` tasks to the column for `status` break its limit?"""
    col = board.column_for(status)
    if col is None or not col.wip_limit:
        return None
    projected = len(col.tasks) + incoming
    if projected > col.wip_limit:
        return WipViolation(column=col.name, current=projected, limit=col.wip_limit)
    return None


def suggest_next(board: BoardStatus) -> list[FlowSuggestion]:
    """What to work on next.

    A full in-progress column means finish what is started: every
    in-progress task is returned with score 100. Otherwise pending tasks
    are ranked by sequence number, lowest first, top three.
    """
    doing = board.column_for(STATUS_IN_PROGRESS)
    if doing and doing.wip_limit and len(doing.tasks) >= doing.wip_limit:
        return [
            FlowSuggestion(task_id=t.id, description=t.description, reason=WIP_REACHED_REASON, score=100)
            for t in doing.tasks
        ]

    todo = board.column_for(STATUS_PENDING)
    if todo is None:
        return []

    suggestions = [
        FlowSuggestion(
            task_id=t.id,
            description=t.description,
            reason=NEXT_IN_QUEUE_REASON,
            score=round((1000 - t.sequence) * 0.1, 1),
        )
        for t in todo.tasks
    ]
    suggestions.sort(key=lambda s: s.score, reverse=True)
    return suggestions[:MAX_SUGGESTIONS]


def resolve_column(target: str, config: TrackerConfig) -> str | None:
    """Map a column name or logical status to a status. Case-insensitive."""
    wanted = target.strip().lower()
    for status in BOARD_STATUSES:
        if config.column_name(status).lower() == wanted or status == wanted:
            return status
    return None


def move_task(
    manager: MigrationManager,
    feature: Feature,
    task_id: str,
    target_column: str,
    config: TrackerConfig,
    in_progress: Iterable[str] = (),
) -> MoveResult:
    """Move a task to another column by rewriting its marker.

    completed checks the task, blocked adds a [BLOCKED] tag, pending and
    in-progress leave it unchecked and untagged. With block enforcement a
    move into a full column raises WipLimitExceeded before anything is
    written; with warn enforcement the move goes through and the result
    carries the warning.
    """
    status = resolve_column(target_column, config)
    if status is None:
        raise UnknownColumn(target_column, [config.column_name(s) for s in BOARD_STATUSES])

    parsed_id = parse_task_id(task_id)
    if parsed_id is None:
        raise MalformedTaskId(task_id)
    migration_id = parsed_id[0]
    if migration_id not in feature.migrations:
        raise MigrationNotFound(migration_id)

    board = load_board(manager, feature, config, migration_id, in_progress)
    if board is None:
        raise TaskNotFound(task_id)
    if not any(t.id == task_id for t in board.all_tasks()):
        raise TaskNotFound(task_id)

    column = config.column_name(status)
    warning = None
    target = board.column_for(status)
    already_there = target is not None and any(t.id == task_id for t in target.tasks)
    violation = None if already_there else check_capacity(board, status)
    if violation:
        if config.wip_enforcement == WIP_BLOCK:
            raise WipLimitExceeded(violation.column, violation.current - 1, violation.limit)
        warning = f"WIP: '{violation.column}' now has {violation.current}/{violation.limit} items"
        logger.warning(f"[BOARD] {warning}")

    manager.set_task_status(feature, task_id, status)
    logger.info(f"[BOARD] moved {task_id} to '{column}'")
    return MoveResult(task_id=task_id, status=status, column=column, warning=warning)
