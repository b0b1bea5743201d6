"""Migration lifecycle state machine using transitions library.

A migration only ever moves forward:

    pending --start--> in-progress --complete--> completed

There are no other transitions. Completed is terminal; nothing in the
ledger reopens a migration.

Usage:
    from taskledger.workflow.fsm import MigrationFSM

    fsm = MigrationFSM(migration)
    fsm.start()      # first task appended
    fsm.complete()   # all tasks done, stamps completed_at
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from taskledger.lib.models import (
    MIGRATION_COMPLETED,
    MIGRATION_IN_PROGRESS,
    MIGRATION_PENDING,
    Migration,
    format_timestamp,
)

logger = logging.getLogger(__name__)


STATES = [MIGRATION_PENDING, MIGRATION_IN_PROGRESS, MIGRATION_COMPLETED]

TRANSITIONS = [
    {"trigger": "start", "source": MIGRATION_PENDING, "dest": MIGRATION_IN_PROGRESS},
    {"trigger": "complete", "source": MIGRATION_IN_PROGRESS, "dest": MIGRATION_COMPLETED},
]


class InvalidTransition(Exception):
    """Raised when a trigger is fired from a state that doesn't allow it."""

    def __init__(self, migration_id: str, from_state: str, trigger: str):
        self.migration_id = migration_id
        self.from_state = from_state
        self.trigger = trigger
        super().__init__(
            f"Invalid transition: '{trigger}' from {from_state} (migration: {migration_id})"
        )


class MigrationFSM:
    """State machine for one migration's status.

    Wraps the transitions library:
    - Initial state comes from the Migration record
    - Every transition is written back to the record (status, completed_at)
    - Persisting the record is the caller's job (MigrationManager)
    """

    def __init__(self, migration: Migration, on_transition: Callable[[str, str, str], None] | None = None):
        self.migration = migration
        self.on_transition = on_transition

        initial = migration.status
        if initial not in STATES:
            logger.warning(f"[FSM] {migration.id}: Unknown status '{initial}', defaulting to 'pending'")
            initial = MIGRATION_PENDING

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.migration.status = to_state
        if to_state == MIGRATION_COMPLETED and not self.migration.completed_at:
            self.migration.completed_at = format_timestamp()

        logger.info(f"[FSM] migration {self.migration.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def fire(self, trigger: str) -> None:
        """Fire a trigger, translating library errors into InvalidTransition."""
        try:
            getattr(self, trigger)()
        except (MachineError, AttributeError) as e:
            raise InvalidTransition(self.migration.id, self.state, trigger) from e

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def ensure_started(self) -> bool:
        """Move pending -> in-progress. Returns True if a transition happened."""
        if self.state == MIGRATION_PENDING:
            self.fire("start")
            return True
        return False

    def ensure_completed(self) -> bool:
        """Move to completed, passing through in-progress if needed.

        Returns True if a transition happened, False if already completed.
        """
        if self.state == MIGRATION_COMPLETED:
            return False
        self.ensure_started()
        self.fire("complete")
        return True
