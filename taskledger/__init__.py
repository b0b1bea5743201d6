"""taskledger - feature/migration task ledger with Kanban board sync."""

__version__ = "0.4.0"
