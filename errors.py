from typing import Optional


class LedgerError(Exception):
    pass


class ValidationError(LedgerError, ValueError):
    """Malformed input: non-positive amount, missing or conflicting fields."""


class NotFoundError(LedgerError, ValueError):
    """A transaction, expense, account or card is missing or owned by another user."""


class StoreTransactionError(LedgerError):
    """The atomic unit failed to commit and was rolled back."""


class RecurrenceItemError(LedgerError):
    def __init__(
        self, table: str, parent_id: str, cause: Optional[BaseException] = None
    ):
        self.table = table
        self.parent_id = parent_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to materialize recurring {table} {parent_id}{detail}")
