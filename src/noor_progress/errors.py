from __future__ import annotations


class ProgressError(Exception):
    """Base class for failures raised by the progress engine."""


class NotFound(ProgressError):
    pass


class PermissionDenied(ProgressError):
    pass


class InvalidTransition(ProgressError):
    """Attempt to mutate an entity that is terminal or would move backwards."""


class InsufficientBalance(ProgressError):
    def __init__(self, child_id: int, balance: int, required: int) -> None:
        super().__init__(f"child {child_id} has {balance} points, {required} required")
        self.child_id = child_id
        self.balance = balance
        self.required = required


class InconsistentState(ProgressError):
    """Stored derived state disagrees with the ledger. Never auto-corrected."""

    def __init__(self, child_id: int, stored: int, expected: int) -> None:
        super().__init__(f"child {child_id} balance {stored} != ledger total {expected}")
        self.child_id = child_id
        self.stored = stored
        self.expected = expected


class TimezoneUnresolved(ProgressError):
    pass
