from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the balance ledger."""


class InvalidInput(LedgerError, ValueError):
    """Rejected before any mutation; the balance vector is left untouched."""


class InvariantViolation(LedgerError):
    def __init__(self, message: str, *, residual: int | None = None) -> None:
        self.residual = residual
        if residual is not None:
            message = f"{message} (residual={residual})"
        super().__init__(message)


class ConcurrencyConflict(LedgerError):
    def __init__(self, *, group_id: str, expected_version: int, actual_version: int | None) -> None:
        self.group_id = group_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        message = (
            f"Concurrent update detected for group={group_id} "
            f"expected_version={expected_version} actual_version={actual_version}"
        )
        super().__init__(message)


class UnknownGroup(InvalidInput):
    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"No ledger exists for group={group_id}")


class UnknownExpense(InvalidInput):
    def __init__(self, expense_id: object) -> None:
        self.expense_id = expense_id
        super().__init__(f"No expense record exists for id={expense_id}")
