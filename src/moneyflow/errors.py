"""Exception hierarchy for MoneyFlow."""

from __future__ import annotations


class MoneyFlowError(Exception):
    """Base class for all application errors."""


class TransactionValidationError(MoneyFlowError, ValueError):
    """Raised when a transaction fails caller-side validation."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid transaction")


class StaleReferenceError(MoneyFlowError, LookupError):
    """Raised when a transaction references accounts that no longer exist."""

    def __init__(self, missing):
        self.missing = list(missing)
        refs = ", ".join(f"{m.field}={m.account_id}" for m in self.missing)
        super().__init__(f"Transaction references unknown accounts: {refs}")


class RecordNotFoundError(MoneyFlowError, KeyError):
    """Raised when a session lookup targets an unknown record id."""

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id!r} not found")

    def __str__(self) -> str:  # KeyError quotes its message otherwise
        return self.args[0]


class SyncError(MoneyFlowError):
    """Raised by document stores when a mirror write fails."""
