"""MoneyFlow: ledger propagation and recurring transactions for personal finance."""

from .domain import AccountRegistry
from .errors import (
    MoneyFlowError,
    RecordNotFoundError,
    StaleReferenceError,
    SyncError,
    TransactionValidationError,
)
from .services import LedgerSession, apply_transaction, process_due

__version__ = "0.1.0"

__all__ = [
    "AccountRegistry",
    "LedgerSession",
    "MoneyFlowError",
    "RecordNotFoundError",
    "StaleReferenceError",
    "SyncError",
    "TransactionValidationError",
    "apply_transaction",
    "process_due",
]
