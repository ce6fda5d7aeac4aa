"""Domain records, registry and serialization."""

from .entities import (
    Budget,
    CreditCard,
    Debt,
    FundSource,
    Investment,
    Loan,
    RecurringFrequency,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from .registry import AccountRegistry

__all__ = [
    "AccountRegistry",
    "Budget",
    "CreditCard",
    "Debt",
    "FundSource",
    "Investment",
    "Loan",
    "RecurringFrequency",
    "RecurringTransaction",
    "Transaction",
    "TransactionType",
]
