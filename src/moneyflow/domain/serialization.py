"""Record <-> JSON payload conversion for the document mirror."""

from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from .entities import (
    Budget,
    CreditCard,
    Debt,
    FundSource,
    Investment,
    Loan,
    RecurringTransaction,
    Transaction,
)

TRANSACTIONS = "transactions"
INVESTMENTS = "investments"
BUDGETS = "budgets"
RECURRING_TRANSACTIONS = "recurring_transactions"

RECORD_TYPES: dict[str, type] = {
    TRANSACTIONS: Transaction,
    "fund_sources": FundSource,
    "credit_cards": CreditCard,
    "loans": Loan,
    "debts": Debt,
    INVESTMENTS: Investment,
    BUDGETS: Budget,
    RECURRING_TRANSACTIONS: RecurringTransaction,
}

_ADAPTERS: dict[str, TypeAdapter] = {}


def _adapter(collection: str) -> TypeAdapter:
    try:
        record_type = RECORD_TYPES[collection]
    except KeyError as exc:
        raise KeyError(f"Unknown collection: {collection}") from exc
    adapter = _ADAPTERS.get(collection)
    if adapter is None:
        adapter = TypeAdapter(record_type)
        _ADAPTERS[collection] = adapter
    return adapter


def to_payload(collection: str, record: Any) -> dict[str, Any]:
    """Dump a record to JSON-compatible primitives (Decimals become strings)."""

    return _adapter(collection).dump_python(record, mode="json")


def from_payload(collection: str, payload: dict[str, Any]) -> Any:
    """Rebuild a record from a payload produced by :func:`to_payload`."""

    return _adapter(collection).validate_python(payload)
