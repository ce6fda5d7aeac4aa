"""Caller-side transaction validation run before propagation."""

from __future__ import annotations

from typing import Optional

from ..domain.entities import PAYMENT_METHODS, Transaction, TransactionType
from ..domain.registry import REFERENCE_COLLECTIONS, AccountRegistry
from ..errors import TransactionValidationError

CREDIT_CARD_PAYMENT = "Credit Card Payment"
DEBT_PAYMENT = "Debt Payment"


def validate_transaction(
    transaction: Transaction, registry: Optional[AccountRegistry] = None
) -> list[str]:
    """Return human-readable problems with ``transaction`` (empty when valid).

    When ``registry`` is given, references are also checked for existence.
    """

    errors: list[str] = []
    try:
        txn_type = TransactionType(transaction.type)
    except ValueError:
        return [f"Unknown transaction type: {transaction.type!r}"]

    if transaction.amount is None or transaction.amount <= 0:
        errors.append("Amount must be greater than 0")

    if transaction.payment_method and transaction.payment_method not in PAYMENT_METHODS:
        errors.append(f"Unknown payment method: {transaction.payment_method}")

    if txn_type is TransactionType.EXPENSE:
        if not (transaction.fund_source_id or transaction.credit_card_id):
            errors.append("Fund source or credit card is required for expenses")
        if transaction.category == CREDIT_CARD_PAYMENT:
            if not transaction.credit_card_id:
                errors.append("Credit card selection is required for credit card payment")
            if not transaction.fund_source_id:
                errors.append("Fund source is required for credit card payment")
        if transaction.category == DEBT_PAYMENT:
            if not transaction.debt_id:
                errors.append("Debt selection is required for debt payment")
            if not transaction.fund_source_id:
                errors.append("Fund source is required for debt payment")

    if txn_type is TransactionType.DEBT and not (
        transaction.credit_card_id or transaction.loan_id or transaction.debt_id
    ):
        errors.append("Credit card, loan or debt is required for debt transactions")

    if registry is not None:
        for reference, account_id in transaction.references().items():
            if registry.find_by_id(REFERENCE_COLLECTIONS[reference], account_id) is None:
                errors.append(f"Unknown {reference.removesuffix('_id').replace('_', ' ')}: {account_id}")

    return errors


def ensure_valid(
    transaction: Transaction, registry: Optional[AccountRegistry] = None
) -> Transaction:
    """Raise :class:`TransactionValidationError` unless ``transaction`` is valid."""

    errors = validate_transaction(transaction, registry)
    if errors:
        raise TransactionValidationError(errors)
    return transaction
