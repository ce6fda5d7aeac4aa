"""Transaction side-effect propagation onto referenced accounts.

Balance rules, per populated reference:

==============  ==========  ==================================
reference       type        effect on the account balance
==============  ==========  ==================================
fund_source_id  income      ``+ amount``
fund_source_id  expense     ``- amount``
credit_card_id  expense     ``+ amount`` (charge)
credit_card_id  debt        ``- amount`` (payment)
loan_id         any         ``- amount``
debt_id         any         ``- amount``
==============  ==========  ==================================

Any other combination records the transaction in the account history without
touching the balance. Rules are independent: a transaction carrying two
references updates both accounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from ..domain.entities import (
    ZERO,
    Account,
    CreditCard,
    Debt,
    FundSource,
    Loan,
    Transaction,
    TransactionType,
)
from ..domain.registry import REFERENCE_COLLECTIONS, AccountRegistry
from ..errors import StaleReferenceError
from ..logging_config import get_logger
from .sync import DirtyRecord

logger = get_logger(__name__)

DEFAULT_WINDOW_DAYS = 30


@dataclass(frozen=True)
class ReferenceNotFound:
    """A transaction reference that points at no account in the registry."""

    field: str
    account_id: str


@dataclass
class PropagationResult:
    """Registry after propagation plus the records that changed."""

    registry: AccountRegistry
    dirty: list[DirtyRecord] = field(default_factory=list)
    missing: list[ReferenceNotFound] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing

    def raise_for_missing(self) -> "PropagationResult":
        """Raise :class:`StaleReferenceError` when any reference was skipped."""
        if self.missing:
            raise StaleReferenceError(self.missing)
        return self


def missing_references(
    transaction: Transaction, registry: AccountRegistry
) -> list[ReferenceNotFound]:
    """References of ``transaction`` that resolve to no account in ``registry``."""

    return [
        ReferenceNotFound(field=reference, account_id=account_id)
        for reference, account_id in transaction.references().items()
        if registry.find_by_id(REFERENCE_COLLECTIONS[reference], account_id) is None
    ]


def balance_delta(reference: str, txn_type: TransactionType, amount: Decimal) -> Optional[Decimal]:
    """Return the signed balance change for one reference, or ``None``."""

    txn_type = TransactionType(txn_type)
    if reference == "fund_source_id":
        if txn_type is TransactionType.INCOME:
            return amount
        if txn_type is TransactionType.EXPENSE:
            return -amount
        return None
    if reference == "credit_card_id":
        if txn_type is TransactionType.EXPENSE:
            return amount
        if txn_type is TransactionType.DEBT:
            return -amount
        return None
    if reference in ("loan_id", "debt_id"):
        return -amount
    raise KeyError(f"Unknown reference field: {reference}")


def monthly_flow(
    transactions: Iterable[Transaction],
    *,
    now: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Decimal:
    """Income minus expense for transactions dated within the trailing window.

    The window covers calendar dates ``[now - window_days, now]`` inclusive;
    future-dated entries are ignored.
    """

    end = now.date()
    start = end - timedelta(days=window_days)
    total = ZERO
    for txn in transactions:
        if not start <= txn.date <= end:
            continue
        if txn.type == TransactionType.INCOME:
            total += txn.amount
        elif txn.type == TransactionType.EXPENSE:
            total -= txn.amount
    return total


def _with_balance(account: Account, delta: Optional[Decimal]) -> Account:
    if delta is None:
        return account
    if isinstance(account, (FundSource, CreditCard)):
        return replace(account, current_balance=account.current_balance + delta)
    if isinstance(account, Loan):
        return replace(
            account,
            balance=account.balance + delta,
            current_balance=account.current_balance + delta,
        )
    if isinstance(account, Debt):
        return replace(account, balance=account.balance + delta)
    raise TypeError(f"Unsupported account type: {type(account).__name__}")


def _touch(account: Account, history: list[Transaction], now: datetime, window_days: int) -> Account:
    changes: dict = {"transactions": history, "updated_at": now}
    if isinstance(account, FundSource):
        changes["monthly_flow"] = monthly_flow(history, now=now, window_days=window_days)
        changes["last_updated"] = now
    return replace(account, **changes)


def _propagate(
    transaction: Transaction,
    registry: AccountRegistry,
    *,
    reverse: bool,
    now: Optional[datetime],
    window_days: int,
) -> PropagationResult:
    now = now or datetime.now()
    result = PropagationResult(registry=registry)

    for reference, account_id in transaction.references().items():
        collection = REFERENCE_COLLECTIONS[reference]
        account = registry.find_by_id(collection, account_id)
        if account is None:
            logger.warning(
                "Transaction references unknown account",
                extra={
                    "transaction_id": transaction.id,
                    "reference": reference,
                    "account_id": account_id,
                },
            )
            result.missing.append(ReferenceNotFound(field=reference, account_id=account_id))
            continue

        delta = balance_delta(reference, transaction.type, transaction.amount)
        if reverse:
            # Only undo what was applied; the reference may have been skipped.
            if not any(t.id == transaction.id for t in account.transactions):
                logger.debug(
                    "Transaction not in account history; nothing to reverse",
                    extra={"transaction_id": transaction.id, "account_id": account_id},
                )
                continue
            delta = -delta if delta is not None else None
            history = [t for t in account.transactions if t.id != transaction.id]
        else:
            history = [*account.transactions, transaction]

        updated = _touch(_with_balance(account, delta), history, now, window_days)
        registry.replace(collection, updated)
        result.dirty.append(DirtyRecord(collection=collection, record=updated))

    logger.debug(
        "Transaction reversed" if reverse else "Transaction applied",
        extra={
            "transaction_id": transaction.id,
            "type": TransactionType(transaction.type).value,
            "updated": [d.record_id for d in result.dirty],
            "missing": len(result.missing),
        },
    )
    return result


def apply_transaction(
    transaction: Transaction,
    registry: AccountRegistry,
    *,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> PropagationResult:
    """Apply ``transaction`` to every account it references.

    Missing references are skipped and reported on the result; the engine
    itself never raises for them.
    """

    return _propagate(transaction, registry, reverse=False, now=now, window_days=window_days)


def reverse_transaction(
    transaction: Transaction,
    registry: AccountRegistry,
    *,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> PropagationResult:
    """Undo the balance effect of ``transaction`` and drop it from histories."""

    return _propagate(transaction, registry, reverse=True, now=now, window_days=window_days)


def refresh_monthly_flows(
    registry: AccountRegistry,
    *,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[DirtyRecord]:
    """Recompute ``monthly_flow`` for every fund source; return those that moved."""

    now = now or datetime.now()
    dirty: list[DirtyRecord] = []
    for source in registry.accounts("fund_sources"):
        flow = monthly_flow(source.transactions, now=now, window_days=window_days)
        if flow != source.monthly_flow:
            updated = replace(source, monthly_flow=flow)
            registry.replace("fund_sources", updated)
            dirty.append(DirtyRecord(collection="fund_sources", record=updated))
    return dirty
