"""Ledger-specific helpers for filtering, pagination and summaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from ..domain.entities import ZERO, Transaction, TransactionType


@dataclass
class LedgerFilters:
    """Filters applied to ledger listings."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category: Optional[str] = None
    text: Optional[str] = None
    txn_type: str = "all"  # income | expense | debt | investment | all
    account_id: Optional[str] = None


@dataclass
class Pagination:
    """Simple pagination parameters."""

    page: int = 1
    per_page: int = 25


def normalize_category_value(raw_value: Optional[str]) -> Optional[str]:
    """Return a nullable category label, treating falsy/'all' as None."""

    if not raw_value:
        return None
    value = raw_value.strip()
    if value.lower() in {"all", "none", "any", ""}:
        return None
    return value


def _matches(txn: Transaction, filters: LedgerFilters) -> bool:
    if filters.start_date and txn.date < filters.start_date:
        return False
    if filters.end_date and txn.date > filters.end_date:
        return False
    if filters.category and txn.category.lower() != filters.category.lower():
        return False
    if filters.txn_type != "all" and TransactionType(txn.type).value != filters.txn_type:
        return False
    if filters.account_id and filters.account_id not in txn.references().values():
        return False
    if filters.text:
        needle = filters.text.lower()
        haystack = f"{txn.details} {txn.category} {txn.from_account or ''}".lower()
        if needle not in haystack:
            return False
    return True


def filtered_transactions(
    transactions: Iterable[Transaction], filters: LedgerFilters
) -> list[Transaction]:
    """Apply filters and sort newest first."""

    txs = [t for t in transactions if _matches(t, filters)]
    return sorted(txs, key=lambda t: t.occurred_at, reverse=True)


def paginate_transactions(
    txs: list[Transaction], pagination: Pagination
) -> tuple[list[Transaction], int]:
    """Return the current page of transactions and total count."""

    total = len(txs)
    page = max(1, pagination.page)
    per_page = max(1, pagination.per_page)
    start = (page - 1) * per_page
    end = start + per_page
    return txs[start:end], total


def total_by_type(transactions: Iterable[Transaction], txn_type: TransactionType) -> Decimal:
    return sum((t.amount for t in transactions if t.type == txn_type), ZERO)


def compute_summary(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    """Compute income, expenses, debt payments and net totals."""

    txs = list(transactions)
    income = total_by_type(txs, TransactionType.INCOME)
    expenses = total_by_type(txs, TransactionType.EXPENSE)
    debt = total_by_type(txs, TransactionType.DEBT)
    investment = total_by_type(txs, TransactionType.INVESTMENT)
    return {
        "income": income,
        "expenses": expenses,
        "debt": debt,
        "investment": investment,
        "net": income - expenses,
    }


def compute_spending_by_category(transactions: Iterable[Transaction]) -> list[dict[str, object]]:
    """Roll up expense totals by category label, largest first."""

    totals: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.type != TransactionType.EXPENSE:
            continue
        name = tx.category or "Uncategorized"
        totals[name] = totals.get(name, ZERO) + tx.amount

    breakdown = [{"name": name, "amount": total} for name, total in totals.items()]
    breakdown.sort(key=lambda entry: entry["amount"], reverse=True)
    return breakdown


def top_categories(
    breakdown: Iterable[dict[str, object]], limit: int = 5
) -> list[dict[str, object]]:
    """Return the top N categories from a breakdown list."""

    items = list(breakdown)
    return items[:limit]
