"""Budgeting domain services."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable

from ..domain.entities import ZERO, Budget, Transaction, TransactionType


@dataclass(slots=True)
class BudgetVariance:
    """Lightweight DTO for reporting variance."""

    category: str
    planned: Decimal
    actual: Decimal

    @property
    def delta(self) -> Decimal:
        return self.actual - self.planned

    @property
    def over_budget(self) -> bool:
        return self.actual > self.planned


def period_bounds(period: str, today: date) -> tuple[date, date]:
    """Return the inclusive [start, end] dates of the budget period containing ``today``."""

    if period == "yearly":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if period == "monthly":
        start = today.replace(day=1)
        if today.month == 12:
            next_start = date(today.year + 1, 1, 1)
        else:
            next_start = date(today.year, today.month + 1, 1)
        return start, date.fromordinal(next_start.toordinal() - 1)
    raise ValueError(f"Unknown budget period: {period}")


def spent_in_period(
    budget: Budget, transactions: Iterable[Transaction], today: date
) -> Decimal:
    """Sum expenses in the budget's category over its current period."""

    start, end = period_bounds(budget.period, today)
    category = budget.category.strip().lower()
    return sum(
        (
            t.amount
            for t in transactions
            if t.type == TransactionType.EXPENSE
            and t.category.strip().lower() == category
            and start <= t.date <= end
        ),
        ZERO,
    )


def refresh_spent(
    budgets: Iterable[Budget], transactions: Iterable[Transaction], now: datetime
) -> list[Budget]:
    """Return budgets whose ``spent`` changed, with the recomputed value."""

    txs = list(transactions)
    changed: list[Budget] = []
    for budget in budgets:
        spent = spent_in_period(budget, txs, now.date())
        if spent != budget.spent:
            changed.append(replace(budget, spent=spent, updated_at=now))
    return changed


def compute_variances(*, budgets: Iterable[Budget]) -> list[BudgetVariance]:
    """Compose budget vs actual variances for display, sorted by category."""

    variances = [
        BudgetVariance(category=b.category, planned=b.amount, actual=b.spent) for b in budgets
    ]
    variances.sort(key=lambda v: v.category.lower())
    return variances


def rolling_cash_flow(*, transactions: Iterable[Transaction]) -> list[Decimal]:
    """Return running cashflow totals by day (cumulative income minus expense)."""

    daily: dict[date, Decimal] = {}
    for txn in transactions:
        if txn.type == TransactionType.INCOME:
            signed = txn.amount
        elif txn.type == TransactionType.EXPENSE:
            signed = -txn.amount
        else:
            continue
        daily[txn.date] = daily.get(txn.date, ZERO) + signed

    running_total = ZERO
    rolling_values: list[Decimal] = []
    for day in sorted(daily):
        running_total += daily[day]
        rolling_values.append(running_total)
    return rolling_values
