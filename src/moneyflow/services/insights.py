"""Derived analytics: savings rate, spending habits, debt and portfolio views."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from ..domain.entities import (
    ZERO,
    CreditCard,
    Debt,
    FundSource,
    Investment,
    Transaction,
    TransactionType,
)

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
CENT = Decimal("0.01")


def _pct(part: Decimal, whole: Decimal) -> Optional[Decimal]:
    if whole == 0:
        return None
    return (part / whole * 100).quantize(CENT)


@dataclass(slots=True)
class MonthlySavings:
    month: str  # YYYY-MM
    income: Decimal
    expenses: Decimal

    @property
    def savings(self) -> Decimal:
        return self.income - self.expenses

    @property
    def savings_rate(self) -> Optional[Decimal]:
        """Savings as a percentage of income; ``None`` for months without income."""
        return _pct(self.savings, self.income)


def monthly_savings(
    transactions: Iterable[Transaction], *, now: datetime, months: int = 12
) -> list[MonthlySavings]:
    """Income vs expenses per calendar month over the trailing ``months``.

    Only income and expense transactions count; months are returned oldest
    first and months without activity are omitted.
    """

    cutoff = now.date().replace(day=1) - relativedelta(months=months - 1)
    buckets: dict[str, MonthlySavings] = {}
    for txn in transactions:
        if txn.date < cutoff or txn.date > now.date():
            continue
        if txn.type not in (TransactionType.INCOME, TransactionType.EXPENSE):
            continue
        key = txn.date.strftime("%Y-%m")
        bucket = buckets.setdefault(key, MonthlySavings(month=key, income=ZERO, expenses=ZERO))
        if txn.type == TransactionType.INCOME:
            bucket.income += txn.amount
        else:
            bucket.expenses += txn.amount
    return [buckets[key] for key in sorted(buckets)]


@dataclass(slots=True)
class SavingsMetrics:
    total_savings: Decimal
    average_monthly_savings: Decimal
    average_savings_rate: Optional[Decimal]
    months_to_double: Optional[Decimal]


def savings_metrics(
    fund_sources: Iterable[FundSource], history: list[MonthlySavings]
) -> SavingsMetrics:
    """Summarize balances and the last three months of savings."""

    total = sum((s.current_balance for s in fund_sources), ZERO)
    recent = history[-3:]
    if recent:
        average = (sum((m.savings for m in recent), ZERO) / len(recent)).quantize(CENT)
    else:
        average = ZERO
    rates = [m.savings_rate for m in recent if m.savings_rate is not None]
    average_rate = (sum(rates, ZERO) / len(rates)).quantize(CENT) if rates else None
    months_to_double = (total / average).quantize(CENT) if average > 0 else None
    return SavingsMetrics(
        total_savings=total,
        average_monthly_savings=average,
        average_savings_rate=average_rate,
        months_to_double=months_to_double,
    )


@dataclass(slots=True)
class CategoryPattern:
    category: str
    amount: Decimal
    frequency: int

    @property
    def average_amount(self) -> Decimal:
        return (self.amount / self.frequency).quantize(CENT)


@dataclass
class SpendingHabits:
    by_weekday: dict[str, Decimal]
    by_hour: dict[int, Decimal]
    categories: list[CategoryPattern]
    impulse_threshold: Optional[Decimal] = None
    impulse_transactions: list[Transaction] = field(default_factory=list)

    @property
    def impulse_total(self) -> Decimal:
        return sum((t.amount for t in self.impulse_transactions), ZERO)


def spending_habits(transactions: Iterable[Transaction]) -> SpendingHabits:
    """Break expenses down by weekday, hour and category; flag impulse spends.

    Impulse spending is any expense strictly above the 90th-percentile amount.
    """

    expenses = [t for t in transactions if t.type == TransactionType.EXPENSE]

    by_weekday = {day: ZERO for day in WEEKDAYS}
    by_hour = {hour: ZERO for hour in range(24)}
    patterns: dict[str, CategoryPattern] = {}
    for txn in expenses:
        by_weekday[WEEKDAYS[txn.date.weekday()]] += txn.amount
        by_hour[txn.time.hour] += txn.amount
        name = txn.category or "Uncategorized"
        pattern = patterns.setdefault(name, CategoryPattern(category=name, amount=ZERO, frequency=0))
        pattern.amount += txn.amount
        pattern.frequency += 1

    habits = SpendingHabits(
        by_weekday=by_weekday,
        by_hour=by_hour,
        categories=sorted(patterns.values(), key=lambda p: p.amount, reverse=True),
    )
    if expenses:
        amounts = sorted(t.amount for t in expenses)
        threshold = amounts[min(int(len(amounts) * 0.9), len(amounts) - 1)]
        habits.impulse_threshold = threshold
        habits.impulse_transactions = [t for t in expenses if t.amount > threshold]
    return habits


@dataclass(slots=True)
class DebtOverview:
    total_debt: Decimal
    total_original: Decimal
    payments_this_month: Decimal
    recent_payments: list[Transaction]

    @property
    def total_paid_off(self) -> Decimal:
        return self.total_original - self.total_debt

    @property
    def percent_paid_off(self) -> Decimal:
        return _pct(self.total_paid_off, self.total_original) or ZERO


def debt_overview(
    debts: Iterable[Debt], transactions: Iterable[Transaction], *, now: datetime, recent: int = 5
) -> DebtOverview:
    """Totals across generic debts plus debt-type payment activity."""

    debt_list = list(debts)
    payments = sorted(
        (t for t in transactions if t.type == TransactionType.DEBT),
        key=lambda t: t.occurred_at,
        reverse=True,
    )
    month_start = now.date().replace(day=1)
    return DebtOverview(
        total_debt=sum((d.balance for d in debt_list), ZERO),
        total_original=sum((d.amount for d in debt_list), ZERO),
        payments_this_month=sum(
            (t.amount for t in payments if month_start <= t.date <= now.date()), ZERO
        ),
        recent_payments=payments[:recent],
    )


def credit_utilization(cards: Iterable[CreditCard]) -> dict[str, object]:
    """Aggregate balance, limit and utilization across cards."""

    card_list = list(cards)
    balance = sum((c.current_balance for c in card_list), ZERO)
    limit = sum((c.limit for c in card_list), ZERO)
    return {
        "balance": balance,
        "limit": limit,
        "available": limit - balance,
        "utilization": _pct(balance, limit) or ZERO,
        "cards": {c.id: c.utilization for c in card_list},
    }


@dataclass(slots=True)
class AllocationSlice:
    name: str
    value: Decimal
    cost: Decimal

    @property
    def gain(self) -> Decimal:
        return self.value - self.cost


@dataclass
class PortfolioDistribution:
    total_invested: Decimal
    current_value: Decimal
    by_category: list[AllocationSlice]
    by_risk: list[AllocationSlice]

    @property
    def total_gain(self) -> Decimal:
        return self.current_value - self.total_invested

    @property
    def percent_gain(self) -> Optional[Decimal]:
        return _pct(self.total_gain, self.total_invested)


def _slices(investments: list[Investment], key: str) -> list[AllocationSlice]:
    slices: dict[str, AllocationSlice] = {}
    for inv in investments:
        name = getattr(inv, key)
        entry = slices.setdefault(name, AllocationSlice(name=name, value=ZERO, cost=ZERO))
        entry.value += inv.market_value
        entry.cost += inv.cost_basis
    return sorted(slices.values(), key=lambda s: s.value, reverse=True)


def portfolio_distribution(investments: Iterable[Investment]) -> PortfolioDistribution:
    """Value and gain of active holdings grouped by category and risk level."""

    active = [inv for inv in investments if inv.status != "sold"]
    return PortfolioDistribution(
        total_invested=sum((inv.cost_basis for inv in active), ZERO),
        current_value=sum((inv.market_value for inv in active), ZERO),
        by_category=_slices(active, "category"),
        by_risk=_slices(active, "risk_level"),
    )
