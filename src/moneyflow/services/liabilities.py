"""Utilities for single-liability payment schedules and payments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ..domain.entities import CreditCard, Debt, Loan, Transaction, TransactionType


@dataclass(slots=True)
class PaymentProjection:
    """Represents a single projected payment for a liability."""

    due_date: date
    payment: float
    principal: float
    interest: float
    remaining_balance: float


def _liability_terms(liability: Loan | Debt | CreditCard) -> tuple[float, float, float, int]:
    """Return (balance, apr, minimum_payment, due_day) for any liability kind."""

    if isinstance(liability, Loan):
        due = liability.next_payment_date
        return (
            float(liability.current_balance),
            float(liability.interest_rate),
            float(liability.monthly_payment),
            due.day if due else 1,
        )
    if isinstance(liability, Debt):
        due = liability.due_date
        return (
            float(liability.balance),
            float(liability.interest_rate),
            float(liability.minimum_payment),
            due.day if due else 1,
        )
    due = liability.due_date
    return (
        float(liability.current_balance),
        float(liability.apr),
        float(liability.minimum_payment),
        due.day if due else 1,
    )


def _initial_due_date(*, today: date, due_day: int) -> date:
    """Return the first due date on or after *today*."""

    year = today.year
    month = today.month
    if today.day > due_day:
        month += 1
    year += (month - 1) // 12
    month = ((month - 1) % 12) + 1
    return date(year, month, due_day)


def _advance_due_date(current: date, due_day: int) -> date:
    """Return the due date for the following month."""

    month = current.month + 1
    year = current.year + (month - 1) // 12
    month = ((month - 1) % 12) + 1
    return date(year, month, due_day)


def _normalize_currency(amount: float) -> float:
    """Round to cents using half-up rounding."""

    return round(amount + 1e-9, 2)


def generate_payment_schedule(
    *,
    liability: Loan | Debt | CreditCard,
    months: int | None = None,
    today: date | None = None,
) -> list[PaymentProjection]:
    """Generate a simple amortization schedule for a liability.

    Interest is a fixed APR applied monthly and every row reduces the remaining
    balance. When ``months`` is ``None`` the schedule continues until the
    balance reaches zero; otherwise a preview capped at that many rows is
    returned. Due days past the 28th are pulled back to 28 so every month is
    valid.
    """

    balance, apr, minimum_payment, due_day = _liability_terms(liability)
    if balance <= 0:
        return []
    if months is not None and months <= 0:
        return []

    due_day = min(max(due_day, 1), 28)
    monthly_rate = max(apr, 0.0) / 100.0 / 12.0
    minimum_payment = max(minimum_payment, 0.0)

    schedule: list[PaymentProjection] = []
    next_due = _initial_due_date(today=today or date.today(), due_day=due_day)

    iterations = 0
    while balance > 0 and (months is None or iterations < months):
        iterations += 1

        interest = _normalize_currency(balance * monthly_rate)
        suggested_payment = max(minimum_payment, interest + 1.0)
        total_due = _normalize_currency(balance + interest)
        payment = _normalize_currency(min(suggested_payment, total_due))
        principal = _normalize_currency(payment - interest)

        balance = _normalize_currency(balance + interest - payment)
        if balance < 0.01:
            balance = 0.0

        schedule.append(
            PaymentProjection(
                due_date=next_due,
                payment=payment,
                principal=principal,
                interest=interest,
                remaining_balance=balance,
            )
        )
        next_due = _advance_due_date(next_due, due_day)

    return schedule


def build_payment_transaction(
    *,
    liability: Loan | Debt | CreditCard,
    amount: Decimal,
    fund_source_id: Optional[str] = None,
    when: Optional[datetime] = None,
) -> Transaction:
    """Construct a debt-type transaction paying down ``liability``.

    Paying a loan or debt from a fund source is recorded as an expense on that
    source so the cash leaves the account as well. Card payments are always
    ``debt`` transactions against the card alone: an expense would be treated
    as a new charge.
    """

    when = when or datetime.now()
    refs: dict[str, str] = {}
    if isinstance(liability, CreditCard):
        refs["credit_card_id"] = liability.id
        category = "Credit Card Payment"
    elif isinstance(liability, Loan):
        refs["loan_id"] = liability.id
        category = "Loan Payment"
    else:
        refs["debt_id"] = liability.id
        category = "Debt Payment"

    txn_type = TransactionType.DEBT
    if fund_source_id and not isinstance(liability, CreditCard):
        refs["fund_source_id"] = fund_source_id
        txn_type = TransactionType.EXPENSE

    return Transaction(
        user_id=liability.user_id,
        type=txn_type,
        amount=abs(Decimal(amount)),
        date=when.date(),
        time=when.time().replace(microsecond=0),
        category=category,
        details=f"Payment toward {liability.name}",
        **refs,
    )


__all__ = [
    "PaymentProjection",
    "build_payment_transaction",
    "generate_payment_schedule",
]
