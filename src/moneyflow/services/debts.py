"""Debt payoff calculators (snowball and avalanche)."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from ..domain.registry import AccountRegistry


@dataclass(slots=True)
class DebtAccount:
    """Represents a liability input for payoff projections."""

    id: str
    name: str
    balance: float
    apr: float
    minimum_payment: float
    kind: str = "debt"  # debt | loan | credit_card


def debt_accounts_from(registry: AccountRegistry) -> list[DebtAccount]:
    """Collect every liability with an outstanding balance from the registry."""

    accounts: list[DebtAccount] = []
    for debt in registry.debts.values():
        if debt.balance > 0:
            accounts.append(
                DebtAccount(
                    id=debt.id,
                    name=debt.name,
                    balance=float(debt.balance),
                    apr=float(debt.interest_rate),
                    minimum_payment=float(debt.minimum_payment),
                )
            )
    for loan in registry.loans.values():
        if loan.current_balance > 0:
            accounts.append(
                DebtAccount(
                    id=loan.id,
                    name=loan.name,
                    balance=float(loan.current_balance),
                    apr=float(loan.interest_rate),
                    minimum_payment=float(loan.monthly_payment),
                    kind="loan",
                )
            )
    for card in registry.credit_cards.values():
        if card.current_balance > 0:
            accounts.append(
                DebtAccount(
                    id=card.id,
                    name=card.name,
                    balance=float(card.current_balance),
                    apr=float(card.apr),
                    minimum_payment=float(card.minimum_payment),
                    kind="credit_card",
                )
            )
    return accounts


def _next_month(value: date) -> date:
    month = value.month + 1
    year = value.year + (month - 1) // 12
    month = ((month - 1) % 12) + 1
    return value.replace(year=year, month=month, day=1)


def _calculate_schedule(
    *, debts: Iterable[DebtAccount], surplus: float, start: Optional[date] = None
) -> list[dict]:
    """Simulate month-by-month payments; surplus targets the first active debt."""
    debt_dicts: list[dict[str, Any]] = [asdict(d) for d in debts]
    payoff_schedule: list[dict] = []
    current_date = (start or date.today()).replace(day=1)
    rolled_minimums = 0.0  # freed minimum payments from debts already cleared

    previous_total_balance = sum(d["balance"] for d in debt_dicts)
    stagnant_periods = 0

    while any(d["balance"] > 0 for d in debt_dicts):
        extra_pool = surplus + rolled_minimums
        row = {"date": current_date.isoformat(), "payments": {}}

        for debt in debt_dicts:
            if debt["balance"] <= 0:
                continue

            monthly_interest = Decimal(str(debt["balance"])) * Decimal(str(debt["apr"])) / Decimal(1200)
            monthly_interest_float = float(
                monthly_interest.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            )

            payment = debt["minimum_payment"]
            if extra_pool > 0:
                payment += extra_pool
                extra_pool = 0.0

            # Every payment must reduce principal
            minimum_progress = monthly_interest_float + 1.0
            if payment < minimum_progress:
                payment = minimum_progress

            new_balance = debt["balance"] + monthly_interest_float - payment

            if new_balance <= 0:
                payment_to_apply = debt["balance"] + monthly_interest_float
                leftover = payment - payment_to_apply
                payment = payment_to_apply
                debt["balance"] = 0.0
                extra_pool += max(leftover, 0.0)
                rolled_minimums += debt["minimum_payment"]
            else:
                debt["balance"] = round(new_balance, 2)

            row["payments"][debt["id"]] = {
                "payment_amount": round(payment, 2),
                "interest_paid": monthly_interest_float,
                "remaining_balance": debt["balance"],
            }

        payoff_schedule.append(row)

        total_balance = sum(d["balance"] for d in debt_dicts if d["balance"] > 0)
        if total_balance >= previous_total_balance - 0.01:
            stagnant_periods += 1
        else:
            stagnant_periods = 0
        if stagnant_periods >= 3:
            raise ValueError("Payoff schedule did not converge; payments too low")
        previous_total_balance = total_balance
        current_date = _next_month(current_date)

    return payoff_schedule


def schedule_summary(schedule: list[dict]) -> tuple[str | None, float, int]:
    """Return (payoff_date_iso, total_interest, months)."""

    if not schedule:
        return None, 0.0, 0
    payoff_date = schedule[-1].get("date")
    total_interest = 0.0
    for entry in schedule:
        for p in entry.get("payments", {}).values():
            total_interest += float(p.get("interest_paid", 0.0) or 0.0)
    return str(payoff_date) if payoff_date else None, round(total_interest, 2), len(schedule)


def debt_payoff_dates(schedule: list[dict]) -> dict[str, str]:
    """Return the month each debt reaches zero, keyed by debt id."""

    payoff: dict[str, str] = {}
    for entry in schedule:
        for debt_id, p in entry.get("payments", {}).items():
            if debt_id not in payoff and p.get("remaining_balance", 0.0) <= 0:
                payoff[debt_id] = entry["date"]
    return payoff


def snowball_schedule(
    *, debts: Iterable[DebtAccount], surplus: float, start: Optional[date] = None
) -> list[dict]:
    """Return payoff schedule prioritizing smallest balances first."""
    sorted_debts = sorted(debts, key=lambda d: d.balance)
    return _calculate_schedule(debts=sorted_debts, surplus=surplus, start=start)


def avalanche_schedule(
    *, debts: Iterable[DebtAccount], surplus: float, start: Optional[date] = None
) -> list[dict]:
    """Return payoff schedule prioritizing highest APR first."""
    sorted_debts = sorted(debts, key=lambda d: d.apr, reverse=True)
    return _calculate_schedule(debts=sorted_debts, surplus=surplus, start=start)


def payoff_schedule(
    *,
    debts: Iterable[DebtAccount],
    strategy: str,
    surplus: float = 0.0,
    start: Optional[date] = None,
) -> list[dict]:
    """Compute the schedule for the requested strategy."""
    if strategy == "snowball":
        return snowball_schedule(debts=debts, surplus=surplus, start=start)
    if strategy == "avalanche":
        return avalanche_schedule(debts=debts, surplus=surplus, start=start)
    raise ValueError("Invalid debt payoff strategy.")
