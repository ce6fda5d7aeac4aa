"""In-memory ledger records.

These dataclasses are the working state of a session. They are mirrored to the
document store as JSON payloads (see :mod:`moneyflow.domain.serialization`),
so every field must be JSON-representable through pydantic.
"""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    DEBT = "debt"
    INVESTMENT = "investment"


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


PAYMENT_METHODS = frozenset(
    {"cash", "credit_card", "debit_card", "bank_transfer", "check", "other"}
)
LOAN_STATUSES = frozenset({"active", "paid_off", "defaulted", "in_grace_period", "paid"})
DEBT_TYPES = frozenset({"credit_card", "personal_loan", "student_loan", "mortgage", "other"})
RISK_LEVELS = ("very_low", "low", "medium", "high", "very_high")

ZERO = Decimal("0")


def new_id() -> str:
    """Return a fresh record identifier."""

    return uuid.uuid4().hex


def _now() -> dt.datetime:
    return dt.datetime.now()


@dataclass(frozen=True)
class Transaction:
    """A monetary event; replaced rather than mutated when edited."""

    user_id: str
    type: TransactionType
    amount: Decimal
    date: dt.date
    time: dt.time = dt.time(0, 0)
    category: str = ""
    details: str = ""
    from_account: Optional[str] = None
    payment_method: Optional[str] = None
    fund_source_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    loan_id: Optional[str] = None
    debt_id: Optional[str] = None
    recurring_transaction_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)

    @property
    def occurred_at(self) -> dt.datetime:
        """Combined date and time of the event."""
        return dt.datetime.combine(self.date, self.time)

    def references(self) -> dict[str, str]:
        """Return the populated account reference fields."""
        refs = {
            "fund_source_id": self.fund_source_id,
            "credit_card_id": self.credit_card_id,
            "loan_id": self.loan_id,
            "debt_id": self.debt_id,
        }
        return {name: value for name, value in refs.items() if value}


@dataclass
class FundSource:
    """A cash-holding account (bank, cash, digital wallet)."""

    user_id: str
    bank_name: str
    account_name: str
    account_type: str = "checking"
    current_balance: Decimal = ZERO
    monthly_flow: Decimal = ZERO
    last_updated: Optional[dt.datetime] = None
    transactions: list[Transaction] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)


@dataclass
class CreditCard:
    """A revolving-credit account; ``current_balance`` is the amount owed."""

    user_id: str
    name: str
    bank: str = ""
    limit: Decimal = ZERO
    current_balance: Decimal = ZERO
    apr: Decimal = ZERO
    due_date: Optional[dt.date] = None
    cut_off_date: Optional[dt.date] = None
    minimum_payment: Decimal = ZERO
    transactions: list[Transaction] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)

    @property
    def available_credit(self) -> Decimal:
        return self.limit - self.current_balance

    @property
    def utilization(self) -> Decimal:
        """Share of the limit in use, as a percentage."""
        if self.limit <= 0:
            return ZERO
        return (self.current_balance / self.limit * 100).quantize(Decimal("0.01"))


@dataclass
class Loan:
    """An amortizing liability."""

    user_id: str
    name: str
    lender: str = ""
    loan_type: str = "personal"
    original_amount: Decimal = ZERO
    balance: Decimal = ZERO
    current_balance: Decimal = ZERO
    interest_rate: Decimal = ZERO
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    monthly_payment: Decimal = ZERO
    payment_frequency: str = "monthly"
    status: str = "active"
    next_payment_date: Optional[dt.date] = None
    fund_source_id: Optional[str] = None
    transactions: list[Transaction] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)


@dataclass
class Debt:
    """A generic liability tracked independently of cards and loans."""

    user_id: str
    name: str
    amount: Decimal = ZERO
    balance: Decimal = ZERO
    interest_rate: Decimal = ZERO
    minimum_payment: Decimal = ZERO
    due_date: Optional[dt.date] = None
    debt_type: str = "other"
    transactions: list[Transaction] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)


@dataclass
class Investment:
    user_id: str
    name: str
    investment_type: str = "other"
    category: str = "other"
    amount: Decimal = ZERO
    purchase_price: Decimal = ZERO
    current_value: Decimal = ZERO
    quantity: Decimal = Decimal("1")
    purchase_date: Optional[dt.date] = None
    platform: str = ""
    risk_level: str = "medium"
    status: str = "active"
    expected_return: Decimal = ZERO
    maturity_date: Optional[dt.date] = None
    notes: str = ""
    fund_source_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)

    @property
    def cost_basis(self) -> Decimal:
        return self.purchase_price * self.quantity

    @property
    def market_value(self) -> Decimal:
        return self.current_value * self.quantity


@dataclass
class Budget:
    """Spending envelope for one category over a month or a year."""

    user_id: str
    category: str
    amount: Decimal
    spent: Decimal = ZERO
    period: str = "monthly"  # monthly | yearly
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.spent


@dataclass
class RecurringTransaction:
    """Schedule definition that spawns ordinary transactions when due."""

    user_id: str
    type: TransactionType
    amount: Decimal
    frequency: RecurringFrequency
    start_date: dt.datetime
    category: str = ""
    details: str = ""
    from_account: Optional[str] = None
    end_date: Optional[dt.datetime] = None
    last_processed: Optional[dt.datetime] = None
    fund_source_id: Optional[str] = None
    credit_card_id: Optional[str] = None
    loan_id: Optional[str] = None
    debt_id: Optional[str] = None
    active: bool = True
    id: str = field(default_factory=new_id)
    created_at: dt.datetime = field(default_factory=_now)
    updated_at: dt.datetime = field(default_factory=_now)


Account = FundSource | CreditCard | Loan | Debt
