"""In-memory account registry scoped to a single user."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from .entities import Account, CreditCard, Debt, FundSource, Loan

FUND_SOURCES = "fund_sources"
CREDIT_CARDS = "credit_cards"
LOANS = "loans"
DEBTS = "debts"

ACCOUNT_COLLECTIONS = (FUND_SOURCES, CREDIT_CARDS, LOANS, DEBTS)

# Transaction reference field -> registry collection holding the referenced account.
REFERENCE_COLLECTIONS = {
    "fund_source_id": FUND_SOURCES,
    "credit_card_id": CREDIT_CARDS,
    "loan_id": LOANS,
    "debt_id": DEBTS,
}

_ACCOUNT_TYPES = {
    FUND_SOURCES: FundSource,
    CREDIT_CARDS: CreditCard,
    LOANS: Loan,
    DEBTS: Debt,
}


def collection_for(account: Account) -> str:
    """Return the registry collection name for an account instance."""

    for name, kind in _ACCOUNT_TYPES.items():
        if isinstance(account, kind):
            return name
    raise TypeError(f"Unsupported account type: {type(account).__name__}")


@dataclass
class AccountRegistry:
    """Fund sources, credit cards, loans and debts keyed by id."""

    user_id: str
    fund_sources: dict[str, FundSource] = field(default_factory=dict)
    credit_cards: dict[str, CreditCard] = field(default_factory=dict)
    loans: dict[str, Loan] = field(default_factory=dict)
    debts: dict[str, Debt] = field(default_factory=dict)

    def _collection(self, name: str) -> dict[str, Account]:
        if name not in ACCOUNT_COLLECTIONS:
            raise KeyError(f"Unknown account collection: {name}")
        return getattr(self, name)

    def find_by_id(self, collection: str, account_id: str) -> Optional[Account]:
        """Return the account with ``account_id`` or ``None`` when absent."""
        return self._collection(collection).get(account_id)

    def replace(self, collection: str, account: Account) -> None:
        """Store ``account`` under its id, replacing any previous version."""
        if account.user_id != self.user_id:
            raise ValueError(
                f"Account {account.id} belongs to {account.user_id}, not {self.user_id}"
            )
        self._collection(collection)[account.id] = account

    def add(self, account: Account) -> Account:
        self.replace(collection_for(account), account)
        return account

    def remove(self, collection: str, account_id: str) -> Optional[Account]:
        return self._collection(collection).pop(account_id, None)

    def accounts(self, collection: str) -> list[Account]:
        return list(self._collection(collection).values())

    def __iter__(self) -> Iterator[tuple[str, Account]]:
        for name in ACCOUNT_COLLECTIONS:
            for account in self._collection(name).values():
                yield name, account

    def __len__(self) -> int:
        return sum(len(self._collection(name)) for name in ACCOUNT_COLLECTIONS)
