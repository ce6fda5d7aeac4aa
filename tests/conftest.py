"""Pytest configuration and shared fixtures for MoneyFlow tests.

Provides a throwaway SQLite mirror, account/transaction factories and an
in-memory document store so services can be tested without real storage.
"""

from __future__ import annotations

import logging
import tempfile
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pytest
from sqlmodel import create_engine

from moneyflow.domain.entities import (
    CreditCard,
    Debt,
    FundSource,
    Loan,
    RecurringFrequency,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from moneyflow.domain.registry import AccountRegistry
from moneyflow.infra.database import create_session_factory, init_database
from moneyflow.infra.repositories import SQLModelDocumentRepository
from moneyflow.logging_config import ROOT_LOGGER_NAME
from moneyflow.services.ledger_session import LedgerSession
from moneyflow.services.locks import UserLocks

USER_ID = "user-1"
NOW = datetime(2024, 3, 15, 12, 0)


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    """Keep every config-driven path (database, logs) inside the test tmp dir."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("MONEYFLOW_DATA_DIR", str(data_dir))
    monkeypatch.delenv("MONEYFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("MONEYFLOW_CURRENCY", raising=False)
    return data_dir


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Drop handlers installed by setup_logging so they never outlive a test."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated temp-file SQLite database for each test."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    init_database(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def document_repo(session_factory):
    return SQLModelDocumentRepository(session_factory)


class FakeDocumentStore:
    """In-memory ``DocumentStore``; can be told to fail the next N writes."""

    def __init__(self, fail_times: int = 0):
        self.documents: dict[tuple[str, str], dict[str, dict]] = {}
        self.fail_times = fail_times
        self.calls = 0

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("mirror unavailable")

    def mirror(self, user_id, collection, records):
        self._maybe_fail()
        bucket = self.documents.setdefault((user_id, collection), {})
        for payload in records:
            bucket[payload["id"]] = payload

    def delete(self, user_id, collection, record_ids):
        self._maybe_fail()
        bucket = self.documents.setdefault((user_id, collection), {})
        for record_id in record_ids:
            bucket.pop(record_id, None)

    def load(self, user_id, collection):
        return list(self.documents.get((user_id, collection), {}).values())


@pytest.fixture
def fake_store():
    return FakeDocumentStore()


@pytest.fixture
def store_factory():
    """Build a fake store that fails its first ``fail_times`` writes."""
    return FakeDocumentStore


# =============================================================================
# Domain Factories
# =============================================================================


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fund_source_factory(user_id):
    def factory(**kwargs) -> FundSource:
        defaults = {
            "user_id": user_id,
            "bank_name": "Test Bank",
            "account_name": "Checking",
            "current_balance": Decimal("1000"),
        }
        defaults.update(kwargs)
        return FundSource(**defaults)

    return factory


@pytest.fixture
def credit_card_factory(user_id):
    def factory(**kwargs) -> CreditCard:
        defaults = {
            "user_id": user_id,
            "name": "Visa",
            "bank": "Test Bank",
            "limit": Decimal("5000"),
            "current_balance": Decimal("0"),
            "apr": Decimal("24"),
            "minimum_payment": Decimal("35"),
            "due_date": date(2024, 4, 10),
        }
        defaults.update(kwargs)
        return CreditCard(**defaults)

    return factory


@pytest.fixture
def loan_factory(user_id):
    def factory(**kwargs) -> Loan:
        defaults = {
            "user_id": user_id,
            "name": "Car Loan",
            "lender": "Auto Credit",
            "original_amount": Decimal("12000"),
            "balance": Decimal("8000"),
            "current_balance": Decimal("8000"),
            "interest_rate": Decimal("6"),
            "monthly_payment": Decimal("350"),
            "next_payment_date": date(2024, 4, 5),
        }
        defaults.update(kwargs)
        return Loan(**defaults)

    return factory


@pytest.fixture
def debt_factory(user_id):
    def factory(**kwargs) -> Debt:
        defaults = {
            "user_id": user_id,
            "name": "Family Loan",
            "amount": Decimal("2000"),
            "balance": Decimal("1500"),
            "interest_rate": Decimal("0"),
            "minimum_payment": Decimal("100"),
        }
        defaults.update(kwargs)
        return Debt(**defaults)

    return factory


@pytest.fixture
def transaction_factory(user_id):
    def factory(**kwargs) -> Transaction:
        defaults = {
            "user_id": user_id,
            "type": TransactionType.EXPENSE,
            "amount": Decimal("10"),
            "date": NOW.date(),
            "category": "Groceries",
            "details": "Test transaction",
        }
        defaults.update(kwargs)
        return Transaction(**defaults)

    return factory


@pytest.fixture
def recurring_factory(user_id):
    def factory(**kwargs) -> RecurringTransaction:
        defaults = {
            "user_id": user_id,
            "type": TransactionType.EXPENSE,
            "amount": Decimal("15"),
            "frequency": RecurringFrequency.MONTHLY,
            "start_date": datetime(2024, 1, 1),
            "category": "Subscriptions",
            "details": "Streaming",
        }
        defaults.update(kwargs)
        return RecurringTransaction(**defaults)

    return factory


@pytest.fixture
def registry(user_id):
    return AccountRegistry(user_id=user_id)


@pytest.fixture
def ledger(user_id, now):
    """A session with its own lock registry and a frozen clock."""
    return LedgerSession(user_id, locks=UserLocks(), clock=lambda: now)
