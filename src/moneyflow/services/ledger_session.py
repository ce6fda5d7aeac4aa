"""Per-user ledger service: CRUD, propagation and outbox hand-off.

A :class:`LedgerSession` owns one user's working state (account registry,
transaction ledger, investments, budgets and recurring templates). Every
mutation goes through it so balance side effects and the outbox stay
consistent; storage is never touched here, only queued.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from ..domain.entities import Budget, Investment, RecurringTransaction, Transaction
from ..domain.registry import ACCOUNT_COLLECTIONS, AccountRegistry, collection_for
from ..domain.repositories import DocumentStore
from ..domain.serialization import (
    BUDGETS,
    INVESTMENTS,
    RECURRING_TRANSACTIONS,
    TRANSACTIONS,
    from_payload,
)
from ..errors import RecordNotFoundError, StaleReferenceError
from ..logging_config import get_logger
from . import budgeting, propagation, recurring
from .ledger_service import LedgerFilters, filtered_transactions
from .locks import UserLocks, default_locks
from .sync import DirtyRecord, FlushReport, Outbox, OutboxFlusher
from .validation import ensure_valid, validate_transaction

logger = get_logger(__name__)

_PROTECTED_FIELDS = frozenset({"id", "user_id", "transactions", "created_at"})


class LedgerSession:
    """Explicit replacement for a global finance store, scoped to one user."""

    def __init__(
        self,
        user_id: str,
        *,
        registry: Optional[AccountRegistry] = None,
        window_days: int = propagation.DEFAULT_WINDOW_DAYS,
        catch_up: bool = False,
        locks: Optional[UserLocks] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.user_id = user_id
        self.registry = registry if registry is not None else AccountRegistry(user_id=user_id)
        self.window_days = window_days
        self.catch_up = catch_up
        self.outbox = Outbox(user_id)
        self._clock = clock
        self._lock = (locks if locks is not None else default_locks).for_user(user_id)
        self._records: dict[str, dict[str, Any]] = {
            TRANSACTIONS: {},
            INVESTMENTS: {},
            BUDGETS: {},
            RECURRING_TRANSACTIONS: {},
        }

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, store: DocumentStore, user_id: str, **kwargs) -> "LedgerSession":
        """Rebuild a session from the documents mirrored for ``user_id``."""

        session = cls(user_id, **kwargs)
        for collection in ACCOUNT_COLLECTIONS:
            for payload in store.load(user_id, collection):
                session.registry.replace(collection, from_payload(collection, payload))
        for collection, records in session._records.items():
            for payload in store.load(user_id, collection):
                record = from_payload(collection, payload)
                records[record.id] = record
        logger.info(
            "Ledger session loaded",
            extra={
                "user_id": user_id,
                "accounts": len(session.registry),
                "transactions": len(session._records[TRANSACTIONS]),
            },
        )
        return session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self._clock()

    def _check_owner(self, record: Any) -> None:
        if record.user_id != self.user_id:
            raise ValueError(f"Record {record.id} belongs to another user")

    def _get(self, collection: str, record_id: str) -> Any:
        if collection in ACCOUNT_COLLECTIONS:
            record = self.registry.find_by_id(collection, record_id)
        else:
            record = self._records[collection].get(record_id)
        if record is None:
            raise RecordNotFoundError(collection, record_id)
        return record

    def _ensure_references(self, transaction: Transaction) -> None:
        missing = propagation.missing_references(transaction, self.registry)
        if missing:
            raise StaleReferenceError(missing)

    def _changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        blocked = _PROTECTED_FIELDS.intersection(changes)
        if blocked:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(blocked))}")
        return changes

    def _after_ledger_change(self, result: propagation.PropagationResult, now: datetime) -> None:
        self.outbox.extend(result.dirty)
        self._refresh_budgets(now)

    def _refresh_budgets(self, now: datetime) -> None:
        changed = budgeting.refresh_spent(
            self._records[BUDGETS].values(), self._records[TRANSACTIONS].values(), now
        )
        for budget in changed:
            self._records[BUDGETS][budget.id] = budget
            self.outbox.upsert(BUDGETS, budget)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def add_account(self, account):
        """Register a fund source, credit card, loan or debt."""
        self._check_owner(account)
        with self._lock:
            collection = collection_for(account)
            self.registry.replace(collection, account)
            self.outbox.upsert(collection, account)
        return account

    def update_account(self, collection: str, account_id: str, **changes):
        with self._lock:
            account = self._get(collection, account_id)
            updated = replace(account, **self._changes(changes), updated_at=self._now(None))
            self.registry.replace(collection, updated)
            self.outbox.upsert(collection, updated)
        return updated

    def delete_account(self, collection: str, account_id: str):
        """Remove an account. Transactions referencing it keep their reference."""
        with self._lock:
            account = self._get(collection, account_id)
            self.registry.remove(collection, account_id)
            self.outbox.delete(collection, account)
        return account

    def account(self, collection: str, account_id: str):
        return self._get(collection, account_id)

    def accounts(self, collection: str) -> list:
        return self.registry.accounts(collection)

    def fund_source(self, source_id: str, *, now: Optional[datetime] = None):
        """Return a fund source with ``monthly_flow`` recomputed for ``now``."""
        source = self._get("fund_sources", source_id)
        flow = propagation.monthly_flow(
            source.transactions, now=self._now(now), window_days=self.window_days
        )
        return source if flow == source.monthly_flow else replace(source, monthly_flow=flow)

    def refresh_monthly_flows(self, *, now: Optional[datetime] = None) -> list[DirtyRecord]:
        """Persist recomputed flows for every fund source whose window moved."""
        with self._lock:
            dirty = propagation.refresh_monthly_flows(
                self.registry, now=self._now(now), window_days=self.window_days
            )
            self.outbox.extend(dirty)
        return dirty

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(
        self, transaction: Transaction, *, strict: bool = False, now: Optional[datetime] = None
    ) -> propagation.PropagationResult:
        """Validate, record and propagate a new transaction.

        With ``strict`` a reference to an unknown account raises
        :class:`~moneyflow.errors.StaleReferenceError` before anything changes;
        otherwise the reference is skipped and reported on the result.
        """

        self._check_owner(transaction)
        ensure_valid(transaction)
        now = self._now(now)
        with self._lock:
            if strict:
                self._ensure_references(transaction)
            if transaction.id in self._records[TRANSACTIONS]:
                raise ValueError(f"Transaction {transaction.id} already recorded")
            result = propagation.apply_transaction(
                transaction, self.registry, now=now, window_days=self.window_days
            )
            self._records[TRANSACTIONS][transaction.id] = transaction
            self.outbox.upsert(TRANSACTIONS, transaction)
            self._after_ledger_change(result, now)
        logger.info(
            "Transaction added",
            extra={
                "user_id": self.user_id,
                "transaction_id": transaction.id,
                "missing_references": len(result.missing),
            },
        )
        return result

    def update_transaction(
        self, transaction_id: str, *, strict: bool = False, now: Optional[datetime] = None, **changes
    ) -> propagation.PropagationResult:
        """Replace a transaction, moving its balance effect to the new values.

        The previous effect is reversed before the new version is applied, so
        editing an amount never double-counts.
        """

        now = self._now(now)
        with self._lock:
            previous = self._get(TRANSACTIONS, transaction_id)
            updated = replace(previous, **self._changes(changes), updated_at=now)
            ensure_valid(updated)
            if strict:
                self._ensure_references(updated)

            undo = propagation.reverse_transaction(
                previous, self.registry, now=now, window_days=self.window_days
            )
            self.outbox.extend(undo.dirty)
            result = propagation.apply_transaction(
                updated, self.registry, now=now, window_days=self.window_days
            )
            self._records[TRANSACTIONS][transaction_id] = updated
            self.outbox.upsert(TRANSACTIONS, updated)
            self._after_ledger_change(result, now)
        return result

    def delete_transaction(
        self, transaction_id: str, *, now: Optional[datetime] = None
    ) -> propagation.PropagationResult:
        """Remove a transaction and reverse its balance effect."""

        now = self._now(now)
        with self._lock:
            transaction = self._get(TRANSACTIONS, transaction_id)
            result = propagation.reverse_transaction(
                transaction, self.registry, now=now, window_days=self.window_days
            )
            del self._records[TRANSACTIONS][transaction_id]
            self.outbox.delete(TRANSACTIONS, transaction)
            self._after_ledger_change(result, now)
        logger.info(
            "Transaction deleted",
            extra={"user_id": self.user_id, "transaction_id": transaction_id},
        )
        return result

    def transaction(self, transaction_id: str) -> Transaction:
        return self._get(TRANSACTIONS, transaction_id)

    def transactions(self, filters: Optional[LedgerFilters] = None) -> list[Transaction]:
        """Return ledger entries newest first, optionally filtered."""
        return filtered_transactions(self._records[TRANSACTIONS].values(), filters or LedgerFilters())

    # ------------------------------------------------------------------
    # Investments, budgets, recurring templates
    # ------------------------------------------------------------------

    def _add_record(self, collection: str, record: Any) -> Any:
        self._check_owner(record)
        with self._lock:
            self._records[collection][record.id] = record
            self.outbox.upsert(collection, record)
        return record

    def _update_record(self, collection: str, record_id: str, changes: dict[str, Any]) -> Any:
        with self._lock:
            record = self._get(collection, record_id)
            updated = replace(record, **self._changes(changes), updated_at=self._now(None))
            self._records[collection][record_id] = updated
            self.outbox.upsert(collection, updated)
        return updated

    def _delete_record(self, collection: str, record_id: str) -> Any:
        with self._lock:
            record = self._get(collection, record_id)
            del self._records[collection][record_id]
            self.outbox.delete(collection, record)
        return record

    def add_investment(self, investment: Investment) -> Investment:
        return self._add_record(INVESTMENTS, investment)

    def update_investment(self, investment_id: str, **changes) -> Investment:
        return self._update_record(INVESTMENTS, investment_id, changes)

    def delete_investment(self, investment_id: str) -> Investment:
        return self._delete_record(INVESTMENTS, investment_id)

    def investments(self) -> list[Investment]:
        return list(self._records[INVESTMENTS].values())

    def add_budget(self, budget: Budget, *, now: Optional[datetime] = None) -> Budget:
        """Add a budget with ``spent`` computed from the current ledger."""
        now = self._now(now)
        spent = budgeting.spent_in_period(budget, self._records[TRANSACTIONS].values(), now.date())
        return self._add_record(BUDGETS, replace(budget, spent=spent))

    def update_budget(self, budget_id: str, **changes) -> Budget:
        with self._lock:
            self._update_record(BUDGETS, budget_id, changes)
            self._refresh_budgets(self._now(None))
            return self._get(BUDGETS, budget_id)

    def delete_budget(self, budget_id: str) -> Budget:
        return self._delete_record(BUDGETS, budget_id)

    def budgets(self) -> list[Budget]:
        return list(self._records[BUDGETS].values())

    def add_recurring(self, template: RecurringTransaction) -> RecurringTransaction:
        """Store a template after checking the transactions it would spawn."""
        ensure_valid(recurring.spawn_transaction(template, template.start_date))
        return self._add_record(RECURRING_TRANSACTIONS, template)

    def update_recurring(self, template_id: str, **changes) -> RecurringTransaction:
        with self._lock:
            candidate = replace(self._get(RECURRING_TRANSACTIONS, template_id), **self._changes(changes))
            ensure_valid(recurring.spawn_transaction(candidate, candidate.start_date))
            return self._update_record(RECURRING_TRANSACTIONS, template_id, changes)

    def delete_recurring(self, template_id: str) -> RecurringTransaction:
        return self._delete_record(RECURRING_TRANSACTIONS, template_id)

    def recurring_templates(self) -> list[RecurringTransaction]:
        return list(self._records[RECURRING_TRANSACTIONS].values())

    def process_recurring(self, *, now: Optional[datetime] = None) -> list[Transaction]:
        """Spawn and propagate every due recurring transaction.

        Safe to call at any time; a second call with the same ``now`` is a
        no-op. A template whose spawned transactions fail validation is left
        unprocessed and logged; the other templates still fire.
        """

        now = self._now(now)
        with self._lock:
            due, updated = recurring.process_due(
                self.recurring_templates(), now, catch_up=self.catch_up
            )
            rejected: dict[str, list[str]] = {}
            for transaction in due:
                errors = validate_transaction(transaction)
                if errors:
                    rejected.setdefault(transaction.recurring_transaction_id, []).extend(errors)
            for template_id, errors in rejected.items():
                logger.error(
                    "Recurring template produced an invalid transaction",
                    extra={"user_id": self.user_id, "template_id": template_id, "errors": errors},
                )

            spawned = [t for t in due if t.recurring_transaction_id not in rejected]
            for template in updated:
                if template.id in rejected:
                    continue
                self._records[RECURRING_TRANSACTIONS][template.id] = template
                self.outbox.upsert(RECURRING_TRANSACTIONS, template)
            for transaction in spawned:
                self.add_transaction(transaction, now=now)
        if spawned:
            logger.info(
                "Recurring transactions processed",
                extra={"user_id": self.user_id, "spawned": len(spawned)},
            )
        return spawned

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def flush(self, flusher: OutboxFlusher) -> FlushReport:
        """Mirror pending changes; failures stay queued and are only logged."""
        return flusher.flush(self.outbox)
