"""LedgerSession: CRUD, reversal on edit/delete, recurring and reload."""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from moneyflow.domain.entities import Budget, Investment, TransactionType
from moneyflow.domain.serialization import to_payload
from moneyflow.errors import RecordNotFoundError, StaleReferenceError, TransactionValidationError
from moneyflow.services.ledger_service import LedgerFilters
from moneyflow.services.ledger_session import LedgerSession
from moneyflow.services.locks import UserLocks
from moneyflow.services.sync import DELETE, OutboxFlusher


@pytest.fixture
def funded(ledger, fund_source_factory, credit_card_factory):
    source = ledger.add_account(fund_source_factory())
    card = ledger.add_account(credit_card_factory())
    return ledger, source, card


def test_end_to_end_scenario(funded, transaction_factory):
    ledger, source, card = funded

    ledger.add_transaction(
        transaction_factory(type=TransactionType.INCOME, amount=Decimal("500"), fund_source_id=source.id)
    )
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("1500")

    ledger.add_transaction(transaction_factory(amount=Decimal("200"), fund_source_id=source.id))
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("1300")

    ledger.add_transaction(transaction_factory(amount=Decimal("300"), credit_card_id=card.id))
    assert ledger.account("credit_cards", card.id).current_balance == Decimal("300")

    ledger.add_transaction(
        transaction_factory(type=TransactionType.DEBT, amount=Decimal("100"), credit_card_id=card.id)
    )
    assert ledger.account("credit_cards", card.id).current_balance == Decimal("200")
    assert len(ledger.transactions()) == 4


def test_add_queues_transaction_and_accounts(funded, transaction_factory):
    ledger, source, _ = funded
    ledger.outbox.drain()

    txn = transaction_factory(fund_source_id=source.id)
    ledger.add_transaction(txn)

    keys = {d.key for d in ledger.outbox.pending()}
    assert keys == {("fund_sources", source.id), ("transactions", txn.id)}


def test_invalid_transaction_is_rejected_before_propagation(funded, transaction_factory):
    ledger, source, _ = funded

    with pytest.raises(TransactionValidationError):
        ledger.add_transaction(transaction_factory(amount=Decimal("0"), fund_source_id=source.id))

    assert ledger.account("fund_sources", source.id).current_balance == Decimal("1000")
    assert ledger.transactions() == []


def test_strict_mode_rejects_unknown_reference(funded, transaction_factory):
    ledger, _, _ = funded

    with pytest.raises(StaleReferenceError):
        ledger.add_transaction(transaction_factory(fund_source_id="nope"), strict=True)
    assert ledger.transactions() == []


def test_lenient_mode_reports_unknown_reference(funded, transaction_factory):
    ledger, _, _ = funded

    result = ledger.add_transaction(transaction_factory(fund_source_id="nope"))

    assert [m.account_id for m in result.missing] == ["nope"]
    assert len(ledger.transactions()) == 1


def test_duplicate_transaction_id_rejected(funded, transaction_factory):
    ledger, source, _ = funded
    txn = transaction_factory(fund_source_id=source.id)
    ledger.add_transaction(txn)

    with pytest.raises(ValueError):
        ledger.add_transaction(txn)


def test_foreign_user_record_rejected(ledger, fund_source_factory):
    with pytest.raises(ValueError):
        ledger.add_account(fund_source_factory(user_id="someone-else"))


def test_delete_reverses_effect(funded, transaction_factory):
    ledger, source, _ = funded
    txn = transaction_factory(amount=Decimal("250"), fund_source_id=source.id)
    ledger.add_transaction(txn)

    ledger.delete_transaction(txn.id)

    restored = ledger.account("fund_sources", source.id)
    assert restored.current_balance == Decimal("1000")
    assert restored.transactions == []
    assert ledger.transactions() == []
    pending = {d.key: d.op for d in ledger.outbox.pending()}
    assert pending[("transactions", txn.id)] == DELETE


def test_update_moves_effect_to_new_values(funded, transaction_factory):
    ledger, source, card = funded
    txn = transaction_factory(amount=Decimal("100"), fund_source_id=source.id)
    ledger.add_transaction(txn)

    ledger.update_transaction(txn.id, amount=Decimal("40"))
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("960")

    ledger.update_transaction(txn.id, fund_source_id=None, credit_card_id=card.id)
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("1000")
    assert ledger.account("credit_cards", card.id).current_balance == Decimal("40")
    assert ledger.account("fund_sources", source.id).transactions == []
    assert ledger.transaction(txn.id).credit_card_id == card.id


def test_update_cannot_change_identity(funded, transaction_factory):
    ledger, source, _ = funded
    txn = transaction_factory(fund_source_id=source.id)
    ledger.add_transaction(txn)

    with pytest.raises(ValueError):
        ledger.update_transaction(txn.id, id="other")


def test_unknown_ids_raise_record_not_found(ledger):
    with pytest.raises(RecordNotFoundError) as excinfo:
        ledger.delete_transaction("missing")
    assert "transactions record 'missing' not found" == str(excinfo.value)

    with pytest.raises(RecordNotFoundError):
        ledger.update_account("loans", "missing", name="x")


def test_fund_source_flow_recomputed_on_read(funded, transaction_factory, now):
    ledger, source, _ = funded
    ledger.add_transaction(
        transaction_factory(type=TransactionType.INCOME, amount=Decimal("300"), fund_source_id=source.id)
    )

    assert ledger.fund_source(source.id, now=now).monthly_flow == Decimal("300")
    assert ledger.fund_source(source.id, now=now + timedelta(days=40)).monthly_flow == Decimal("0")


def test_account_update_and_delete(funded):
    ledger, source, _ = funded

    renamed = ledger.update_account("fund_sources", source.id, account_name="Main")
    assert ledger.account("fund_sources", source.id).account_name == "Main"
    assert renamed.current_balance == source.current_balance

    ledger.delete_account("fund_sources", source.id)
    assert ledger.accounts("fund_sources") == []


def test_budget_spent_tracks_ledger(funded, transaction_factory, user_id):
    ledger, source, _ = funded
    budget = ledger.add_budget(Budget(user_id=user_id, category="Groceries", amount=Decimal("400")))

    txn = transaction_factory(amount=Decimal("120"), fund_source_id=source.id)
    ledger.add_transaction(txn)
    assert ledger.budgets()[0].spent == Decimal("120")

    ledger.delete_transaction(txn.id)
    assert ledger.budgets()[0].spent == Decimal("0")
    assert budget.id == ledger.budgets()[0].id


def test_investment_crud(ledger, user_id):
    holding = ledger.add_investment(
        Investment(user_id=user_id, name="Index Fund", purchase_price=Decimal("10"), current_value=Decimal("12"))
    )

    ledger.update_investment(holding.id, current_value=Decimal("15"))
    assert ledger.investments()[0].current_value == Decimal("15")

    ledger.delete_investment(holding.id)
    assert ledger.investments() == []


def test_process_recurring_propagates_spawned_transactions(
    funded, recurring_factory, user_id
):
    ledger, source, _ = funded
    template = ledger.add_recurring(
        recurring_factory(fund_source_id=source.id, amount=Decimal("15"), start_date=datetime(2024, 1, 1))
    )

    spawned = ledger.process_recurring(now=datetime(2024, 2, 15))

    assert len(spawned) == 1
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("985")
    assert ledger.recurring_templates()[0].last_processed == datetime(2024, 2, 15)
    assert ledger.process_recurring(now=datetime(2024, 2, 15)) == []
    assert ledger.transactions()[0].recurring_transaction_id == template.id


def test_recurring_template_validated_on_add(ledger, recurring_factory):
    with pytest.raises(TransactionValidationError):
        ledger.add_recurring(recurring_factory())


def test_transactions_filtering(funded, transaction_factory):
    ledger, source, card = funded
    ledger.add_transaction(transaction_factory(category="Rent", fund_source_id=source.id))
    ledger.add_transaction(transaction_factory(category="Food", credit_card_id=card.id))

    by_card = ledger.transactions(LedgerFilters(account_id=card.id))

    assert [t.category for t in by_card] == ["Food"]


def test_flush_and_reload_round_trip(funded, transaction_factory, document_repo, user_id, now):
    ledger, source, card = funded
    ledger.add_transaction(
        transaction_factory(type=TransactionType.INCOME, amount=Decimal("500"), fund_source_id=source.id)
    )
    spend = transaction_factory(amount=Decimal("80"), credit_card_id=card.id, date=date(2024, 3, 1))
    ledger.add_transaction(spend)

    report = ledger.flush(OutboxFlusher(document_repo))
    assert report.ok
    assert len(ledger.outbox) == 0

    reloaded = LedgerSession.load(document_repo, user_id, locks=UserLocks(), clock=lambda: now)

    reloaded_source = reloaded.account("fund_sources", source.id)
    assert reloaded_source.current_balance == Decimal("1500")
    assert reloaded_source.monthly_flow == Decimal("500")
    assert reloaded.account("credit_cards", card.id).transactions == [spend]
    assert {t.id for t in reloaded.transactions()} == {t.id for t in ledger.transactions()}

    # Deletes are mirrored as well.
    ledger.delete_transaction(spend.id)
    ledger.flush(OutboxFlusher(document_repo))
    again = LedgerSession.load(document_repo, user_id, locks=UserLocks())
    assert spend.id not in {t.id for t in again.transactions()}
    assert again.account("credit_cards", card.id).current_balance == Decimal("0")


def test_failed_flush_leaves_state_intact(funded, transaction_factory, store_factory):
    ledger, source, _ = funded
    ledger.add_transaction(transaction_factory(fund_source_id=source.id))
    pending = len(ledger.outbox)

    report = ledger.flush(OutboxFlusher(store_factory(fail_times=10), max_attempts=2))

    assert not report.ok
    assert len(ledger.outbox) == pending
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("990")


def test_concurrent_writers_serialize(user_id, fund_source_factory, transaction_factory):
    locks = UserLocks()
    ledger = LedgerSession(user_id, locks=locks)
    twin = LedgerSession(user_id, registry=ledger.registry, locks=locks)
    source = ledger.add_account(fund_source_factory(current_balance=Decimal("0")))

    def writer(session):
        for _ in range(50):
            session.add_transaction(
                transaction_factory(type=TransactionType.INCOME, amount=Decimal("1"), fund_source_id=source.id)
            )

    threads = [threading.Thread(target=writer, args=(s,)) for s in (ledger, twin)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert ledger.account("fund_sources", source.id).current_balance == Decimal("100")
    assert len(locks) == 1


def test_delete_skips_accounts_that_never_saw_the_transaction(ledger, fund_source_factory, transaction_factory):
    source = fund_source_factory()
    income = transaction_factory(type=TransactionType.INCOME, amount=Decimal("500"), fund_source_id=source.id)
    result = ledger.add_transaction(income)
    assert not result.ok

    ledger.add_account(source)
    ledger.delete_transaction(income.id)

    assert ledger.account("fund_sources", source.id).current_balance == Decimal("1000")


def test_update_skips_reversal_on_account_added_later(ledger, fund_source_factory, transaction_factory):
    source = fund_source_factory()
    txn = transaction_factory(amount=Decimal("100"), fund_source_id=source.id)
    ledger.add_transaction(txn)
    ledger.add_account(source)

    ledger.update_transaction(txn.id, amount=Decimal("40"))

    assert ledger.account("fund_sources", source.id).current_balance == Decimal("960")


def test_injected_empty_registry_and_locks_are_used(user_id, registry):
    locks = UserLocks()

    session = LedgerSession(user_id, registry=registry, locks=locks)

    assert session.registry is registry
    assert len(locks) == 1


def test_update_recurring_rejects_invalid_template(funded, recurring_factory):
    ledger, source, _ = funded
    template = ledger.add_recurring(recurring_factory(fund_source_id=source.id))

    with pytest.raises(TransactionValidationError):
        ledger.update_recurring(template.id, amount=Decimal("0"))
    assert ledger.recurring_templates()[0].amount == Decimal("15")


def test_invalid_stored_template_does_not_block_others(
    fake_store, user_id, now, fund_source_factory, recurring_factory
):
    source = fund_source_factory()
    good = recurring_factory(fund_source_id=source.id, start_date=datetime(2024, 1, 1))
    bad = recurring_factory(fund_source_id=source.id, amount=Decimal("0"), start_date=datetime(2024, 1, 1))
    fake_store.mirror(user_id, "fund_sources", [to_payload("fund_sources", source)])
    fake_store.mirror(
        user_id,
        "recurring_transactions",
        [to_payload("recurring_transactions", t) for t in (good, bad)],
    )
    ledger = LedgerSession.load(fake_store, user_id, locks=UserLocks(), clock=lambda: now)

    spawned = ledger.process_recurring(now=datetime(2024, 2, 15))

    assert [t.recurring_transaction_id for t in spawned] == [good.id]
    assert ledger.account("fund_sources", source.id).current_balance == Decimal("985")
    templates = {t.id: t for t in ledger.recurring_templates()}
    assert templates[good.id].last_processed == datetime(2024, 2, 15)
    assert templates[bad.id].last_processed is None
