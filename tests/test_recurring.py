"""Recurring template scheduling."""

from __future__ import annotations

from datetime import datetime

import pytest

from moneyflow.domain.entities import RecurringFrequency
from moneyflow.services.recurring import (
    RECURRING_SUFFIX,
    advance,
    next_due,
    process_due,
    spawn_transaction,
)


def test_monthly_template_fires_once_and_is_idempotent(recurring_factory):
    template = recurring_factory(start_date=datetime(2024, 1, 1))
    now = datetime(2024, 2, 15)

    spawned, updated = process_due([template], now)

    assert len(spawned) == 1
    assert spawned[0].date == now.date()
    assert updated[0].last_processed == now

    again, untouched = process_due(updated, now)
    assert again == []
    assert untouched == []


def test_not_yet_due(recurring_factory):
    template = recurring_factory(start_date=datetime(2024, 1, 1))

    spawned, updated = process_due([template], datetime(2024, 1, 31, 23, 59))

    assert spawned == []
    assert updated == []


def test_spawned_transaction_copies_template(recurring_factory):
    template = recurring_factory(fund_source_id="fs-1", from_account="Checking")
    when = datetime(2024, 2, 1, 8, 30, 15, 999)

    txn = spawn_transaction(template, when)

    assert txn.type == template.type
    assert txn.amount == template.amount
    assert txn.category == template.category
    assert txn.details == f"Streaming{RECURRING_SUFFIX}"
    assert txn.fund_source_id == "fs-1"
    assert txn.from_account == "Checking"
    assert txn.recurring_transaction_id == template.id
    assert txn.time.microsecond == 0
    assert txn.id != template.id


def test_long_absence_spawns_single_transaction_by_default(recurring_factory):
    template = recurring_factory(start_date=datetime(2024, 1, 1))

    spawned, _ = process_due([template], datetime(2024, 6, 15))

    assert len(spawned) == 1


def test_catch_up_spawns_each_missed_period(recurring_factory):
    template = recurring_factory(start_date=datetime(2024, 1, 1))

    spawned, updated = process_due([template], datetime(2024, 6, 15), catch_up=True)

    assert [t.date.month for t in spawned] == [2, 3, 4, 5, 6]
    assert updated[0].last_processed == datetime(2024, 6, 15)


def test_catch_up_respects_end_date(recurring_factory):
    template = recurring_factory(start_date=datetime(2024, 1, 1), end_date=datetime(2024, 3, 31))

    spawned, _ = process_due([template], datetime(2024, 6, 15), catch_up=True)

    assert [t.date.month for t in spawned] == [2, 3]


def test_single_catch_up_is_dated_no_later_than_end_date(recurring_factory):
    template = recurring_factory(start_date=datetime(2024, 1, 1), end_date=datetime(2024, 3, 31))
    now = datetime(2024, 6, 15)

    spawned, updated = process_due([template], now)

    assert [t.date for t in spawned] == [datetime(2024, 3, 31).date()]
    assert updated[0].last_processed == now
    assert process_due(updated, now) == ([], [])


def test_ended_template_is_skipped(recurring_factory):
    template = recurring_factory(
        start_date=datetime(2024, 1, 1),
        last_processed=datetime(2024, 3, 1),
        end_date=datetime(2024, 3, 15),
    )

    assert process_due([template], datetime(2024, 6, 1)) == ([], [])


def test_inactive_and_future_templates_are_skipped(recurring_factory):
    inactive = recurring_factory(active=False)
    future = recurring_factory(start_date=datetime(2025, 1, 1))

    assert process_due([inactive, future], datetime(2024, 6, 1)) == ([], [])


@pytest.mark.parametrize(
    "frequency, expected",
    [
        (RecurringFrequency.DAILY, datetime(2024, 1, 2)),
        (RecurringFrequency.WEEKLY, datetime(2024, 1, 8)),
        (RecurringFrequency.BI_WEEKLY, datetime(2024, 1, 15)),
        (RecurringFrequency.MONTHLY, datetime(2024, 2, 1)),
        (RecurringFrequency.YEARLY, datetime(2025, 1, 1)),
    ],
)
def test_next_due_per_frequency(recurring_factory, frequency, expected):
    template = recurring_factory(frequency=frequency, start_date=datetime(2024, 1, 1))

    assert next_due(template) == expected


def test_month_end_clamps_without_drift():
    start = datetime(2024, 1, 31)

    assert advance(start, "monthly") == datetime(2024, 2, 29)
    assert advance(start, "monthly", periods=2) == datetime(2024, 3, 31)
