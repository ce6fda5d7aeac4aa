"""Materialize transactions from recurring templates when they fall due."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable

from dateutil.relativedelta import relativedelta

from ..domain.entities import RecurringFrequency, RecurringTransaction, Transaction
from ..logging_config import get_logger

logger = get_logger(__name__)

RECURRING_SUFFIX = " (Recurring)"

# Upper bound on occurrences spawned for one template in catch-up mode.
MAX_CATCH_UP = 366

_STEPS = {
    RecurringFrequency.DAILY: timedelta(days=1),
    RecurringFrequency.WEEKLY: timedelta(weeks=1),
    RecurringFrequency.BI_WEEKLY: timedelta(weeks=2),
    RecurringFrequency.MONTHLY: relativedelta(months=1),
    RecurringFrequency.YEARLY: relativedelta(years=1),
}


def advance(moment: datetime, frequency: RecurringFrequency | str, periods: int = 1) -> datetime:
    """Move ``moment`` forward by ``periods`` steps of ``frequency``.

    Month and year steps clamp to the last valid day (Jan 31 -> Feb 28/29).
    """

    step = _STEPS[RecurringFrequency(frequency)]
    return moment + step * periods


def next_due(template: RecurringTransaction) -> datetime:
    """Return the next occurrence after ``last_processed`` (or ``start_date``)."""

    anchor = template.last_processed or template.start_date
    return advance(anchor, template.frequency)


def is_eligible(template: RecurringTransaction, now: datetime) -> bool:
    if not template.active:
        return False
    if template.start_date > now:
        return False
    return True


def spawn_transaction(template: RecurringTransaction, when: datetime) -> Transaction:
    """Build the ordinary transaction a template produces for one occurrence."""

    return Transaction(
        user_id=template.user_id,
        type=template.type,
        amount=template.amount,
        date=when.date(),
        time=when.time().replace(microsecond=0),
        category=template.category,
        details=f"{template.details}{RECURRING_SUFFIX}",
        from_account=template.from_account,
        fund_source_id=template.fund_source_id,
        credit_card_id=template.credit_card_id,
        loan_id=template.loan_id,
        debt_id=template.debt_id,
        recurring_transaction_id=template.id,
        created_at=when,
        updated_at=when,
    )


def _due_dates(template: RecurringTransaction, now: datetime, catch_up: bool) -> list[datetime]:
    due = next_due(template)
    if due > now:
        return []
    if template.end_date is not None and due > template.end_date:
        return []
    if not catch_up:
        if template.end_date is not None and now > template.end_date:
            return [template.end_date]
        return [now]

    anchor = template.last_processed or template.start_date
    dates: list[datetime] = []
    periods = 1
    while due <= now and len(dates) < MAX_CATCH_UP:
        if template.end_date is not None and due > template.end_date:
            break
        dates.append(due)
        periods += 1
        # Step from the anchor each time so month-end clamping does not drift.
        due = advance(anchor, template.frequency, periods)
    return dates


def process_due(
    templates: Iterable[RecurringTransaction],
    now: datetime,
    *,
    catch_up: bool = False,
) -> tuple[list[Transaction], list[RecurringTransaction]]:
    """Spawn transactions for due templates.

    By default at most one transaction per template is produced per call,
    dated ``now`` (or ``end_date`` when that came first), no matter how many
    periods elapsed. With ``catch_up`` one transaction per missed period is
    produced, each dated at its due date.
    Either way the template's ``last_processed`` becomes ``now``, so calling
    again with the same ``now`` spawns nothing.

    Returns ``(spawned, updated_templates)``; only templates that fired are
    included in ``updated_templates``.
    """

    spawned: list[Transaction] = []
    updated: list[RecurringTransaction] = []

    for template in templates:
        if not is_eligible(template, now):
            continue
        dates = _due_dates(template, now, catch_up)
        if not dates:
            continue

        for when in dates:
            spawned.append(spawn_transaction(template, when))
        updated.append(replace(template, last_processed=now, updated_at=now))
        logger.info(
            "Recurring template fired",
            extra={
                "template_id": template.id,
                "frequency": RecurringFrequency(template.frequency).value,
                "occurrences": len(dates),
            },
        )

    return spawned, updated
