"""CSV export helpers for MoneyFlow."""

from __future__ import annotations

import csv
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Iterable

from ..domain.entities import Transaction

HEADERS = [
    "id",
    "date",
    "time",
    "type",
    "amount",
    "category",
    "details",
    "fund_source_id",
    "credit_card_id",
    "loan_id",
    "debt_id",
    "recurring_transaction_id",
]


def _serialize_value(value):
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    return str(value)


def export_transactions_csv(*, transactions: Iterable[Transaction], output_path: Path) -> Path:
    """Write transactions to CSV at ``output_path``, oldest first.

    Columns are deterministic (see ``HEADERS``). Returns the path written.
    """

    output_path.parent.mkdir(parents=True, exist_ok=True)
    rows = sorted(transactions, key=lambda t: t.occurred_at)

    # Use newline='' for csv on Windows
    with output_path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(
            fh, fieldnames=HEADERS, extrasaction="ignore", quoting=csv.QUOTE_MINIMAL
        )
        writer.writeheader()
        for tx in rows:
            writer.writerow({name: _serialize_value(getattr(tx, name, None)) for name in HEADERS})

    return output_path
