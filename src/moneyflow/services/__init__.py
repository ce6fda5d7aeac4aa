"""Ledger services: propagation, recurring scheduling, sync and analytics."""

from .ledger_session import LedgerSession
from .propagation import (
    PropagationResult,
    ReferenceNotFound,
    apply_transaction,
    monthly_flow,
    reverse_transaction,
)
from .recurring import process_due
from .sync import FlushReport, Outbox, OutboxFlusher

__all__ = [
    "FlushReport",
    "LedgerSession",
    "Outbox",
    "OutboxFlusher",
    "PropagationResult",
    "ReferenceNotFound",
    "apply_transaction",
    "monthly_flow",
    "process_due",
    "reverse_transaction",
]
