"""Outbox of dirty records and the flusher that mirrors them to storage.

Mutations never talk to storage directly. They hand the records they touched
to an :class:`Outbox`; an :class:`OutboxFlusher` later drains it into a
:class:`~moneyflow.domain.repositories.DocumentStore`, retrying each batch a
bounded number of times. A failed batch stays queued for the next flush and
the in-memory state is left untouched.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from ..domain.repositories import DocumentStore
from ..domain.serialization import to_payload
from ..logging_config import get_logger

logger = get_logger(__name__)

UPSERT = "upsert"
DELETE = "delete"


@dataclass(frozen=True)
class DirtyRecord:
    """A record that changed and must be mirrored."""

    collection: str
    record: Any
    op: str = UPSERT

    @property
    def record_id(self) -> str:
        return self.record.id

    @property
    def key(self) -> tuple[str, str]:
        return self.collection, self.record_id


@dataclass
class FlushReport:
    """Outcome of a single flush."""

    written: int = 0
    deleted: int = 0
    failed: list[str] = field(default_factory=list)  # collection names still pending

    @property
    def ok(self) -> bool:
        return not self.failed


class Outbox:
    """Coalescing queue of pending writes for one user.

    Only the latest version of each record is kept; a delete supersedes any
    pending upsert of the same record.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id
        self._pending: "OrderedDict[tuple[str, str], DirtyRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, dirty: DirtyRecord) -> None:
        with self._lock:
            self._pending.pop(dirty.key, None)
            self._pending[dirty.key] = dirty

    def extend(self, records: Iterable[DirtyRecord]) -> None:
        for dirty in records:
            self.add(dirty)

    def upsert(self, collection: str, record: Any) -> None:
        self.add(DirtyRecord(collection=collection, record=record))

    def delete(self, collection: str, record: Any) -> None:
        self.add(DirtyRecord(collection=collection, record=record, op=DELETE))

    def drain(self) -> list[DirtyRecord]:
        """Remove and return every pending entry in insertion order."""
        with self._lock:
            items = list(self._pending.values())
            self._pending.clear()
        return items

    def requeue(self, records: Iterable[DirtyRecord]) -> None:
        """Put back entries whose write failed, unless a newer version arrived."""
        with self._lock:
            for dirty in records:
                self._pending.setdefault(dirty.key, dirty)

    def pending(self) -> list[DirtyRecord]:
        with self._lock:
            return list(self._pending.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


def _group(records: Iterable[DirtyRecord]) -> "OrderedDict[tuple[str, str], list[DirtyRecord]]":
    groups: "OrderedDict[tuple[str, str], list[DirtyRecord]]" = OrderedDict()
    for dirty in records:
        groups.setdefault((dirty.collection, dirty.op), []).append(dirty)
    return groups


class OutboxFlusher:
    """Mirrors outbox contents to a document store with bounded retries."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def _write(self, user_id: str, collection: str, op: str, batch: list[DirtyRecord]) -> None:
        if op == DELETE:
            self.store.delete(user_id, collection, [d.record_id for d in batch])
        else:
            self.store.mirror(
                user_id, collection, [to_payload(collection, d.record) for d in batch]
            )

    def _write_with_retry(
        self, user_id: str, collection: str, op: str, batch: list[DirtyRecord]
    ) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                self._write(user_id, collection, op, batch)
                return True
            except Exception:
                logger.warning(
                    "Mirror write failed",
                    exc_info=True,
                    extra={
                        "user_id": user_id,
                        "collection": collection,
                        "op": op,
                        "attempt": attempt,
                        "records": len(batch),
                    },
                )
                if attempt < self.max_attempts and self.backoff_seconds:
                    self._sleep(self.backoff_seconds * attempt)
        return False

    def flush(self, outbox: Outbox) -> FlushReport:
        """Drain ``outbox`` into the store; failed batches are requeued."""

        report = FlushReport()
        entries = outbox.drain()
        if not entries:
            return report

        for (collection, op), batch in _group(entries).items():
            if self._write_with_retry(outbox.user_id, collection, op, batch):
                if op == DELETE:
                    report.deleted += len(batch)
                else:
                    report.written += len(batch)
                continue
            logger.error(
                "Giving up on mirror batch until next flush",
                extra={
                    "user_id": outbox.user_id,
                    "collection": collection,
                    "op": op,
                    "records": len(batch),
                },
            )
            outbox.requeue(batch)
            report.failed.append(collection)

        logger.info(
            "Outbox flushed",
            extra={
                "user_id": outbox.user_id,
                "written": report.written,
                "deleted": report.deleted,
                "failed": report.failed,
            },
        )
        return report
