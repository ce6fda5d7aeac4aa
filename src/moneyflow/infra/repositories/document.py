"""SQLModel implementation of the document store."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from ...errors import SyncError
from ...logging_config import get_logger
from ...models.document import MirrorDocument

logger = get_logger(__name__)


class SQLModelDocumentRepository:
    """Per-user JSON documents in the ``mirror_document`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _existing(
        self, session: Session, user_id: str, collection: str, record_ids: list[str]
    ) -> dict[str, MirrorDocument]:
        if not record_ids:
            return {}
        statement = select(MirrorDocument).where(
            MirrorDocument.user_id == user_id,
            MirrorDocument.collection == collection,
            MirrorDocument.record_id.in_(record_ids),  # type: ignore[attr-defined]
        )
        return {doc.record_id: doc for doc in session.exec(statement).all()}

    def mirror(self, user_id: str, collection: str, records: Iterable[dict[str, Any]]) -> None:
        """Upsert payloads by ``id``; a previously deleted document is revived."""
        payloads = list(records)
        now = datetime.now(timezone.utc)
        try:
            with self.session_factory() as session:
                existing = self._existing(session, user_id, collection, [p["id"] for p in payloads])
                for payload in payloads:
                    body = json.dumps(payload, sort_keys=True)
                    doc = existing.get(payload["id"])
                    if doc is None:
                        doc = MirrorDocument(
                            user_id=user_id,
                            collection=collection,
                            record_id=payload["id"],
                            payload=body,
                        )
                        existing[doc.record_id] = doc
                    doc.payload = body
                    doc.deleted = False
                    doc.updated_at = now
                    session.add(doc)
        except SQLAlchemyError as exc:
            raise SyncError(f"Could not mirror {collection} for {user_id}") from exc
        logger.debug(
            "Documents mirrored",
            extra={"user_id": user_id, "collection": collection, "records": len(payloads)},
        )

    def delete(self, user_id: str, collection: str, record_ids: Iterable[str]) -> None:
        ids = list(record_ids)
        now = datetime.now(timezone.utc)
        try:
            with self.session_factory() as session:
                for doc in self._existing(session, user_id, collection, ids).values():
                    doc.deleted = True
                    doc.updated_at = now
                    session.add(doc)
        except SQLAlchemyError as exc:
            raise SyncError(f"Could not delete {collection} for {user_id}") from exc

    def get(self, user_id: str, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        with self.session_factory() as session:
            doc = self._existing(session, user_id, collection, [record_id]).get(record_id)
            if doc is None or doc.deleted:
                return None
            return json.loads(doc.payload)

    def load(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        with self.session_factory() as session:
            statement = (
                select(MirrorDocument)
                .where(
                    MirrorDocument.user_id == user_id,
                    MirrorDocument.collection == collection,
                    MirrorDocument.deleted == False,  # noqa: E712
                )
                .order_by(MirrorDocument.id)  # type: ignore[arg-type]
            )
            return [json.loads(doc.payload) for doc in session.exec(statement).all()]

    def count(self, user_id: str, collection: Optional[str] = None) -> int:
        """Number of live documents for a user, optionally in one collection."""
        with self.session_factory() as session:
            statement = select(func.count()).select_from(MirrorDocument).where(
                MirrorDocument.user_id == user_id,
                MirrorDocument.deleted == False,  # noqa: E712
            )
            if collection is not None:
                statement = statement.where(MirrorDocument.collection == collection)
            return int(session.exec(statement).one())

    def users(self) -> list[str]:
        """Distinct user ids with at least one live document."""
        with self.session_factory() as session:
            statement = (
                select(MirrorDocument.user_id)
                .where(MirrorDocument.deleted == False)  # noqa: E712
                .distinct()
                .order_by(MirrorDocument.user_id)
            )
            return list(session.exec(statement).all())


__all__ = ["SQLModelDocumentRepository"]
