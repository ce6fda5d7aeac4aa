"""Application context for dependency injection."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlmodel import Session

from .config import BaseConfig
from .infra.database import create_db_engine, create_session_factory, init_database
from .infra.repositories import SQLModelDocumentRepository
from .logging_config import get_logger
from .services.ledger_session import LedgerSession
from .services.locks import UserLocks
from .services.sync import FlushReport, OutboxFlusher

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Config, storage and the open per-user ledger sessions."""

    config: BaseConfig
    engine: Any
    session_factory: Callable[[], Session]
    document_repo: SQLModelDocumentRepository
    flusher: OutboxFlusher
    locks: UserLocks = field(default_factory=UserLocks)
    sessions: dict[str, LedgerSession] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def open_session(self, user_id: str) -> LedgerSession:
        """Return the user's session, loading it from the mirror on first use."""
        with self._guard:
            session = self.sessions.get(user_id)
            if session is None:
                session = LedgerSession.load(
                    self.document_repo,
                    user_id,
                    window_days=self.config.FLOW_WINDOW_DAYS,
                    catch_up=self.config.RECURRING_CATCH_UP,
                    locks=self.locks,
                )
                self.sessions[user_id] = session
            return session

    def close_session(self, user_id: str) -> Optional[FlushReport]:
        """Flush and forget a session.

        A session whose flush fails stays open so a later ``flush_all`` can
        retry its pending changes.
        """
        with self._guard:
            session = self.sessions.get(user_id)
        if session is None:
            return None
        report = session.flush(self.flusher)
        if not report.ok:
            logger.error(
                "Session kept open with unsynced changes",
                extra={"user_id": user_id, "pending": len(session.outbox)},
            )
            return report
        with self._guard:
            if self.sessions.get(user_id) is session:
                del self.sessions[user_id]
        return report

    def open_sessions(self) -> list[LedgerSession]:
        with self._guard:
            return list(self.sessions.values())

    def flush_all(self) -> dict[str, FlushReport]:
        return {s.user_id: s.flush(self.flusher) for s in self.open_sessions()}

    def process_recurring_all(self, now: Optional[datetime] = None) -> dict[str, int]:
        """Run recurring processing for every open session; return spawn counts."""
        return {s.user_id: len(s.process_recurring(now=now)) for s in self.open_sessions()}


def create_app_context(config: Optional[BaseConfig] = None) -> AppContext:
    """Create and initialize the application context."""

    if config is None:
        config = BaseConfig()

    engine = create_db_engine(config)
    init_database(engine)
    session_factory = create_session_factory(engine)
    document_repo = SQLModelDocumentRepository(session_factory)

    return AppContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        document_repo=document_repo,
        flusher=OutboxFlusher(document_repo, max_attempts=config.SYNC_MAX_ATTEMPTS),
    )
