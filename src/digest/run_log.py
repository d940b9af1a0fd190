"""Append-only ledger of digest run attempts."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Mapping

from sqlalchemy.orm import Session

from models import RUN_SOURCES, DigestRunLog
from time_utils import ensure_utc

RECENT_RUNS_LIMIT = 20


@dataclass(frozen=True)
class DigestRunCreateInput:
    """Input payload for recording one digest attempt."""

    run_source: str
    success: bool
    skipped: bool = False
    initiated_by: str | None = None
    date_key: str | None = None
    sent_to: int = 0
    open_count: int = 0
    in_review_count: int = 0
    email_attempted: int = 0
    email_sent: int = 0
    email_failed: int = 0
    error_message: str | None = None
    meta: Mapping[str, object] = field(default_factory=dict)


class DigestRunRepository:
    """Repository for digest run audit rows."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize repository with a SQLAlchemy session factory."""
        self._session_factory = session_factory

    def record(
        self,
        payload: DigestRunCreateInput,
        *,
        now: datetime | None = None,
    ) -> DigestRunLog:
        """Append a run row."""
        if payload.run_source not in RUN_SOURCES:
            raise ValueError(f"Invalid run source: {payload.run_source!r}")

        def handler(session: Session) -> DigestRunLog:
            run = DigestRunLog(
                run_source=payload.run_source,
                initiated_by=payload.initiated_by,
                ran_at=ensure_utc(now or datetime.now(timezone.utc)),
                success=payload.success,
                skipped=payload.skipped,
                date_key=payload.date_key,
                sent_to=payload.sent_to,
                open_count=payload.open_count,
                in_review_count=payload.in_review_count,
                email_attempted=payload.email_attempted,
                email_sent=payload.email_sent,
                email_failed=payload.email_failed,
                error_message=payload.error_message,
                meta=dict(payload.meta),
            )
            session.add(run)
            session.flush()
            return run

        return self._execute(handler)

    def list_recent(self, *, limit: int = RECENT_RUNS_LIMIT) -> list[DigestRunLog]:
        """Return the latest runs ordered by ran_at desc."""

        def handler(session: Session) -> list[DigestRunLog]:
            return list(
                session.query(DigestRunLog)
                .order_by(DigestRunLog.ran_at.desc(), DigestRunLog.id.desc())
                .limit(limit)
                .all()
            )

        return self._execute(handler)

    def _execute(self, handler):
        """Execute repository work inside a managed session."""
        with closing(self._session_factory()) as session:
            session.expire_on_commit = False
            try:
                result = handler(session)
                session.commit()
            except Exception:
                session.rollback()
                raise
        return result


__all__ = ["DigestRunCreateInput", "DigestRunRepository", "RECENT_RUNS_LIMIT"]
