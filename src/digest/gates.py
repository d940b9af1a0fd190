"""Time and cooldown gates for digest runs."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
import logging
import math
from typing import Callable

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from config import settings
from models import SystemJobState
from time_utils import as_local, ensure_utc

logger = logging.getLogger(__name__)

DIGEST_LOCK_KEY = "trend_actions_digest_manual"


def is_digest_window(
    now: datetime,
    *,
    tz: tzinfo | None = None,
    target_hour: int | None = None,
) -> bool:
    """Return True when ``now`` is exactly the target hour, minute 0, in local time."""
    local = as_local(now, tz)
    hour = settings.digest.target_hour if target_hour is None else target_hour
    return local.hour == hour and local.minute == 0


def dialect_insert(session: Session):
    """Return the dialect-specific insert construct supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}")


@dataclass(frozen=True)
class CooldownDecision:
    """Outcome of a cooldown claim."""

    allowed: bool
    retry_after_seconds: int = 0
    next_available_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_by: str | None = None


class CooldownLock:
    """Single-row lock allowing one manual run per cooldown window."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        key: str = DIGEST_LOCK_KEY,
        window: timedelta | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.key = key
        self.window = window or timedelta(minutes=settings.digest.cooldown_minutes)

    def claim(self, actor_id: str | None, *, now: datetime) -> CooldownDecision:
        """Atomically take the lock when the previous run is outside the window.

        The claim is one conditional upsert: it inserts the row, or updates it
        only when ``last_run_at`` is empty or old enough. Zero affected rows
        means another run holds the window.
        """
        timestamp = ensure_utc(now)
        threshold = timestamp - self.window

        def handler(session: Session) -> CooldownDecision:
            insert = dialect_insert(session)
            values = {
                "key": self.key,
                "last_run_at": timestamp,
                "last_run_by": actor_id,
                "updated_at": timestamp,
            }
            statement = insert(SystemJobState).values(**values)
            statement = statement.on_conflict_do_update(
                index_elements=[SystemJobState.key],
                set_={
                    "last_run_at": timestamp,
                    "last_run_by": actor_id,
                    "updated_at": timestamp,
                },
                where=or_(
                    SystemJobState.last_run_at.is_(None),
                    SystemJobState.last_run_at <= threshold,
                ),
            )
            result = session.execute(statement)
            if result.rowcount:
                return CooldownDecision(
                    allowed=True,
                    last_run_at=timestamp,
                    last_run_by=actor_id,
                )
            row = session.execute(
                select(SystemJobState.last_run_at, SystemJobState.last_run_by).where(
                    SystemJobState.key == self.key
                )
            ).one()
            return self._rejection(row.last_run_at, row.last_run_by, timestamp)

        with closing(self._session_factory()) as session:
            try:
                decision = handler(session)
                session.commit()
            except Exception:
                session.rollback()
                raise

        if decision.allowed:
            logger.info(f"Cooldown lock {self.key} claimed by {actor_id}")
        else:
            logger.info(
                f"Cooldown lock {self.key} held; retry in {decision.retry_after_seconds}s"
            )
        return decision

    def _rejection(
        self,
        last_run_at: datetime | None,
        last_run_by: str | None,
        now: datetime,
    ) -> CooldownDecision:
        last = ensure_utc(last_run_at) if last_run_at is not None else now
        next_available_at = last + self.window
        remaining = (next_available_at - now).total_seconds()
        return CooldownDecision(
            allowed=False,
            retry_after_seconds=max(1, math.ceil(remaining)),
            next_available_at=next_available_at,
            last_run_at=last,
            last_run_by=last_run_by,
        )


__all__ = [
    "DIGEST_LOCK_KEY",
    "CooldownDecision",
    "CooldownLock",
    "dialect_insert",
    "is_digest_window",
]
