"""Repository helpers for trend action persistence."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ActionConflictError, InvalidStatusError, TrendActionNotFoundError
from models import ACTION_STATUSES, ACTION_TYPES, ACTIVE_ACTION_STATUSES, ASSET_TYPES, TrendAction
from time_utils import ensure_utc

logger = logging.getLogger(__name__)

RECENT_ACTIONS_LIMIT = 30
ACTIVE_ACTIONS_LIMIT = 500
RESOLVED = "Resolved"

_STATUS_ALIASES = {
    "open": "Open",
    "inreview": "In Review",
    "in review": "In Review",
    "in_review": "In Review",
    "resolved": RESOLVED,
}


@dataclass(frozen=True)
class TrendActionCreateInput:
    """Input payload for opening a trend action."""

    asset_type: str
    asset_id: str
    action_type: str
    summary: str
    actor_id: str
    detail: Mapping[str, object] | None = None


@dataclass(frozen=True)
class EnsureResult:
    """Outcome of an ensure call; ``action`` is the active row either way."""

    created: bool
    action: TrendAction


def normalize_status(value: str | None) -> str:
    """Map a requested status (including the ``InReview`` alias) to its stored form."""
    if value in ACTION_STATUSES:
        return value
    canonical = _STATUS_ALIASES.get((value or "").strip().lower())
    if canonical is None:
        raise InvalidStatusError(f"Invalid status: {value!r}")
    return canonical


class TrendActionRepository:
    """Repository enforcing at most one active action per asset and kind."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """Initialize repository with a SQLAlchemy session factory."""
        self._session_factory = session_factory

    def ensure_action(
        self,
        payload: TrendActionCreateInput,
        *,
        now: datetime | None = None,
    ) -> EnsureResult:
        """Open a trend action unless an Open or In Review one already exists."""
        _validate_identity(payload.asset_type, payload.action_type)

        def handler(session: Session) -> EnsureResult:
            existing = _find_active(
                session, payload.asset_type, payload.asset_id, payload.action_type
            )
            if existing is not None:
                return EnsureResult(created=False, action=existing)
            timestamp = ensure_utc(now or datetime.now(timezone.utc))
            action = TrendAction(
                asset_type=payload.asset_type,
                asset_id=payload.asset_id,
                action_type=payload.action_type,
                status="Open",
                trend_direction="Declining",
                summary=payload.summary,
                detail=dict(payload.detail or {}),
                created_by=payload.actor_id,
                created_at=timestamp,
                updated_at=timestamp,
            )
            session.add(action)
            session.flush()
            return EnsureResult(created=True, action=action)

        try:
            result = self._execute(handler)
        except IntegrityError:
            # A concurrent ensure inserted the active row first.
            existing = self._execute(
                lambda session: _find_active(
                    session, payload.asset_type, payload.asset_id, payload.action_type
                )
            )
            if existing is None:
                raise
            logger.info(
                f"Trend action already opened concurrently: {payload.asset_type}/"
                f"{payload.asset_id}/{payload.action_type}"
            )
            return EnsureResult(created=False, action=existing)

        if result.created:
            logger.info(
                f"Opened trend action {result.action.id} for {payload.asset_type}/"
                f"{payload.asset_id} ({payload.action_type})"
            )
        return result

    def set_status(
        self,
        action_id: int,
        next_status: str,
        actor_id: str,
        *,
        now: datetime | None = None,
    ) -> TrendAction:
        """Move an action to a new status, stamping or clearing resolution fields."""
        status = normalize_status(next_status)

        def handler(session: Session) -> TrendAction:
            action = session.get(TrendAction, action_id)
            if action is None:
                raise TrendActionNotFoundError(f"Trend action {action_id} not found")
            if status == RESOLVED and action.status == RESOLVED:
                # Original resolver and time stand.
                return action
            if status in ACTIVE_ACTION_STATUSES and action.status not in ACTIVE_ACTION_STATUSES:
                other = _find_active(
                    session, action.asset_type, action.asset_id, action.action_type
                )
                if other is not None:
                    raise ActionConflictError(
                        f"Trend action {other.id} is already active for "
                        f"{action.asset_type}/{action.asset_id} ({action.action_type})"
                    )
            timestamp = ensure_utc(now or datetime.now(timezone.utc))
            action.status = status
            action.updated_at = timestamp
            if status == RESOLVED:
                action.resolved_at = timestamp
                action.resolved_by = actor_id
            else:
                action.resolved_at = None
                action.resolved_by = None
            session.flush()
            return action

        action = self._execute(handler)
        logger.info(f"Trend action {action_id} set to {status} by {actor_id}")
        return action

    def get(self, action_id: int) -> TrendAction | None:
        """Return an action by id."""

        def handler(session: Session) -> TrendAction | None:
            return session.get(TrendAction, action_id)

        return self._execute(handler)

    def list_recent_actions(
        self,
        asset_type: str,
        asset_id: str,
        *,
        limit: int = RECENT_ACTIONS_LIMIT,
    ) -> list[TrendAction]:
        """Return an asset's action history, newest first."""

        def handler(session: Session) -> list[TrendAction]:
            return list(
                session.query(TrendAction)
                .filter(
                    TrendAction.asset_type == asset_type,
                    TrendAction.asset_id == asset_id,
                )
                .order_by(TrendAction.created_at.desc(), TrendAction.id.desc())
                .limit(limit)
                .all()
            )

        return self._execute(handler)

    def list_active_actions(self, *, limit: int = ACTIVE_ACTIONS_LIMIT) -> list[TrendAction]:
        """Return Open and In Review actions across all assets, newest first."""

        def handler(session: Session) -> list[TrendAction]:
            return list(
                session.query(TrendAction)
                .filter(TrendAction.status.in_(ACTIVE_ACTION_STATUSES))
                .order_by(TrendAction.created_at.desc(), TrendAction.id.desc())
                .limit(limit)
                .all()
            )

        return self._execute(handler)

    def list_created_before(
        self,
        cutoff: datetime,
        *,
        limit: int = ACTIVE_ACTIONS_LIMIT,
    ) -> list[TrendAction]:
        """Return actions of any status created at or before the cutoff, newest first."""
        normalized_cutoff = ensure_utc(cutoff)

        def handler(session: Session) -> list[TrendAction]:
            return list(
                session.query(TrendAction)
                .filter(TrendAction.created_at <= normalized_cutoff)
                .order_by(TrendAction.created_at.desc(), TrendAction.id.desc())
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


def _validate_identity(asset_type: str, action_type: str) -> None:
    if asset_type not in ASSET_TYPES:
        raise ValueError(f"Invalid asset type: {asset_type!r}")
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Invalid action type: {action_type!r}")


def _find_active(
    session: Session,
    asset_type: str,
    asset_id: str,
    action_type: str,
) -> TrendAction | None:
    return (
        session.query(TrendAction)
        .filter(
            TrendAction.asset_type == asset_type,
            TrendAction.asset_id == asset_id,
            TrendAction.action_type == action_type,
            TrendAction.status.in_(ACTIVE_ACTION_STATUSES),
        )
        .order_by(TrendAction.created_at.desc())
        .first()
    )


__all__ = [
    "ACTIVE_ACTIONS_LIMIT",
    "EnsureResult",
    "RECENT_ACTIONS_LIMIT",
    "TrendActionCreateInput",
    "TrendActionRepository",
    "normalize_status",
]
