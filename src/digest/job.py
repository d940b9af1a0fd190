"""Trend action digest job: gate, aggregate, deliver, and audit one run."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Callable

from sqlalchemy.orm import Session

from config import settings
from digest.aggregation import (
    DigestSummary,
    asset_key,
    build_digest_email_html,
    summarize_actions,
)
from digest.delivery import (
    EmailStats,
    fan_out_emails,
    select_email_addresses,
    upsert_digest_notifications,
)
from digest.gates import CooldownLock, is_digest_window
from digest.run_log import DigestRunCreateInput, DigestRunRepository
from logging_setup import log_context
from services.email import EmailTransport
from telemetry import AssetSummary, TelemetryReader
from time_utils import ensure_utc, format_local_clock, local_date_key
from trends.repository import TrendActionRepository

logger = logging.getLogger(__name__)


class DigestOutcome(str, Enum):
    """Terminal state of one digest invocation."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    COOLDOWN = "cooldown"
    FAILED = "failed"


@dataclass(frozen=True)
class DigestRunResult:
    """Structured result returned to cron, manual, and CLI callers."""

    source: str
    outcome: DigestOutcome
    date_key: str
    skip_reason: str | None = None
    sent_to: int = 0
    open_count: int = 0
    in_review_count: int = 0
    top_assets: list[str] = field(default_factory=list)
    email: EmailStats | None = None
    error: str | None = None
    retry_after_seconds: int | None = None
    next_available_at: datetime | None = None
    run_id: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (DigestOutcome.COMPLETED, DigestOutcome.SKIPPED)

    def to_payload(self) -> dict[str, object]:
        """Return the camelCase response body for this result."""
        if self.outcome is DigestOutcome.FAILED:
            return {"ok": False, "source": self.source, "error": self.error}
        if self.outcome is DigestOutcome.COOLDOWN:
            return {
                "ok": False,
                "source": self.source,
                "error": self.skip_reason,
                "retryAfterSeconds": self.retry_after_seconds,
                "next_available_at": (
                    self.next_available_at.isoformat() if self.next_available_at else None
                ),
            }
        if self.outcome is DigestOutcome.SKIPPED:
            return {
                "ok": True,
                "source": self.source,
                "skipped": self.skip_reason,
                "dateKey": self.date_key,
            }
        return {
            "ok": True,
            "source": self.source,
            "sentTo": self.sent_to,
            "openCount": self.open_count,
            "inReviewCount": self.in_review_count,
            "topAssets": list(self.top_assets),
            "dateKey": self.date_key,
            "email": self.email.as_payload() if self.email else None,
        }


class DigestJob:
    """Runs the trend actions digest for cron ticks and manual triggers."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        transport: EmailTransport,
        *,
        reader: TelemetryReader | None = None,
        actions: TrendActionRepository | None = None,
        runs: DigestRunRepository | None = None,
        cooldown: CooldownLock | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._transport = transport
        self._reader = reader or TelemetryReader(session_factory)
        self._actions = actions or TrendActionRepository(session_factory)
        self._runs = runs or DigestRunRepository(session_factory)
        self._cooldown = cooldown or CooldownLock(session_factory)
        self._now_provider = now_provider or (lambda: datetime.now(timezone.utc))

    async def run(
        self,
        source: str,
        *,
        initiated_by: str | None = None,
        now: datetime | None = None,
    ) -> DigestRunResult:
        """Execute one digest attempt and record it in the run ledger.

        Cron runs pass only at the configured local hour; manual runs skip the
        time gate but must claim the cooldown lock. Exceptions raised while
        aggregating or writing notifications produce a failed run row and a
        ``FAILED`` result instead of propagating.
        """
        if source not in ("cron", "manual"):
            raise ValueError(f"Invalid digest source: {source!r}")
        timestamp = ensure_utc(now or self._now_provider())
        date_key = local_date_key(timestamp)

        with log_context({"run_source": source, "date_key": date_key, "initiated_by": initiated_by}):
            if source == "cron" and not is_digest_window(timestamp):
                reason = _window_skip_reason()
                run = await asyncio.to_thread(
                    self._runs.record,
                    DigestRunCreateInput(
                        run_source=source,
                        initiated_by=initiated_by,
                        success=True,
                        skipped=True,
                        date_key=date_key,
                        meta={"reason": reason},
                    ),
                    now=timestamp,
                )
                logger.info(f"Digest skipped: {reason}")
                return DigestRunResult(
                    source=source,
                    outcome=DigestOutcome.SKIPPED,
                    date_key=date_key,
                    skip_reason=reason,
                    run_id=run.id,
                )

            try:
                if source == "manual":
                    decision = await asyncio.to_thread(
                        self._cooldown.claim, initiated_by, now=timestamp
                    )
                    if not decision.allowed:
                        return await asyncio.to_thread(
                            self._cooldown_result,
                            source,
                            initiated_by,
                            date_key,
                            timestamp,
                            decision,
                        )
                return await self._deliver(source, initiated_by, date_key, timestamp)
            except Exception as exc:
                logger.exception("Digest run failed")
                return await asyncio.to_thread(
                    self._failure_result, source, initiated_by, date_key, timestamp, exc
                )

    async def _deliver(
        self,
        source: str,
        initiated_by: str | None,
        date_key: str,
        timestamp: datetime,
    ) -> DigestRunResult:
        recipients, summary, inserted, preferences = await asyncio.to_thread(
            self._aggregate_and_notify, date_key, timestamp
        )
        stats = await fan_out_emails(
            self._transport,
            select_email_addresses(recipients, preferences),
            from_email=settings.digest.from_email,
            subject=summary.title,
            html=build_digest_email_html(summary, settings.digest.app_url),
            max_concurrency=settings.digest.email_max_concurrency,
        )

        run = await asyncio.to_thread(
            self._runs.record,
            DigestRunCreateInput(
                run_source=source,
                initiated_by=initiated_by,
                success=True,
                date_key=date_key,
                sent_to=len(recipients),
                open_count=summary.open_count,
                in_review_count=summary.in_review_count,
                email_attempted=stats.attempted,
                email_sent=stats.sent,
                email_failed=stats.failed,
                meta=_summary_meta(summary, inserted),
            ),
            now=timestamp,
        )
        logger.info(
            f"Digest completed: recipients={len(recipients)} open={summary.open_count} "
            f"in_review={summary.in_review_count} email_sent={stats.sent} "
            f"email_failed={stats.failed}"
        )
        return DigestRunResult(
            source=source,
            outcome=DigestOutcome.COMPLETED,
            date_key=date_key,
            sent_to=len(recipients),
            open_count=summary.open_count,
            in_review_count=summary.in_review_count,
            top_assets=summary.top_asset_descriptions(),
            email=stats,
            run_id=run.id,
        )

    def _aggregate_and_notify(self, date_key: str, timestamp: datetime):
        """Blocking store work for one run: read, summarize, and write notifications."""
        recipients = self._reader.list_recipients()
        actions = self._actions.list_active_actions(limit=settings.digest.active_action_limit)
        summary = summarize_actions(
            actions,
            date_key=date_key,
            summaries=self._asset_summaries(actions),
            top_limit=settings.digest.top_assets_limit,
            high_severity_threshold=settings.digest.high_severity_open_threshold,
        )
        inserted = upsert_digest_notifications(
            self._session_factory, recipients, summary, now=timestamp
        )
        preferences = self._reader.email_preferences(recipient.id for recipient in recipients)
        return recipients, summary, inserted, preferences

    def _asset_summaries(self, actions) -> dict[str, AssetSummary]:
        summaries: dict[str, AssetSummary] = {}
        for asset_type in ("vehicle", "equipment"):
            ids = {action.asset_id for action in actions if action.asset_type == asset_type}
            for asset_id, summary in self._reader.asset_summaries(asset_type, ids).items():
                summaries[asset_key(asset_type, asset_id)] = summary
        return summaries

    def _cooldown_result(self, source, initiated_by, date_key, timestamp, decision):
        reason = (
            "Digest was run recently. Try again after "
            f"{format_local_clock(decision.next_available_at)}."
        )
        run = self._runs.record(
            DigestRunCreateInput(
                run_source=source,
                initiated_by=initiated_by,
                success=True,
                skipped=True,
                date_key=date_key,
                meta={
                    "reason": "cooldown",
                    "retry_after_seconds": decision.retry_after_seconds,
                    "next_available_at": decision.next_available_at.isoformat(),
                    "last_run_by": decision.last_run_by,
                },
            ),
            now=timestamp,
        )
        return DigestRunResult(
            source=source,
            outcome=DigestOutcome.COOLDOWN,
            date_key=date_key,
            skip_reason=reason,
            retry_after_seconds=decision.retry_after_seconds,
            next_available_at=decision.next_available_at,
            run_id=run.id,
        )

    def _failure_result(self, source, initiated_by, date_key, timestamp, exc):
        message = str(exc) or exc.__class__.__name__
        run_id = None
        try:
            run = self._runs.record(
                DigestRunCreateInput(
                    run_source=source,
                    initiated_by=initiated_by,
                    success=False,
                    date_key=date_key,
                    error_message=message,
                    meta={"error_type": exc.__class__.__name__},
                ),
                now=timestamp,
            )
            run_id = run.id
        except Exception:
            logger.exception("Failed to record failed digest run")
        return DigestRunResult(
            source=source,
            outcome=DigestOutcome.FAILED,
            date_key=date_key,
            error=message,
            run_id=run_id,
        )


def _window_skip_reason() -> str:
    hour = settings.digest.target_hour
    suffix = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"Not {display_hour}:00 {suffix} {settings.digest.timezone}."


def _summary_meta(summary: DigestSummary, inserted: int) -> dict[str, object]:
    return {
        "top_assets": summary.top_asset_descriptions(),
        "action_type_counts": dict(summary.action_type_counts),
        "severity": summary.severity,
        "lines": list(summary.lines),
        "notifications_inserted": inserted,
    }


__all__ = ["DigestJob", "DigestOutcome", "DigestRunResult"]
