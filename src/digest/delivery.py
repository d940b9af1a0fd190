"""Digest delivery: deduplicated in-app notifications and e-mail fan-out."""

from __future__ import annotations

import asyncio
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Callable, Mapping, Sequence

from sqlalchemy.orm import Session

from digest.aggregation import DIGEST_ENTITY_TYPE, DIGEST_KIND, DigestSummary
from digest.gates import dialect_insert
from errors import EmailDeliveryError
from models import UserNotification
from services.email import EmailTransport
from telemetry import Recipient
from time_utils import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailStats:
    """Per-run e-mail accounting."""

    configured: bool
    from_email: str
    attempted: int = 0
    sent: int = 0
    failed: int = 0

    def as_payload(self) -> dict[str, object]:
        return {
            "configured": self.configured,
            "from": self.from_email,
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
        }


def upsert_digest_notifications(
    session_factory: Callable[[], Session],
    recipients: Sequence[Recipient],
    summary: DigestSummary,
    *,
    now: datetime | None = None,
) -> int:
    """Insert one notification per recipient, ignoring existing dedupe keys.

    Returns the number of rows actually inserted. Existing notifications,
    including ones already marked read, are left untouched.
    """
    if not recipients:
        return 0
    timestamp = ensure_utc(now or datetime.now(timezone.utc))
    rows = [
        {
            "recipient_id": recipient.id,
            "title": summary.title,
            "body": summary.body,
            "severity": summary.severity,
            "kind": DIGEST_KIND,
            "entity_type": DIGEST_ENTITY_TYPE,
            "entity_id": summary.date_key,
            "dedupe_key": summary.dedupe_key,
            "is_read": False,
            "created_at": timestamp,
        }
        for recipient in recipients
    ]

    with closing(session_factory()) as session:
        try:
            insert = dialect_insert(session)
            statement = (
                insert(UserNotification)
                .values(rows)
                .on_conflict_do_nothing(index_elements=["recipient_id", "dedupe_key"])
            )
            result = session.execute(statement)
            session.commit()
        except Exception:
            session.rollback()
            raise

    inserted = max(result.rowcount or 0, 0)
    logger.info(
        f"Digest notifications upserted: dedupe_key={summary.dedupe_key} "
        f"recipients={len(rows)} inserted={inserted}"
    )
    return inserted


def select_email_addresses(
    recipients: Sequence[Recipient],
    preferences: Mapping[str, bool],
) -> list[str]:
    """Return addresses for recipients with an e-mail and e-mail not disabled."""
    addresses = []
    for recipient in recipients:
        email = (recipient.email or "").strip()
        if not email:
            continue
        if preferences.get(recipient.id) is False:
            continue
        addresses.append(email)
    return addresses


async def fan_out_emails(
    transport: EmailTransport,
    addresses: Sequence[str],
    *,
    from_email: str,
    subject: str,
    html: str,
    max_concurrency: int,
) -> EmailStats:
    """Send to every address independently and count outcomes.

    Sends run concurrently behind a semaphore; a failed send is logged and
    counted without affecting the others.
    """
    if not transport.configured:
        logger.info("E-mail transport not configured; skipping digest e-mail")
        return EmailStats(configured=False, from_email=from_email)

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def send_one(address: str) -> bool:
        async with semaphore:
            try:
                await transport.send(to=address, from_=from_email, subject=subject, html=html)
            except EmailDeliveryError as exc:
                logger.warning(f"Digest e-mail to {address} failed: {exc}")
                return False
            except Exception:
                logger.exception(f"Digest e-mail to {address} raised unexpectedly")
                return False
            return True

    outcomes = await asyncio.gather(*(send_one(address) for address in addresses))
    sent = sum(1 for outcome in outcomes if outcome)
    return EmailStats(
        configured=True,
        from_email=from_email,
        attempted=len(addresses),
        sent=sent,
        failed=len(addresses) - sent,
    )


__all__ = [
    "EmailStats",
    "fan_out_emails",
    "select_email_addresses",
    "upsert_digest_notifications",
]
