"""Pytest configuration for the fleet trends test suite."""

import logging
import os
import sys
from pathlib import Path

import pytest


def _ensure_test_env() -> None:
    """Seed deterministic settings before the config module loads."""
    os.environ.setdefault("DIGEST_TIMEZONE", "America/Chicago")
    os.environ.setdefault("DIGEST_TARGET_HOUR", "15")
    os.environ.setdefault("DIGEST_COOLDOWN_MINUTES", "15")
    os.environ.setdefault("LOG_JSON", "false")
    os.environ.pop("CRON_SECRET", None)
    os.environ.pop("RESEND_API_KEY", None)


_ensure_test_env()

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models  # noqa: E402
from errors import EmailDeliveryError  # noqa: E402


@pytest.fixture()
def sqlite_engine():
    """Provide an in-memory SQLite engine shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def sqlite_session_factory(sqlite_engine):
    """Provide a session factory bound to the in-memory schema."""
    return sessionmaker(bind=sqlite_engine)


class FakeEmailTransport:
    """Records sends and fails for selected addresses."""

    def __init__(self, *, configured: bool = True, fail_for: set[str] | None = None) -> None:
        self._configured = configured
        self.fail_for = set(fail_for or ())
        self.sent: list[dict[str, str]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def send(self, *, to: str, from_: str, subject: str, html: str) -> None:
        if to in self.fail_for:
            raise EmailDeliveryError(f"Resend 500: rejected {to}", status_code=500)
        self.sent.append({"to": to, "from": from_, "subject": subject, "html": html})


@pytest.fixture()
def email_transport_factory():
    """Build fake e-mail transports for digest tests."""
    return FakeEmailTransport


@pytest.fixture()
def add_rows(sqlite_session_factory):
    """Persist ORM rows in one transaction."""

    def _add(*rows) -> None:
        session = sqlite_session_factory()
        try:
            session.add_all(rows)
            session.commit()
        finally:
            session.close()

    return _add


@pytest.fixture()
def restore_root_logging():
    """Put back the root logger state after a test reconfigures it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
