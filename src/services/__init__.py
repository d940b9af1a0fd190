"""Services module for the fleet trends subsystem."""

from services.database import check_connection, get_sync_session, run_migrations_sync
from services.email import EmailTransport, ResendEmailTransport

__all__ = [
    "check_connection",
    "get_sync_session",
    "run_migrations_sync",
    "EmailTransport",
    "ResendEmailTransport",
]
