"""Error taxonomy for trend alerting and digest operations.

Gate rejections (time gate, cooldown) are not errors and never appear here;
they are reported as skipped digest results.
"""

from __future__ import annotations


class FleetOpsError(Exception):
    """Base class for domain errors raised by this service."""

    status_code = 500


class AuthorizationError(FleetOpsError):
    """Caller lacks a role required for the requested operation."""

    status_code = 403

    def __init__(self, role: str | None, allowed: frozenset[str] | set[str]) -> None:
        self.role = role
        self.allowed = frozenset(allowed)
        super().__init__(
            f"Not authorized: role={role or 'none'} allowed={','.join(sorted(self.allowed))}"
        )


class InvalidStatusError(FleetOpsError, ValueError):
    """Requested trend action status is not one of the supported values."""

    status_code = 400


class TrendActionNotFoundError(FleetOpsError, LookupError):
    """Trend action id does not exist."""

    status_code = 404


class ActionConflictError(FleetOpsError):
    """Transition would create a second active action for the same asset and kind."""

    status_code = 409


class EmailDeliveryError(FleetOpsError):
    """One outbound e-mail could not be delivered."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider_status = status_code


__all__ = [
    "ActionConflictError",
    "AuthorizationError",
    "EmailDeliveryError",
    "FleetOpsError",
    "InvalidStatusError",
    "TrendActionNotFoundError",
]
