"""Role checks for trend action and digest operations."""

from __future__ import annotations

from errors import AuthorizationError

TREND_OPERATOR_ROLES = frozenset({"owner", "mechanic"})
DIGEST_TRIGGER_ROLES = frozenset({"owner"})


def require_role(role: str | None, allowed: frozenset[str]) -> str:
    """Return the role when permitted, otherwise raise AuthorizationError."""
    if role is None or role not in allowed:
        raise AuthorizationError(role, allowed)
    return role


def require_trend_operator(role: str | None) -> str:
    """Require a role that may view and change trend actions."""
    return require_role(role, TREND_OPERATOR_ROLES)


def require_digest_trigger(role: str | None) -> str:
    """Require a role that may start a manual digest run."""
    return require_role(role, DIGEST_TRIGGER_ROLES)


__all__ = [
    "DIGEST_TRIGGER_ROLES",
    "TREND_OPERATOR_ROLES",
    "require_digest_trigger",
    "require_role",
    "require_trend_operator",
]
