"""Unit tests for trend operator role checks."""

import pytest

from errors import AuthorizationError
from trends.authority import require_digest_trigger, require_trend_operator


@pytest.mark.parametrize("role", ["owner", "mechanic"])
def test_operators_are_allowed(role) -> None:
    """Owners and mechanics may manage trend actions."""
    assert require_trend_operator(role) == role


@pytest.mark.parametrize("role", ["operations_manager", "employee", None, ""])
def test_other_roles_are_rejected(role) -> None:
    """Any other role raises an authorization error."""
    with pytest.raises(AuthorizationError) as excinfo:
        require_trend_operator(role)

    assert excinfo.value.status_code == 403


def test_manual_digest_requires_owner() -> None:
    """Only owners may start a manual digest."""
    assert require_digest_trigger("owner") == "owner"
    with pytest.raises(AuthorizationError):
        require_digest_trigger("mechanic")
