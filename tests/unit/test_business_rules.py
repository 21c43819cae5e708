"""Unit tests for amount coercion and role permissions."""

import math

import pytest

from procurement_core.business.amounts import coerce_amount, is_numeric_amount, strict_amount
from procurement_core.business.permissions import PERMISSION_KEYS, full_permissions, permissions_for_role
from procurement_core.errors import DataShapeError


@pytest.mark.unit
class TestAmounts:
    """Lenient and strict coercion of stored amounts."""

    @pytest.mark.parametrize("value,expected", [
        (200, 200.0),
        (12.5, 12.5),
        ("350", 350.0),
        (" 7.25 ", 7.25),
        (None, 0.0),
        ("abc", 0.0),
        (True, 0.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
        ({"v": 1}, 0.0),
    ])
    def test_coerce_amount(self, value, expected):
        assert coerce_amount(value) == expected

    def test_coerce_amount_custom_default(self):
        assert coerce_amount("bad", default=-1.0) == -1.0

    def test_is_numeric_amount(self):
        assert is_numeric_amount(3)
        assert not is_numeric_amount("3")
        assert not is_numeric_amount(False)
        assert not is_numeric_amount(math.nan)

    def test_strict_amount(self):
        assert strict_amount("spent", "42") == 42.0
        with pytest.raises(DataShapeError) as exc_info:
            strict_amount("spent", "forty-two")
        assert exc_info.value.field == "spent"


@pytest.mark.unit
class TestPermissions:
    """Role-derived permission maps."""

    def test_officer_is_restricted(self):
        permissions = permissions_for_role("officer")

        assert permissions["canCreateAccounts"] is False
        assert permissions["canDeleteItems"] is False
        assert permissions["canApprove"] is False
        assert permissions["requiresApproval"] is True
        assert permissions["canCreateInvoices"] is True

    @pytest.mark.parametrize("role", ["manager", "admin"])
    def test_other_roles_have_full_rights(self, role):
        permissions = permissions_for_role(role)

        assert permissions["requiresApproval"] is False
        assert all(permissions[key] for key in PERMISSION_KEYS if key != "requiresApproval")

    def test_full_permissions_matches_admin(self):
        assert full_permissions() == permissions_for_role("admin")
        assert set(full_permissions()) == set(PERMISSION_KEYS)
