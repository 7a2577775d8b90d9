"""
Unit tests for the role hierarchy and permission tables.
"""
import pytest

from fleetlog.services.roles import Role, can_assign_role, can_delete_user, is_admin_tier


class TestRoleParsing:
    def test_known_values(self):
        assert Role.parse("admin") is Role.admin
        assert Role.parse("super_admin") is Role.super_admin

    @pytest.mark.parametrize("value", [None, "", "owner", 3])
    def test_unknown_falls_back_to_driver(self, value):
        assert Role.parse(value) is Role.driver

    def test_rank_order(self):
        assert Role.driver.rank < Role.admin.rank < Role.super_admin.rank


class TestAdminTier:
    def test_admin_tier_members(self):
        assert is_admin_tier(Role.admin)
        assert is_admin_tier(Role.super_admin)
        assert not is_admin_tier(Role.driver)


class TestDeleteMatrix:
    def test_super_admin_deletes_anyone(self):
        for target in Role:
            assert can_delete_user(Role.super_admin, target)

    def test_admin_deletes_drivers_only(self):
        assert can_delete_user(Role.admin, Role.driver)
        assert not can_delete_user(Role.admin, Role.admin)
        assert not can_delete_user(Role.admin, Role.super_admin)

    def test_driver_deletes_nobody(self):
        for target in Role:
            assert not can_delete_user(Role.driver, target)


class TestAssignMatrix:
    def test_super_admin_assigns_any_role(self):
        for role in Role:
            assert can_assign_role(Role.super_admin, role, is_self=False, super_admin_exists=True)

    def test_admin_cannot_assign(self):
        assert not can_assign_role(Role.admin, Role.admin, is_self=False, super_admin_exists=True)
        assert not can_assign_role(Role.admin, Role.driver, is_self=False, super_admin_exists=True)

    def test_bootstrap_self_promotion_when_none_exists(self):
        assert can_assign_role(Role.driver, Role.super_admin, is_self=True, super_admin_exists=False)
        assert can_assign_role(Role.admin, Role.super_admin, is_self=True, super_admin_exists=False)

    def test_bootstrap_closed_once_super_admin_exists(self):
        assert not can_assign_role(Role.admin, Role.super_admin, is_self=True, super_admin_exists=True)

    def test_bootstrap_only_for_self(self):
        assert not can_assign_role(Role.admin, Role.super_admin, is_self=False, super_admin_exists=False)

    def test_bootstrap_only_to_super_admin(self):
        assert not can_assign_role(Role.driver, Role.admin, is_self=True, super_admin_exists=False)
