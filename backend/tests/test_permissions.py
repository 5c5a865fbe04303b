"""
Permission resolution tests.

Verifies:
- Role permissions are unioned across roles
- DENY overrides suppress role grants, ALLOW overrides add missing codes
- Super admins hold every code regardless of overrides
- Inactive users resolve to nothing
- ANY/ALL checks report the missing codes
- Role management guards (default roles, assigned roles)
"""

import pytest

from repairpos.errors import AuthorizationError, StateConflictError, ValidationError
from repairpos.models import SecurityEvent
from repairpos.permissions import (
    CASHIER,
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    TECHNICIAN,
    PermissionCode as P,
    parse_permission_code,
)
from repairpos.services import auth_service, permission_service
from repairpos.services.permission_service import MODE_ALL, MODE_ANY


# =============================================================================
# CATALOGUE
# =============================================================================


class TestPermissionCatalogue:

    def test_every_code_has_one_definition(self):
        codes = [definition[0] for definition in PERMISSION_DEFINITIONS]
        assert len(codes) == len(set(codes)) == len(P)

    def test_parse_rejects_unknown_code(self):
        with pytest.raises(ValidationError):
            parse_permission_code("LAUNCH_ROCKETS")

    def test_parse_normalizes_case(self):
        assert parse_permission_code(" create_sale ") is P.CREATE_SALE

    def test_seeding_is_idempotent(self, setup_roles):
        assert permission_service.initialize_permissions() == 0
        assert permission_service.assign_default_role_permissions() == 0


# =============================================================================
# RESOLUTION
# =============================================================================


class TestResolution:

    def test_role_permissions_resolved(self, cashier_user):
        effective = permission_service.resolve_permissions(cashier_user.id)
        assert effective.allowed == frozenset(DEFAULT_ROLE_PERMISSIONS[CASHIER])
        assert not effective.is_super_admin

    def test_multiple_roles_are_unioned(self, make_user):
        user = make_user("both", roles=(CASHIER, TECHNICIAN))
        codes = permission_service.get_user_permissions(user.id)
        assert P.CREATE_SALE.value in codes
        assert P.COMPLETE_REPAIR.value in codes

    def test_deny_override_suppresses_role_grant(self, cashier_user):
        permission_service.set_permission_override(
            user_id=cashier_user.id,
            permission_code="CREATE_SALE",
            effect="DENY",
            granted_by_user_id=None,
            reason="Training period",
        )
        assert not permission_service.user_has_permission(cashier_user.id, P.CREATE_SALE)

    def test_allow_override_grants_missing_permission(self, cashier_user):
        assert not permission_service.user_has_permission(cashier_user.id, P.VOID_SALE)
        permission_service.set_permission_override(
            user_id=cashier_user.id,
            permission_code="VOID_SALE",
            effect="ALLOW",
            granted_by_user_id=None,
        )
        assert permission_service.user_has_permission(cashier_user.id, P.VOID_SALE)

    def test_override_is_replaced_not_duplicated(self, cashier_user):
        for effect in ("ALLOW", "DENY"):
            permission_service.set_permission_override(
                user_id=cashier_user.id,
                permission_code="VOID_SALE",
                effect=effect,
                granted_by_user_id=None,
            )
        overrides = permission_service.list_permission_overrides(cashier_user.id)
        assert [(o.permission_code, o.effect) for o in overrides] == [("VOID_SALE", "DENY")]

    def test_removing_override_restores_role_permission(self, cashier_user):
        permission_service.set_permission_override(
            user_id=cashier_user.id, permission_code="CREATE_SALE", effect="DENY", granted_by_user_id=None,
        )
        assert permission_service.remove_permission_override(user_id=cashier_user.id, permission_code="CREATE_SALE")
        assert permission_service.user_has_permission(cashier_user.id, P.CREATE_SALE)

    def test_super_admin_ignores_deny_overrides(self, make_user):
        boss = make_user("boss", roles=(CASHIER,), is_super_admin=True)
        permission_service.set_permission_override(
            user_id=boss.id, permission_code="MANAGE_ROLES", effect="DENY", granted_by_user_id=None,
        )
        effective = permission_service.resolve_permissions(boss.id)
        assert effective.is_super_admin
        assert effective.allowed == frozenset(P)
        assert permission_service.user_has_permission(boss.id, P.MANAGE_ROLES)

    def test_inactive_user_has_nothing(self, cashier_user, admin_user):
        auth_service.deactivate_user(cashier_user.id, actor_id=admin_user.id)
        assert permission_service.get_user_permissions(cashier_user.id) == set()

    def test_invalid_override_effect_rejected(self, cashier_user):
        with pytest.raises(ValidationError):
            permission_service.set_permission_override(
                user_id=cashier_user.id, permission_code="CREATE_SALE", effect="MAYBE", granted_by_user_id=None,
            )


# =============================================================================
# CHECKS
# =============================================================================


class TestChecks:

    def test_all_mode_reports_missing(self, cashier_user):
        result = permission_service.check_permissions(
            cashier_user.id, [P.CREATE_SALE, P.VOID_SALE, P.MANAGE_ROLES], MODE_ALL,
        )
        assert not result.allowed
        assert set(result.missing) == {"VOID_SALE", "MANAGE_ROLES"}

    def test_any_mode_passes_with_one(self, cashier_user):
        result = permission_service.check_permissions(cashier_user.id, [P.VOID_SALE, P.CREATE_SALE], MODE_ANY)
        assert result.allowed
        assert result.missing == ()

    def test_empty_requirement_passes(self, cashier_user):
        assert permission_service.check_permissions(cashier_user.id, []).allowed

    def test_require_logs_denial(self, cashier_user, db_session):
        with pytest.raises(AuthorizationError) as exc:
            permission_service.require_permissions(cashier_user.id, ["VOID_SALE"], resource="/api/sales/1/void")
        assert exc.value.missing == ["VOID_SALE"]

        event = db_session.query(SecurityEvent).filter_by(event_type="ACCESS_DENIED").one()
        assert event.user_id == cashier_user.id
        assert event.resource == "/api/sales/1/void"
        assert not event.success


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================


class TestRoleManagement:

    def test_create_role_uppercases_name(self, setup_roles):
        role = permission_service.create_role(name="night shift", permission_codes=["CREATE_SALE"])
        assert role.name == "NIGHT SHIFT"
        assert role.permission_codes() == ["CREATE_SALE"]

    def test_default_role_cannot_be_renamed_or_deleted(self, setup_roles):
        role = permission_service.get_role_by_name("cashier")
        with pytest.raises(StateConflictError):
            permission_service.update_role(role.id, name="TILL")
        with pytest.raises(StateConflictError):
            permission_service.delete_role(role.id)

    def test_assigned_role_cannot_be_deleted(self, make_user):
        role = permission_service.create_role(name="AUDITOR", permission_codes=["VIEW_SALES"])
        make_user("auditor", roles=("AUDITOR",))
        with pytest.raises(StateConflictError):
            permission_service.delete_role(role.id)

    def test_grant_and_revoke_on_role(self, cashier_user):
        permission_service.grant_permission_to_role("CASHIER", "VOID_SALE")
        assert permission_service.user_has_permission(cashier_user.id, P.VOID_SALE)

        assert permission_service.revoke_permission_from_role("CASHIER", "VOID_SALE")
        assert not permission_service.user_has_permission(cashier_user.id, P.VOID_SALE)

    def test_user_keeps_last_role(self, cashier_user):
        with pytest.raises(StateConflictError):
            auth_service.remove_role(cashier_user.id, CASHIER)
