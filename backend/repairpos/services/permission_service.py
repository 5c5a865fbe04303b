# Overview: Permission resolution, capability checks, overrides, role management and security events.

"""
Permission resolution and security event logging.

Effective permissions for a principal:
  1. super admin -> every PermissionCode, nothing else consulted
  2. union of the permission sets of all assigned roles
  3. ALLOW overrides add their codes
  4. DENY overrides remove their codes (applied last, so DENY always wins)

Nothing is cached: every request resolves again so role or override
edits take effect on the next call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from flask import current_app

from ..errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Permission, Role, RolePermission, SecurityEvent, User, UserPermissionOverride, UserRole
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    PermissionCode,
    parse_permission_code,
)
from ..time_utils import utcnow
from .concurrency import run_in_transaction


ALL_CODES = frozenset(PermissionCode)

MODE_ANY = "ANY"
MODE_ALL = "ALL"

OVERRIDE_EFFECTS = {"ALLOW", "DENY"}


@dataclass(frozen=True)
class EffectivePermissions:
    user_id: int
    is_super_admin: bool
    allowed: frozenset = field(default_factory=frozenset)

    def has(self, code) -> bool:
        return self.is_super_admin or parse_permission_code(code) in self.allowed

    def codes(self) -> list[str]:
        return sorted(code.value for code in self.allowed)


@dataclass(frozen=True)
class CheckResult:
    allowed: bool
    missing: tuple = ()


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit it.

    event_type examples: ACCESS_DENIED, LOGIN_FAILED, LOGIN_SUCCESS,
    ROLE_ASSIGNED, ROLE_REVOKED, OVERRIDE_SET, OVERRIDE_REMOVED.
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def _load_user(user_or_id) -> User:
    if isinstance(user_or_id, User):
        return user_or_id
    user = db.session.get(User, user_or_id)
    if user is None:
        raise NotFoundError(f"User {user_or_id} not found", {"user_id": user_or_id})
    return user


def _known_codes(raw_codes: Iterable[str]) -> set[PermissionCode]:
    codes = set()
    for raw in raw_codes:
        try:
            codes.add(PermissionCode(raw))
        except ValueError:
            current_app.logger.warning("Ignoring unknown permission code in database: %s", raw)
    return codes


def resolve_permissions(user_or_id) -> EffectivePermissions:
    """Effective permission set for a principal. Pure read."""
    user = _load_user(user_or_id)

    if not user.is_active:
        return EffectivePermissions(user_id=user.id, is_super_admin=False, allowed=frozenset())

    if user.is_super_admin:
        return EffectivePermissions(user_id=user.id, is_super_admin=True, allowed=ALL_CODES)

    role_codes = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user.id)
        .distinct()
        .all()
    )
    allowed = _known_codes(code for (code,) in role_codes)

    overrides = db.session.query(UserPermissionOverride).filter_by(user_id=user.id).all()
    allowed |= _known_codes(o.permission_code for o in overrides if o.effect == "ALLOW")
    allowed -= _known_codes(o.permission_code for o in overrides if o.effect == "DENY")

    return EffectivePermissions(user_id=user.id, is_super_admin=False, allowed=frozenset(allowed))


def get_user_permissions(user_id: int) -> set[str]:
    """Effective permission codes as plain strings."""
    return {code.value for code in resolve_permissions(user_id).allowed}


def check_permissions(user_or_id, required_codes: Iterable, mode: str = MODE_ALL) -> CheckResult:
    """
    ANY: at least one required code must be held. ALL: every one.
    An empty requirement list always passes.
    """
    if mode not in (MODE_ANY, MODE_ALL):
        raise ValidationError(f"Invalid check mode: {mode}")

    required = [parse_permission_code(code) for code in required_codes]
    if not required:
        return CheckResult(allowed=True)

    effective = resolve_permissions(user_or_id)
    if effective.is_super_admin:
        return CheckResult(allowed=True)

    missing = tuple(code.value for code in required if code not in effective.allowed)
    if mode == MODE_ANY:
        allowed = len(missing) < len(required)
    else:
        allowed = not missing
    return CheckResult(allowed=allowed, missing=() if allowed else missing)


def user_has_permission(user_id: int, permission_code) -> bool:
    return check_permissions(user_id, [permission_code]).allowed


def require_permissions(
    user_id: int,
    required_codes: Iterable,
    mode: str = MODE_ALL,
    *,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise AuthorizationError when the check fails.

    Denials are logged as ACCESS_DENIED security events listing the
    missing codes; grants are not logged.
    """
    required = [parse_permission_code(code) for code in required_codes]
    result = check_permissions(user_id, required, mode)
    if result.allowed:
        return

    missing = list(result.missing)
    log_security_event(
        user_id=user_id,
        event_type="ACCESS_DENIED",
        success=False,
        resource=resource,
        action=f"{mode}_OF:{','.join(code.value for code in required)}",
        reason=f"Missing: {', '.join(missing)}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    current_app.logger.info("Access denied user=%s resource=%s missing=%s", user_id, resource, missing)
    raise AuthorizationError("Permission denied", missing)


# =============================================================================
# PER-USER OVERRIDES
# =============================================================================

def set_permission_override(
    *,
    user_id: int,
    permission_code: str,
    effect: str,
    granted_by_user_id: int | None,
    reason: str | None = None,
) -> UserPermissionOverride:
    """Create or replace the ALLOW/DENY override for (user, code)."""
    code = parse_permission_code(permission_code)
    effect = (effect or "").upper()
    if effect not in OVERRIDE_EFFECTS:
        raise ValidationError("effect must be ALLOW or DENY")

    def _op() -> UserPermissionOverride:
        _load_user(user_id)
        override = db.session.query(UserPermissionOverride).filter_by(
            user_id=user_id,
            permission_code=code.value,
        ).first()
        if override is None:
            override = UserPermissionOverride(user_id=user_id, permission_code=code.value)
            db.session.add(override)
        override.effect = effect
        override.reason = reason
        override.granted_by_user_id = granted_by_user_id
        override.granted_at = utcnow()
        db.session.flush()
        return override

    return run_in_transaction(_op)


def remove_permission_override(*, user_id: int, permission_code: str) -> bool:
    code = parse_permission_code(permission_code)

    def _op() -> bool:
        override = db.session.query(UserPermissionOverride).filter_by(
            user_id=user_id,
            permission_code=code.value,
        ).first()
        if override is None:
            return False
        db.session.delete(override)
        return True

    return run_in_transaction(_op)


def list_permission_overrides(user_id: int) -> list[UserPermissionOverride]:
    _load_user(user_id)
    return (
        db.session.query(UserPermissionOverride)
        .filter_by(user_id=user_id)
        .order_by(UserPermissionOverride.permission_code)
        .all()
    )


# =============================================================================
# SEEDING
# =============================================================================

def initialize_permissions() -> int:
    """
    Create Permission rows for every PermissionCode.

    Idempotent: existing rows get their name/description/category refreshed.
    """
    created_count = 0
    for code, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(code=code.value).first()
        if existing:
            existing.name = name
            existing.description = description
            existing.category = category
            continue
        db.session.add(Permission(code=code.value, name=name, description=description, category=category))
        created_count += 1

    db.session.commit()
    return created_count


def assign_default_role_permissions() -> int:
    """
    Link default roles to their default permission sets.

    Idempotent: skips links that already exist and roles not yet created.
    """
    created_count = 0
    for role_name, codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            continue
        existing = {rp.permission.code for rp in role.role_permissions}
        for code in codes:
            if code.value in existing:
                continue
            permission = db.session.query(Permission).filter_by(code=code.value).first()
            if not permission:
                continue
            db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            created_count += 1

    db.session.commit()
    return created_count


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================

def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError(f"Role {role_id} not found", {"role_id": role_id})
    return role


def get_role_by_name(name: str) -> Role:
    role = db.session.query(Role).filter_by(name=(name or "").strip().upper()).first()
    if role is None:
        raise NotFoundError(f"Role '{name}' not found", {"role": name})
    return role


def _set_role_permissions(role: Role, permission_codes: Iterable) -> None:
    wanted = {parse_permission_code(code).value for code in permission_codes}
    permissions = db.session.query(Permission).filter(Permission.code.in_(wanted)).all() if wanted else []
    missing = wanted - {p.code for p in permissions}
    if missing:
        raise StateConflictError(
            "Permissions not seeded; run `flask system init`",
            {"missing": sorted(missing)},
        )

    current = {rp.permission.code: rp for rp in role.role_permissions}
    for code, rp in current.items():
        if code not in wanted:
            role.role_permissions.remove(rp)
    for permission in permissions:
        if permission.code not in current:
            role.role_permissions.append(RolePermission(permission=permission))


def create_role(*, name: str, description: str | None = None, permission_codes: Iterable = ()) -> Role:
    name = (name or "").strip().upper()
    if not name:
        raise ValidationError("name is required")

    def _op() -> Role:
        if db.session.query(Role).filter_by(name=name).first():
            raise StateConflictError(f"Role '{name}' already exists")
        role = Role(name=name, description=description, is_default=False)
        db.session.add(role)
        _set_role_permissions(role, permission_codes)
        db.session.flush()
        return role

    return run_in_transaction(_op)


def update_role(
    role_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    permission_codes: Iterable | None = None,
) -> Role:
    """Default roles keep their name; their permission set may still change."""
    def _op() -> Role:
        role = get_role(role_id)
        if name is not None:
            new_name = name.strip().upper()
            if new_name != role.name:
                if role.is_default:
                    raise StateConflictError(f"Default role '{role.name}' cannot be renamed")
                if db.session.query(Role).filter_by(name=new_name).first():
                    raise StateConflictError(f"Role '{new_name}' already exists")
                role.name = new_name
        if description is not None:
            role.description = description
        if permission_codes is not None:
            _set_role_permissions(role, permission_codes)
        db.session.flush()
        return role

    return run_in_transaction(_op)


def delete_role(role_id: int) -> None:
    def _op() -> None:
        role = get_role(role_id)
        if role.is_default:
            raise StateConflictError(f"Default role '{role.name}' cannot be deleted")
        assigned = db.session.query(UserRole).filter_by(role_id=role.id).count()
        if assigned:
            raise StateConflictError(
                f"Role '{role.name}' is assigned to {assigned} user(s)",
                {"assigned_users": assigned},
            )
        db.session.delete(role)

    run_in_transaction(_op)


def grant_permission_to_role(role_name: str, permission_code: str) -> Role:
    code = parse_permission_code(permission_code)

    def _op() -> Role:
        role = get_role_by_name(role_name)
        codes = set(role.permission_codes()) | {code.value}
        _set_role_permissions(role, codes)
        return role

    return run_in_transaction(_op)


def revoke_permission_from_role(role_name: str, permission_code: str) -> bool:
    code = parse_permission_code(permission_code)

    def _op() -> bool:
        role = get_role_by_name(role_name)
        codes = set(role.permission_codes())
        if code.value not in codes:
            return False
        _set_role_permissions(role, codes - {code.value})
        return True

    return run_in_transaction(_op)
