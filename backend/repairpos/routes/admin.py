# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user, role and permission management.

Provides endpoints for:
- User management (list, create, update, deactivate, reactivate, roles)
- Role management (list, create, update, delete)
- Per-user permission overrides (ALLOW/DENY)
- Maintenance (warranty expiry sweep, stock ledger verification)

All endpoints require authentication and appropriate permissions.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Role, SecurityEvent, User
from ..services import auth_service, permission_service, stock_service, warranty_service
from ..decorators import require_auth, require_permission, require_any_permission
from ..errors import ServiceError, ValidationError
from ..permissions import PERMISSION_DEFINITIONS, PermissionCode as P
from ..validation import get_bool, get_list, get_str

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission(P.VIEW_USERS)
def list_users():
    """
    List users with their roles.

    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"

    query = db.session.query(User)
    if not include_inactive:
        query = query.filter_by(is_active=True)

    users = [user.to_dict() for user in query.order_by(User.username).all()]
    return jsonify({"users": users, "count": len(users)})


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_permission(P.VIEW_USERS)
def get_user(user_id: int):
    """User with effective permissions and overrides."""
    try:
        user = auth_service.get_user(user_id)
        user_dict = user.to_dict()
        user_dict["permissions"] = sorted(permission_service.get_user_permissions(user.id))
        user_dict["permission_overrides"] = [
            o.to_dict() for o in permission_service.list_permission_overrides(user.id)
        ]
        return jsonify({"user": user_dict})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.post("/users")
@require_auth
@require_permission(P.CREATE_USER)
def create_user():
    """
    Create a new user.

    Request body:
    - username: str (required)
    - password: str (required, 8+ characters)
    - roles: [str] (required, at least one)
    - email: str (optional)
    - is_super_admin: bool (optional; only a super admin may set it)
    """
    try:
        data = request.get_json(silent=True) or {}
        roles = data.get("roles") or []
        if not isinstance(roles, list):
            raise ValidationError("roles must be a list of role names")
        is_super_admin = get_bool(data, "is_super_admin")
        if is_super_admin and not g.current_user.is_super_admin:
            return jsonify({"error": "Only a super admin can create super admins"}), 403

        user = auth_service.create_user(
            username=get_str(data, "username", required=True, max_length=80),
            password=data.get("password") or "",
            role_names=roles,
            email=get_str(data, "email", max_length=255),
            is_super_admin=is_super_admin,
        )
        current_app.logger.info("User %s created by %s", user.username, g.current_user.username)
        return jsonify({"user": user.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_permission(P.UPDATE_USER)
def update_user(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        is_super_admin = data.get("is_super_admin")
        if is_super_admin is not None and not g.current_user.is_super_admin:
            return jsonify({"error": "Only a super admin can change super admin status"}), 403

        user = auth_service.update_user(
            user_id,
            email=get_str(data, "email", max_length=255),
            password=data.get("password"),
            is_super_admin=get_bool(data, "is_super_admin") if is_super_admin is not None else None,
        )
        return jsonify({"user": user.to_dict()})

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission(P.DELETE_USER)
def deactivate_user(user_id: int):
    """Deactivate a user and revoke all of their sessions."""
    try:
        user = auth_service.deactivate_user(user_id, actor_id=g.current_user.id)
        return jsonify({"user": user.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.post("/users/<int:user_id>/reactivate")
@require_auth
@require_permission(P.UPDATE_USER)
def reactivate_user(user_id: int):
    try:
        user = auth_service.reactivate_user(user_id)
        return jsonify({"user": user.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.post("/users/<int:user_id>/roles")
@require_auth
@require_permission(P.ASSIGN_ROLES)
def assign_role(user_id: int):
    try:
        data = request.get_json(silent=True) or {}
        auth_service.assign_role(user_id, get_str(data, "role", required=True, upper=True))
        return jsonify({"user": auth_service.get_user(user_id).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.delete("/users/<int:user_id>/roles/<string:role_name>")
@require_auth
@require_permission(P.ASSIGN_ROLES)
def remove_role(user_id: int, role_name: str):
    try:
        auth_service.remove_role(user_id, role_name)
        return jsonify({"user": auth_service.get_user(user_id).to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


# =============================================================================
# PERMISSION OVERRIDES
# =============================================================================

@admin_bp.get("/users/<int:user_id>/permissions")
@require_auth
@require_any_permission(P.VIEW_USERS, P.ASSIGN_PERMISSIONS)
def get_user_permissions(user_id: int):
    try:
        effective = permission_service.resolve_permissions(user_id)
        overrides = permission_service.list_permission_overrides(user_id)
        return jsonify({
            "user_id": user_id,
            "is_super_admin": effective.is_super_admin,
            "permissions": effective.codes(),
            "overrides": [o.to_dict() for o in overrides],
        })
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.put("/users/<int:user_id>/permissions/<string:permission_code>")
@require_auth
@require_permission(P.ASSIGN_PERMISSIONS)
def set_permission_override(user_id: int, permission_code: str):
    """
    Grant or deny one permission directly.

    Request body: {"effect": "ALLOW" | "DENY", "reason": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        override = permission_service.set_permission_override(
            user_id=user_id,
            permission_code=permission_code.upper(),
            effect=get_str(data, "effect", required=True, upper=True),
            granted_by_user_id=g.current_user.id,
            reason=get_str(data, "reason", max_length=255),
        )
        return jsonify({"override": override.to_dict()})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.delete("/users/<int:user_id>/permissions/<string:permission_code>")
@require_auth
@require_permission(P.ASSIGN_PERMISSIONS)
def remove_permission_override(user_id: int, permission_code: str):
    try:
        removed = permission_service.remove_permission_override(
            user_id=user_id,
            permission_code=permission_code.upper(),
        )
        if not removed:
            return jsonify({"error": "Override not found"}), 404
        return jsonify({"message": "Override removed"})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.get("/permissions")
@require_auth
@require_any_permission(P.MANAGE_ROLES, P.MANAGE_PERMISSIONS, P.ASSIGN_PERMISSIONS)
def list_permissions():
    """All permission definitions grouped by display category."""
    grouped = {}
    for code, name, description, category in PERMISSION_DEFINITIONS:
        grouped.setdefault(category, []).append(
            {"code": code.value, "name": name, "description": description}
        )
    return jsonify({"categories": grouped})


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================

@admin_bp.get("/roles")
@require_auth
@require_any_permission(P.MANAGE_ROLES, P.ASSIGN_ROLES)
def list_roles():
    roles = db.session.query(Role).order_by(Role.name).all()
    return jsonify({"roles": [role.to_dict(include_permissions=True) for role in roles]})


@admin_bp.post("/roles")
@require_auth
@require_permission(P.MANAGE_ROLES)
def create_role():
    """
    Request body:
    - name: str (stored upper-case)
    - description: str (optional)
    - permissions: [str] (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        role = permission_service.create_role(
            name=get_str(data, "name", required=True, max_length=64),
            description=get_str(data, "description", max_length=255),
            permission_codes=data.get("permissions") or [],
        )
        return jsonify({"role": role.to_dict(include_permissions=True)}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.patch("/roles/<int:role_id>")
@require_auth
@require_permission(P.MANAGE_ROLES)
def update_role(role_id: int):
    try:
        data = request.get_json(silent=True) or {}
        permissions = data.get("permissions")
        if permissions is not None and not isinstance(permissions, list):
            raise ValidationError("permissions must be a list")
        role = permission_service.update_role(
            role_id,
            name=get_str(data, "name", max_length=64),
            description=get_str(data, "description", max_length=255),
            permission_codes=permissions,
        )
        return jsonify({"role": role.to_dict(include_permissions=True)})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.delete("/roles/<int:role_id>")
@require_auth
@require_permission(P.MANAGE_ROLES)
def delete_role(role_id: int):
    try:
        permission_service.delete_role(role_id)
        return jsonify({"message": "Role deleted"})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


# =============================================================================
# AUDIT AND MAINTENANCE
# =============================================================================

@admin_bp.get("/security-events")
@require_auth
@require_permission(P.MANAGE_PERMISSIONS)
def list_security_events():
    """Most recent security events. Query params: event_type, limit (default 100)."""
    limit = min(request.args.get("limit", 100, type=int), 500)
    query = db.session.query(SecurityEvent)
    event_type = request.args.get("event_type")
    if event_type:
        query = query.filter_by(event_type=event_type.upper())
    events = query.order_by(SecurityEvent.id.desc()).limit(limit).all()
    return jsonify({"events": [event.to_dict() for event in events]})


@admin_bp.post("/warranties/expire")
@require_auth
@require_permission(P.MANAGE_SETTINGS)
def expire_warranties():
    """Materialize EXPIRED on warranties past their end date."""
    try:
        count = warranty_service.expire_warranties()
        return jsonify({"expired": count})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@admin_bp.get("/inventory/verify/<int:product_id>")
@require_auth
@require_permission(P.MANAGE_INVENTORY)
def verify_stock_ledger(product_id: int):
    """Check one product's adjustment chain against its stock record."""
    try:
        problems = stock_service.verify_adjustment_chain(product_id)
        return jsonify({"product_id": product_id, "consistent": not problems, "problems": problems})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
