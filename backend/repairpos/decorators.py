# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthorizationError, ValidationError
from .services import session_service, permission_service
from .services.permission_service import MODE_ALL, MODE_ANY


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user and g.session_context. Returns 401 when the
    header is missing, the token is unknown, revoked or expired, or the
    user has been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def _permission_guard(permission_codes, mode):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_permissions(
                    g.current_user.id,
                    permission_codes,
                    mode,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except AuthorizationError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permissions": [getattr(c, "value", c) for c in permission_codes],
                    "missing_permissions": e.missing,
                    "mode": mode,
                }), 403
            except ValidationError as e:
                # Unknown code in a decorator is a programming error; deny.
                return jsonify({"error": "Permission denied", "message": e.message}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_permission(permission_code):
    """Require a single permission code."""
    return _permission_guard((permission_code,), MODE_ALL)


def require_any_permission(*permission_codes):
    """Require at least one of the given codes."""
    return _permission_guard(permission_codes, MODE_ANY)


def require_all_permissions(*permission_codes):
    """Require every one of the given codes."""
    return _permission_guard(permission_codes, MODE_ALL)
