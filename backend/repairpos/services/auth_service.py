# Overview: User accounts, password hashing and role assignment.

"""
Authentication service.

Passwords are hashed with bcrypt (cost from BCRYPT_LOG_ROUNDS). Users are
never deleted: deactivation blocks login and revokes open sessions while
keeping every attribution that points at the account.
"""

import bcrypt
from flask import current_app

from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models import Role, User, UserRole
from ..permissions import DEFAULT_ROLE_PERMISSIONS, ROLE_DESCRIPTIONS
from ..time_utils import utcnow
from .concurrency import run_in_transaction


MIN_PASSWORD_LENGTH = 8


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet the minimum requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe comparison; a malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
    return user


def create_user(
    username: str,
    password: str,
    role_names: list[str],
    email: str | None = None,
    is_super_admin: bool = False,
) -> User:
    """
    Create a user holding at least one role.

    Raises ValidationError on a weak password or missing role list,
    StateConflictError when the username or email is taken.
    """
    if not username or len(username.strip()) < 3:
        raise ValidationError("username must be at least 3 characters")
    if not role_names:
        raise ValidationError("At least one role is required")
    username = username.strip()
    email = email.strip().lower() if email else None
    password_hash = hash_password(password)

    def _op() -> User:
        clash = db.session.query(User).filter(
            db.or_(User.username == username, User.email == email) if email else User.username == username
        ).first()
        if clash:
            raise StateConflictError("Username or email already exists")

        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            is_super_admin=bool(is_super_admin),
        )
        db.session.add(user)
        db.session.flush()
        for role_name in role_names:
            _assign_role_inner(user.id, role_name)
        return user

    return run_in_transaction(_op)


def update_user(
    user_id: int,
    *,
    email: str | None = None,
    password: str | None = None,
    is_super_admin: bool | None = None,
) -> User:
    new_hash = hash_password(password) if password is not None else None

    def _op() -> User:
        user = get_user(user_id)
        if email is not None:
            normalized = email.strip().lower()
            clash = db.session.query(User).filter(User.email == normalized, User.id != user.id).first()
            if clash:
                raise StateConflictError("Email already in use")
            user.email = normalized
        if new_hash is not None:
            user.password_hash = new_hash
        if is_super_admin is not None:
            user.is_super_admin = bool(is_super_admin)
        return user

    return run_in_transaction(_op)


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate with username (or email) and password.

    Returns None for unknown users, wrong passwords and deactivated accounts.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == (username or "").lower()),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user
    return None


def _assign_role_inner(user_id: int, role_name: str) -> UserRole:
    role = db.session.query(Role).filter_by(name=role_name.upper()).first()
    if not role:
        raise NotFoundError(f"Role {role_name} not found", {"role": role_name})

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.flush()
    return user_role


def assign_role(user_id: int, role_name: str) -> UserRole:
    def _op() -> UserRole:
        get_user(user_id)
        return _assign_role_inner(user_id, role_name)
    return run_in_transaction(_op)


def remove_role(user_id: int, role_name: str) -> None:
    """A user keeps at least one role; removing the last one is refused."""
    def _op() -> None:
        user = get_user(user_id)
        role = db.session.query(Role).filter_by(name=role_name.upper()).first()
        if not role:
            raise NotFoundError(f"Role {role_name} not found", {"role": role_name})
        user_role = db.session.query(UserRole).filter_by(user_id=user.id, role_id=role.id).first()
        if not user_role:
            raise StateConflictError(f"User does not have role {role.name}")
        if len(user.user_roles) <= 1:
            raise StateConflictError("A user must keep at least one role")
        db.session.delete(user_role)

    run_in_transaction(_op)


def deactivate_user(user_id: int, *, actor_id: int | None = None) -> User:
    from .session_service import _revoke_all_user_sessions_inner

    def _op() -> User:
        user = get_user(user_id)
        if actor_id is not None and actor_id == user.id:
            raise StateConflictError("You cannot deactivate your own account")
        if not user.is_active:
            raise StateConflictError("User is already deactivated")
        user.is_active = False
        user.deactivated_at = utcnow()
        _revoke_all_user_sessions_inner(user.id, "User deactivated")
        return user

    return run_in_transaction(_op)


def reactivate_user(user_id: int) -> User:
    def _op() -> User:
        user = get_user(user_id)
        if user.is_active:
            raise StateConflictError("User is already active")
        user.is_active = True
        user.deactivated_at = None
        return user

    return run_in_transaction(_op)


def create_default_roles() -> int:
    """Create the seeded default roles if missing; always marks them is_default."""
    created = 0
    for name in DEFAULT_ROLE_PERMISSIONS:
        role = db.session.query(Role).filter_by(name=name).first()
        if role is None:
            db.session.add(Role(name=name, description=ROLE_DESCRIPTIONS[name], is_default=True))
            created += 1
        else:
            role.is_default = True

    db.session.commit()
    return created
