# Overview: Utility functions for permission lookups and validation.

from ..errors import ValidationError
from .definitions import PERMISSION_DEFINITIONS, PermissionCode


def get_permissions_by_category(category):
    """Get all permissions in a category."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def validate_permission_code(code) -> bool:
    """Check if a permission code is valid."""
    return code in PermissionCode._value2member_map_


def parse_permission_code(code) -> PermissionCode:
    """Coerce a raw string into a PermissionCode, raising ValidationError when unknown."""
    if isinstance(code, PermissionCode):
        return code
    if not isinstance(code, str) or not validate_permission_code(code.strip().upper()):
        raise ValidationError(f"Unknown permission code: {code}", {"permission_code": code})
    return PermissionCode(code.strip().upper())
