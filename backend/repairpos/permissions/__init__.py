# Overview: Permission system package.
# Re-exports the public API so callers import from repairpos.permissions.

from .categories import PermissionCategory
from .definitions import (
    PermissionCode,
    PERMISSION_DEFINITIONS,
    SALES_PERMISSIONS,
    RETURN_PERMISSIONS,
    REPORT_PERMISSIONS,
    USER_PERMISSIONS,
    ROLE_PERMISSIONS,
    CATEGORY_PERMISSIONS,
    PRODUCT_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    REPAIR_PERMISSIONS,
    WARRANTY_PERMISSIONS,
    SETTINGS_PERMISSIONS,
    PROMOTION_PERMISSIONS,
)
from .roles import (
    ADMIN,
    MANAGER,
    CASHIER,
    TECHNICIAN,
    ROLE_DESCRIPTIONS,
    DEFAULT_ROLE_PERMISSIONS,
    DEFAULT_ROLE_NAMES,
)
from .helpers import (
    get_permissions_by_category,
    validate_permission_code,
    parse_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PermissionCode",
    "PERMISSION_DEFINITIONS",
    "SALES_PERMISSIONS",
    "RETURN_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "USER_PERMISSIONS",
    "ROLE_PERMISSIONS",
    "CATEGORY_PERMISSIONS",
    "PRODUCT_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "REPAIR_PERMISSIONS",
    "WARRANTY_PERMISSIONS",
    "SETTINGS_PERMISSIONS",
    "PROMOTION_PERMISSIONS",
    "ADMIN",
    "MANAGER",
    "CASHIER",
    "TECHNICIAN",
    "ROLE_DESCRIPTIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "DEFAULT_ROLE_NAMES",
    "get_permissions_by_category",
    "validate_permission_code",
    "parse_permission_code",
]
