# Overview: Default role names and the permission set each one is seeded with.

from .definitions import PermissionCode as P


ADMIN = "ADMIN"
MANAGER = "MANAGER"
CASHIER = "CASHIER"
TECHNICIAN = "TECHNICIAN"

ROLE_DESCRIPTIONS = {
    ADMIN: "Full system access with all permissions",
    MANAGER: "Manage sales, reports, inventory and assign roles",
    CASHIER: "Process sales transactions",
    TECHNICIAN: "Handle device repairs and view inventory",
}

DEFAULT_ROLE_PERMISSIONS = {
    ADMIN: list(P),
    MANAGER: [
        P.CREATE_SALE, P.VOID_SALE, P.VIEW_SALES, P.APPLY_DISCOUNT,
        P.VIEW_PROFIT_REPORT, P.VIEW_SALES_REPORT, P.EXPORT_REPORTS,
        P.VIEW_USERS, P.ASSIGN_ROLES, P.UPDATE_OWN_PROFILE,
        P.VIEW_INVENTORY, P.MANAGE_INVENTORY,
        P.CREATE_CATEGORY, P.VIEW_CATEGORIES, P.UPDATE_CATEGORY, P.DELETE_CATEGORY,
        P.CREATE_PRODUCT, P.VIEW_PRODUCTS, P.UPDATE_PRODUCT, P.DELETE_PRODUCT,
        P.CREATE_REPAIR, P.VIEW_REPAIRS, P.ASSIGN_REPAIR, P.COLLECT_REPAIR_PAYMENT, P.CANCEL_REPAIR,
        P.VIEW_WARRANTIES, P.CREATE_WARRANTY_CLAIM, P.VIEW_WARRANTY_REPORTS,
        P.CREATE_RETURN, P.VIEW_RETURNS,
        P.MANAGE_PROMOTIONS, P.VIEW_PROMOTIONS,
    ],
    CASHIER: [
        P.CREATE_SALE, P.VIEW_SALES, P.APPLY_DISCOUNT,
        P.VIEW_INVENTORY, P.VIEW_CATEGORIES, P.VIEW_PRODUCTS,
        P.VIEW_REPAIRS, P.COLLECT_REPAIR_PAYMENT,
        P.VIEW_WARRANTIES, P.CREATE_WARRANTY_CLAIM,
        P.CREATE_RETURN, P.VIEW_RETURNS,
        P.VIEW_PROMOTIONS,
    ],
    TECHNICIAN: [
        P.VIEW_INVENTORY, P.VIEW_CATEGORIES, P.VIEW_PRODUCTS,
        P.VIEW_OWN_REPAIRS, P.UPDATE_REPAIR, P.COMPLETE_REPAIR, P.CREATE_REPAIR,
        P.VIEW_WARRANTIES,
    ],
}

DEFAULT_ROLE_NAMES = tuple(DEFAULT_ROLE_PERMISSIONS)
