# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from enum import Enum

from .categories import PermissionCategory


class PermissionCode(str, Enum):
    """Closed set of permission codes. Members compare equal to their string value."""

    CREATE_SALE = "CREATE_SALE"
    VOID_SALE = "VOID_SALE"
    VIEW_SALES = "VIEW_SALES"
    APPLY_DISCOUNT = "APPLY_DISCOUNT"
    CREATE_RETURN = "CREATE_RETURN"
    VIEW_RETURNS = "VIEW_RETURNS"
    VIEW_PROFIT_REPORT = "VIEW_PROFIT_REPORT"
    VIEW_SALES_REPORT = "VIEW_SALES_REPORT"
    EXPORT_REPORTS = "EXPORT_REPORTS"
    CREATE_USER = "CREATE_USER"
    VIEW_USERS = "VIEW_USERS"
    UPDATE_USER = "UPDATE_USER"
    DELETE_USER = "DELETE_USER"
    UPDATE_OWN_PROFILE = "UPDATE_OWN_PROFILE"
    MANAGE_ROLES = "MANAGE_ROLES"
    ASSIGN_ROLES = "ASSIGN_ROLES"
    MANAGE_PERMISSIONS = "MANAGE_PERMISSIONS"
    ASSIGN_PERMISSIONS = "ASSIGN_PERMISSIONS"
    CREATE_CATEGORY = "CREATE_CATEGORY"
    VIEW_CATEGORIES = "VIEW_CATEGORIES"
    UPDATE_CATEGORY = "UPDATE_CATEGORY"
    DELETE_CATEGORY = "DELETE_CATEGORY"
    CREATE_PRODUCT = "CREATE_PRODUCT"
    VIEW_PRODUCTS = "VIEW_PRODUCTS"
    UPDATE_PRODUCT = "UPDATE_PRODUCT"
    DELETE_PRODUCT = "DELETE_PRODUCT"
    BULK_IMPORT_PRODUCTS = "BULK_IMPORT_PRODUCTS"
    MANAGE_INVENTORY = "MANAGE_INVENTORY"
    VIEW_INVENTORY = "VIEW_INVENTORY"
    CREATE_REPAIR = "CREATE_REPAIR"
    VIEW_REPAIRS = "VIEW_REPAIRS"
    VIEW_OWN_REPAIRS = "VIEW_OWN_REPAIRS"
    ASSIGN_REPAIR = "ASSIGN_REPAIR"
    UPDATE_REPAIR = "UPDATE_REPAIR"
    COMPLETE_REPAIR = "COMPLETE_REPAIR"
    COLLECT_REPAIR_PAYMENT = "COLLECT_REPAIR_PAYMENT"
    CANCEL_REPAIR = "CANCEL_REPAIR"
    CREATE_WARRANTY = "CREATE_WARRANTY"
    VIEW_WARRANTIES = "VIEW_WARRANTIES"
    UPDATE_WARRANTY = "UPDATE_WARRANTY"
    VOID_WARRANTY = "VOID_WARRANTY"
    CREATE_WARRANTY_CLAIM = "CREATE_WARRANTY_CLAIM"
    VIEW_WARRANTY_REPORTS = "VIEW_WARRANTY_REPORTS"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"
    MANAGE_PROMOTIONS = "MANAGE_PROMOTIONS"
    VIEW_PROMOTIONS = "VIEW_PROMOTIONS"


P = PermissionCode
C = PermissionCategory


# -- SALES / RETURNS --

SALES_PERMISSIONS = [
    (P.CREATE_SALE, "Create Sale", "Create new sales transactions", C.SALES),
    (P.VOID_SALE, "Void Sale", "Void/cancel existing sales", C.SALES),
    (P.VIEW_SALES, "View Sales", "View sales history and details", C.SALES),
    (P.APPLY_DISCOUNT, "Apply Discount", "Apply discounts to sales", C.SALES),
]

RETURN_PERMISSIONS = [
    (P.CREATE_RETURN, "Create Return", "Create product returns, refunds and exchanges", C.RETURNS),
    (P.VIEW_RETURNS, "View Returns", "View return history and details", C.RETURNS),
]

# -- REPORTS --

REPORT_PERMISSIONS = [
    (P.VIEW_PROFIT_REPORT, "View Profit Report", "View profit reports", C.REPORTS),
    (P.VIEW_SALES_REPORT, "View Sales Report", "View sales reports", C.REPORTS),
    (P.EXPORT_REPORTS, "Export Reports", "Export reports to file", C.REPORTS),
]

# -- USERS / ROLES --

USER_PERMISSIONS = [
    (P.CREATE_USER, "Create User", "Create new users", C.USERS),
    (P.VIEW_USERS, "View Users", "View user list and details", C.USERS),
    (P.UPDATE_USER, "Update User", "Update user information", C.USERS),
    (P.DELETE_USER, "Deactivate User", "Deactivate users", C.USERS),
    (P.UPDATE_OWN_PROFILE, "Update Own Profile", "Update own profile (username, password)", C.USERS),
]

ROLE_PERMISSIONS = [
    (P.MANAGE_ROLES, "Manage Roles", "Create, update, delete roles", C.ROLES),
    (P.ASSIGN_ROLES, "Assign Roles", "Assign roles to users", C.ROLES),
    (P.MANAGE_PERMISSIONS, "Manage Permissions", "View and manage permissions", C.ROLES),
    (P.ASSIGN_PERMISSIONS, "Assign Permissions", "Assign direct permission overrides to users", C.ROLES),
]

# -- CATALOG --

CATEGORY_PERMISSIONS = [
    (P.CREATE_CATEGORY, "Create Category", "Create new product categories", C.CATEGORIES),
    (P.VIEW_CATEGORIES, "View Categories", "View product categories", C.CATEGORIES),
    (P.UPDATE_CATEGORY, "Update Category", "Update product categories", C.CATEGORIES),
    (P.DELETE_CATEGORY, "Delete Category", "Deactivate product categories", C.CATEGORIES),
]

PRODUCT_PERMISSIONS = [
    (P.CREATE_PRODUCT, "Create Product", "Create new products", C.PRODUCTS),
    (P.VIEW_PRODUCTS, "View Products", "View product catalog", C.PRODUCTS),
    (P.UPDATE_PRODUCT, "Update Product", "Update product details and pricing", C.PRODUCTS),
    (P.DELETE_PRODUCT, "Delete Product", "Deactivate products", C.PRODUCTS),
    (P.BULK_IMPORT_PRODUCTS, "Bulk Import Products", "Bulk import products from file", C.PRODUCTS),
]

# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (P.MANAGE_INVENTORY, "Manage Inventory", "Record stock adjustments", C.INVENTORY),
    (P.VIEW_INVENTORY, "View Inventory", "View stock levels and adjustment history", C.INVENTORY),
]

# -- REPAIRS --

REPAIR_PERMISSIONS = [
    (P.CREATE_REPAIR, "Create Repair", "Create new repair jobs", C.REPAIRS),
    (P.VIEW_REPAIRS, "View Repairs", "View all repair jobs", C.REPAIRS),
    (P.VIEW_OWN_REPAIRS, "View Own Repairs", "View own assigned repair jobs", C.REPAIRS),
    (P.ASSIGN_REPAIR, "Assign Repair", "Assign repair jobs to technicians", C.REPAIRS),
    (P.UPDATE_REPAIR, "Update Repair", "Update repair job status and details", C.REPAIRS),
    (P.COMPLETE_REPAIR, "Complete Repair", "Mark repair job as ready for pickup", C.REPAIRS),
    (P.COLLECT_REPAIR_PAYMENT, "Collect Repair Payment", "Collect payment for repairs", C.REPAIRS),
    (P.CANCEL_REPAIR, "Cancel Repair", "Cancel repair jobs", C.REPAIRS),
]

# -- WARRANTIES --

WARRANTY_PERMISSIONS = [
    (P.CREATE_WARRANTY, "Create Warranty", "Create new warranty records", C.WARRANTIES),
    (P.VIEW_WARRANTIES, "View Warranties", "View warranty list and details", C.WARRANTIES),
    (P.UPDATE_WARRANTY, "Update Warranty", "Update warranty information and claims", C.WARRANTIES),
    (P.VOID_WARRANTY, "Void Warranty", "Void warranties", C.WARRANTIES),
    (P.CREATE_WARRANTY_CLAIM, "Create Warranty Claim", "Create warranty claims", C.WARRANTIES),
    (P.VIEW_WARRANTY_REPORTS, "View Warranty Reports", "View warranty reports and statistics", C.WARRANTIES),
]

# -- SETTINGS / PROMOTIONS --

SETTINGS_PERMISSIONS = [
    (P.MANAGE_SETTINGS, "Manage Settings", "Manage system settings", C.SETTINGS),
]

PROMOTION_PERMISSIONS = [
    (P.MANAGE_PROMOTIONS, "Manage Promotions", "Create, update, delete promotional offers", C.PROMOTIONS),
    (P.VIEW_PROMOTIONS, "View Promotions", "View promotions and offers", C.PROMOTIONS),
]


PERMISSION_DEFINITIONS = (
    SALES_PERMISSIONS
    + RETURN_PERMISSIONS
    + REPORT_PERMISSIONS
    + USER_PERMISSIONS
    + ROLE_PERMISSIONS
    + CATEGORY_PERMISSIONS
    + PRODUCT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + REPAIR_PERMISSIONS
    + WARRANTY_PERMISSIONS
    + SETTINGS_PERMISSIONS
    + PROMOTION_PERMISSIONS
)
