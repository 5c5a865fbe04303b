# Overview: Permission category constants used for grouping permissions.


class PermissionCategory:
    """Permission categories for display grouping. They carry no enforcement meaning."""
    SALES = "SALES"
    RETURNS = "RETURNS"
    REPORTS = "REPORTS"
    USERS = "USERS"
    ROLES = "ROLES"
    CATEGORIES = "CATEGORIES"
    PRODUCTS = "PRODUCTS"
    INVENTORY = "INVENTORY"
    REPAIRS = "REPAIRS"
    WARRANTIES = "WARRANTIES"
    SETTINGS = "SETTINGS"
    PROMOTIONS = "PROMOTIONS"
