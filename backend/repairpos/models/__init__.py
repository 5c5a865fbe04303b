from .auth import User, Role, UserRole, Permission, RolePermission, UserPermissionOverride, SessionToken
from .security import SecurityEvent
from .catalog import Category, Product
from .inventory import StockRecord, StockAdjustment
from .documents import DocumentSequence
from .sales import Sale, SaleItem, SalePayment, Return, ReturnItem
from .repairs import RepairJob, RepairPart
from .warranties import Warranty, WarrantyClaim

__all__ = [
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission',
    'UserPermissionOverride', 'SessionToken', 'SecurityEvent',
    'Category', 'Product',
    'StockRecord', 'StockAdjustment',
    'DocumentSequence',
    'Sale', 'SaleItem', 'SalePayment', 'Return', 'ReturnItem',
    'RepairJob', 'RepairPart',
    'Warranty', 'WarrantyClaim',
]
