from .tenancy import Organization, Branch
from .auth import User, SessionToken
from .catalog import Category, Product, ProductVariant
from .inventory import InventoryRecord, StockMovement
from .sales import Transaction, TransactionItem, TransactionSequence
from .audit import AuditLog

__all__ = [
    'Organization', 'Branch',
    'User', 'SessionToken',
    'Category', 'Product', 'ProductVariant',
    'InventoryRecord', 'StockMovement',
    'Transaction', 'TransactionItem', 'TransactionSequence',
    'AuditLog',
]
