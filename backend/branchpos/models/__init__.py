from .catalog import Branch, Category, Product
from .auth import User, SessionToken
from .inventory import InventoryRecord, InventoryBatch, StockMovement
from .sales import Sale, SaleLine
from .shifts import CashShift

__all__ = [
    'Branch', 'Category', 'Product',
    'User', 'SessionToken',
    'InventoryRecord', 'InventoryBatch', 'StockMovement',
    'Sale', 'SaleLine',
    'CashShift',
]
