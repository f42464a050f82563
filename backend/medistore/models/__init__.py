from .tenancy import Store
from .inventory import Medicine, StockEntry
from .billing import BillingRecord, BillingLine

__all__ = [
    'Store',
    'Medicine', 'StockEntry',
    'BillingRecord', 'BillingLine',
]
