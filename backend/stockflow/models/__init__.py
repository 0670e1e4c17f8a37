from .tenancy import Store
from .inventory import Product, StockRecord
from .sales import Sale, SaleLine, SALE_STATUSES, PAYMENT_METHODS
from .auth import User, UserStoreAccess, SessionToken

__all__ = [
    'Store',
    'Product', 'StockRecord',
    'Sale', 'SaleLine', 'SALE_STATUSES', 'PAYMENT_METHODS',
    'User', 'UserStoreAccess', 'SessionToken',
]
