from .tenancy import Tenant, TenantIdentityRef, OrderSequence
from .auth import User
from .inventory import Product, StockMovement
from .orders import Order, OrderItem
from .security import SecurityEvent, RateLimitBucket

__all__ = [
    'Tenant', 'TenantIdentityRef', 'OrderSequence',
    'User',
    'Product', 'StockMovement',
    'Order', 'OrderItem',
    'SecurityEvent', 'RateLimitBucket',
]
