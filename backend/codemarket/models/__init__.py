from .auth import User, SessionToken, ROLE_USER, ROLE_ADMIN, VALID_ROLES
from .catalog import CatalogItem
from .recovery import RecoveryItem, RecoveryStatus
from .orders import Order, OrderItem, PaymentVerification

__all__ = [
    'User', 'SessionToken', 'ROLE_USER', 'ROLE_ADMIN', 'VALID_ROLES',
    'CatalogItem',
    'RecoveryItem', 'RecoveryStatus',
    'Order', 'OrderItem', 'PaymentVerification',
]
