from .tenancy import Branch, DocumentSequence
from .auth import StaffUser, SessionToken
from .menu import MenuItem, RecipeComponent
from .orders import Order, OrderLine
from .stock import StockItem, StockTransaction
from .service_requests import ServiceRequest
from .communications import Notification, ActivityEvent

__all__ = [
    'Branch', 'DocumentSequence',
    'StaffUser', 'SessionToken',
    'MenuItem', 'RecipeComponent',
    'Order', 'OrderLine',
    'StockItem', 'StockTransaction',
    'ServiceRequest',
    'Notification', 'ActivityEvent',
]
