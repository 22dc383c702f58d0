from .catalog import Category, Book
from .inventory import InventoryHistory
from .orders import Order, OrderItem
from .auth import User, SessionToken

__all__ = [
    'Category', 'Book',
    'InventoryHistory',
    'Order', 'OrderItem',
    'User', 'SessionToken',
]
