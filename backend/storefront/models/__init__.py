from .catalog import User, Product
from .cart import Cart, CartItem, CartAddress
from .orders import Order, OrderItem
from .slips import PaymentSlip, PaymentSlipItem

__all__ = [
    'User', 'Product',
    'Cart', 'CartItem', 'CartAddress',
    'Order', 'OrderItem',
    'PaymentSlip', 'PaymentSlipItem',
]
