from .auth import User, SessionToken
from .catalog import Product, StockMovement, DocumentSequence
from .carts import Cart, CartItem
from .checkout import Coupon, CheckoutSession, CheckoutSessionItem
from .orders import Order, OrderItem, Delivery
from .refunds import Refund

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockMovement', 'DocumentSequence',
    'Cart', 'CartItem',
    'Coupon', 'CheckoutSession', 'CheckoutSessionItem',
    'Order', 'OrderItem', 'Delivery',
    'Refund',
]
