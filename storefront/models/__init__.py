"""SQLAlchemy models; importing this package registers every table on ``Base``."""

from .base import Base, utcnow
from .address import Address
from .cart_item import CartItem
from .category import Category
from .checkout import Checkout, CheckoutItem
from .order import Order, OrderItem, OrderStatusHistory
from .payment import Payment
from .product import Product
from .status import CheckoutStatus, OrderStatus, PaymentStatus

__all__ = [
    "Base",
    "utcnow",
    "Address",
    "CartItem",
    "Category",
    "Checkout",
    "CheckoutItem",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Payment",
    "Product",
    "CheckoutStatus",
    "OrderStatus",
    "PaymentStatus",
]
