"""Storefront checkout, order and category services."""

from .address_service import AddressService
from .cart_service import CartService
from .catalog_service import CatalogService
from .category_service import CategoryService
from .checkout_service import CheckoutService
from .notification_service import NotificationSender
from .order_assembler import OrderAssembler
from .order_service import OrderService
from .order_status import OrderStateMachine
from .payment_service import PaymentService
from .pricing import PricingRules

__all__ = [
    "AddressService",
    "CartService",
    "CatalogService",
    "CategoryService",
    "CheckoutService",
    "NotificationSender",
    "OrderAssembler",
    "OrderService",
    "OrderStateMachine",
    "PaymentService",
    "PricingRules",
]
