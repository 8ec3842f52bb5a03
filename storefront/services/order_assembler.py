import secrets
import string
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import uuid4

from ..errors import AddressNotFound, CartItemInvalid, OrderNumberExhausted
from ..models.base import utcnow
from ..models.cart_item import CartItem
from ..models.order import Order, OrderItem, OrderStatusHistory
from ..models.status import OrderStatus, PaymentStatus
from .address_service import AddressService
from .cart_service import CartService
from .catalog_service import CatalogService
from .logging import log_event
from .pricing import PricingRules, quantize


SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 4


def random_suffix() -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


class OrderAssembler:
    """Turns an active checkout into an order inside the caller's transaction.

    The caller owns the session: nothing here commits, so a failure anywhere
    leaves both the checkout and the catalog untouched once the caller rolls
    back.
    """

    def __init__(
        self,
        pricing: Optional[PricingRules] = None,
        *,
        currency: str = "USD",
        prefix: str = "ORD",
        max_attempts: int = 10,
        suffix_factory: Callable[[], str] = random_suffix,
        clock: Callable = utcnow,
    ):
        self.pricing = pricing or PricingRules()
        self.currency = currency
        self.prefix = prefix
        self.max_attempts = max(1, int(max_attempts))
        self._suffix_factory = suffix_factory
        self._clock = clock

    @classmethod
    def from_config(cls, config) -> "OrderAssembler":
        return cls(
            PricingRules.from_config(config),
            currency=config.currency,
            prefix=config.order_number_prefix,
            max_attempts=config.order_number_max_attempts,
        )

    def generate_order_number(self, session) -> str:
        """``PREFIX + YYMMDD + 4-char suffix`` not yet used by any order.

        The pre-check narrows collisions; the unique constraint on
        ``order.order_number`` remains the authority under concurrency.
        """
        date_part = self._clock().strftime("%y%m%d")
        for attempt in range(1, self.max_attempts + 1):
            candidate = f"{self.prefix}{date_part}{self._suffix_factory()}"
            taken = session.query(Order.id).filter(Order.order_number == candidate).first()
            if taken is None:
                return candidate
            log_event("warning", "order.number_collision", order_number=candidate, attempt=attempt)
        raise OrderNumberExhausted(self.max_attempts)

    def _snapshot_address(self, session, kind: str, address_id: str) -> dict:
        address = AddressService.find(session, address_id)
        if not address:
            raise AddressNotFound(kind, address_id)
        return address.to_snapshot()

    def _load_cart_items(self, session, checkout) -> List[CartItem]:
        ids = list(checkout.cart_item_ids)
        rows = CartService.find_items(session, ids)
        missing = [i for i in ids if i not in rows]
        if missing:
            raise CartItemInvalid("Cart items no longer available", missing)
        items = [rows[i] for i in ids]
        foreign = [
            it.id for it in items
            if (it.user_id, it.session_id) != (checkout.user_id, checkout.session_id)
        ]
        if foreign:
            raise CartItemInvalid("Cart items do not belong to the checkout owner", foreign)
        bad_quantity = [it.id for it in items if not it.quantity or it.quantity <= 0]
        if bad_quantity:
            raise CartItemInvalid("Cart item quantity must be > 0", bad_quantity)
        return items

    def complete(self, session, checkout) -> Order:
        """Build and persist the order for ``checkout``; line items are priced now."""
        cart_items = self._load_cart_items(session, checkout)
        shipping_address = self._snapshot_address(session, "shipping", checkout.shipping_address_id)
        billing_address = self._snapshot_address(session, "billing", checkout.billing_address_id)

        order_id = str(uuid4())
        lines = []
        for position, it in enumerate(cart_items):
            product = CatalogService.reserve_stock(session, it.product_id, it.quantity)
            unit_price = quantize(product.price)
            line_price = quantize(unit_price * it.quantity)
            lines.append(
                OrderItem(
                    id=str(uuid4()),
                    order_id=order_id,
                    position=position,
                    product_id=product.id,
                    sku=product.sku,
                    product_name=product.name,
                    quantity=it.quantity,
                    unit_price=unit_price,
                    line_price=line_price,
                    discount=Decimal("0.00"),
                    tax=self.pricing.line_tax(line_price),
                )
            )

        totals = self.pricing.totals(((ln.line_price, ln.tax) for ln in lines), checkout.shipping_method)
        now = self._clock()
        order = Order(
            id=order_id,
            order_number=self.generate_order_number(session),
            user_id=checkout.user_id,
            session_id=checkout.session_id,
            checkout_id=checkout.id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping,
            discount=totals.discount,
            total=totals.total,
            currency=self.currency,
            shipping_method=checkout.shipping_method,
            payment_method=checkout.payment_method,
            shipping_address=shipping_address,
            billing_address=billing_address,
            created_at=now,
            updated_at=now,
        )
        order.items = lines
        session.add(order)
        session.add(
            OrderStatusHistory(
                id=str(uuid4()),
                order_id=order_id,
                previous_status=None,
                new_status=OrderStatus.PENDING.value,
                changed_by=checkout.user_id or "guest",
                reason="Order created from checkout",
                created_at=now,
            )
        )
        session.flush()
        log_event(
            "info",
            "order.created",
            order_id=order_id,
            order_number=order.order_number,
            checkout_id=checkout.id,
            items=len(lines),
            subtotal=str(totals.subtotal),
            total=str(totals.total),
        )
        return order
