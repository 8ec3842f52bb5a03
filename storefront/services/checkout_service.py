import logging
from datetime import timedelta
from typing import Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..db.session import get_session
from ..errors import (
    AddressMismatch,
    AddressNotFound,
    CartItemInvalid,
    EmptyCart,
    InternalError,
    InvalidState,
    NotFound,
    OrderNumberExhausted,
    ValidationFailed,
)
from ..models.base import utcnow
from ..models.cart_item import CartItem
from ..models.checkout import Checkout, CheckoutItem
from ..models.status import CheckoutStatus
from ..utils.dto import to_checkout_dto, to_order_dto
from ..utils.validators import collect_id_list, require_text
from .address_service import AddressService
from .cart_service import CartService
from .identity import Owner
from .logging import log_event, persistence_guard
from .notification_service import NotificationSender, notify_safely
from .order_assembler import OrderAssembler


logger = logging.getLogger(__name__)


def _violates(exc: IntegrityError, column: str) -> bool:
    return column in str(getattr(exc, "orig", exc))


class CheckoutService:
    """Checkout session lifecycle: active -> completed | abandoned.

    Guest checkouts are keyed by session id and authenticated ones by user id;
    a checkout owned by someone else is reported exactly like a missing one.
    """

    def __init__(
        self,
        session_factory=get_session,
        assembler: Optional[OrderAssembler] = None,
        notifier: Optional[NotificationSender] = None,
        ttl_days: int = 30,
    ):
        self._session_factory = session_factory
        self._assembler = assembler or OrderAssembler()
        self._notifier = notifier or NotificationSender()
        self._ttl = timedelta(days=ttl_days)

    # -- guards -----------------------------------------------------------

    @staticmethod
    def _load_owned(session, checkout_id: str, owner: Owner) -> Checkout:
        checkout = session.query(Checkout).filter(Checkout.id == checkout_id).first() if checkout_id else None
        if checkout is None or not owner.owns(checkout):
            raise NotFound("checkout", checkout_id)
        return checkout

    @staticmethod
    def _require_active(checkout: Checkout, attempted: CheckoutStatus) -> None:
        if checkout.status != CheckoutStatus.ACTIVE.value:
            raise InvalidState("checkout", checkout.status, attempted.value)

    @staticmethod
    def _require_unexpired(checkout: Checkout, attempted: CheckoutStatus) -> None:
        if checkout.expires_at is not None and checkout.expires_at < utcnow():
            raise InvalidState("checkout", "expired", attempted.value)

    def _validate_fields(self, errors: List[str], shipping_method: Optional[str]) -> Optional[str]:
        method = require_text(shipping_method, "shipping_method", errors)
        if method and not self._assembler.pricing.knows_shipping_method(method):
            errors.append(f"unknown shipping method: {method}")
        return method

    @staticmethod
    def _check_address(session, owner: Owner, kind: str, address_id: str) -> None:
        address = AddressService.find(session, address_id)
        if address is None:
            raise AddressNotFound(kind, address_id)
        if not owner.owns(address):
            raise AddressMismatch(kind, address_id)

    @staticmethod
    def _check_cart_items(session, owner: Owner, item_ids: List[str], checkout_id: Optional[str] = None) -> None:
        rows = CartService.find_items(session, item_ids)
        missing = [i for i in item_ids if i not in rows]
        if missing:
            raise CartItemInvalid("Cart items not found", missing)
        foreign = [i for i in item_ids if not owner.owns(rows[i])]
        if foreign:
            raise CartItemInvalid("Cart items do not belong to the requesting owner", foreign)
        q = (
            session.query(CheckoutItem.cart_item_id)
            .join(Checkout, Checkout.id == CheckoutItem.checkout_id)
            .filter(CheckoutItem.cart_item_id.in_(item_ids), Checkout.status == CheckoutStatus.ACTIVE.value)
        )
        if checkout_id:
            q = q.filter(Checkout.id != checkout_id)
        attached = sorted({row[0] for row in q.all()})
        if attached:
            raise CartItemInvalid("Cart items already attached to another active checkout", attached)

    # -- operations -------------------------------------------------------

    def create(
        self,
        *,
        user_id: Optional[str],
        session_id: Optional[str],
        shipping_address_id: str,
        billing_address_id: str,
        shipping_method: str,
        cart_item_ids: List[str],
        payment_method: Optional[str] = None,
    ) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        if not cart_item_ids:
            raise EmptyCart()
        errors: List[str] = []
        method = self._validate_fields(errors, shipping_method)
        shipping_id = require_text(shipping_address_id, "shipping_address_id", errors)
        billing_id = require_text(billing_address_id, "billing_address_id", errors)
        item_ids = collect_id_list(cart_item_ids, "cart_item_ids", errors)
        if errors:
            raise ValidationFailed(errors, message="Checkout data validation failed")

        with persistence_guard("checkout.create"), self._session_factory() as session:
            self._check_address(session, owner, "shipping", shipping_id)
            self._check_address(session, owner, "billing", billing_id)
            self._check_cart_items(session, owner, item_ids)
            now = utcnow()
            checkout = Checkout(
                id=str(uuid4()),
                user_id=owner.user_id,
                session_id=owner.session_id,
                shipping_address_id=shipping_id,
                billing_address_id=billing_id,
                shipping_method=method,
                payment_method=payment_method,
                status=CheckoutStatus.ACTIVE.value,
                expires_at=now + self._ttl,
                created_at=now,
                updated_at=now,
            )
            checkout.items = [
                CheckoutItem(cart_item_id=item_id, position=pos) for pos, item_id in enumerate(item_ids)
            ]
            session.add(checkout)
            session.flush()
            log_event("info", "checkout.created", checkout_id=checkout.id, guest=owner.is_guest, items=len(item_ids))
            return to_checkout_dto(checkout)

    def get(self, checkout_id: str, *, user_id: Optional[str], session_id: Optional[str]) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("checkout.get", checkout_id=checkout_id), self._session_factory() as session:
            return to_checkout_dto(self._load_owned(session, checkout_id, owner))

    def validate(
        self,
        checkout_id: str,
        *,
        user_id: Optional[str],
        session_id: Optional[str],
        shipping_method: Optional[str] = None,
        shipping_address_id: Optional[str] = None,
        billing_address_id: Optional[str] = None,
        cart_item_ids: Optional[List[str]] = None,
    ) -> Dict:
        """Re-check an active checkout, applying any supplied updates."""
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("checkout.validate", checkout_id=checkout_id), self._session_factory() as session:
            checkout = self._load_owned(session, checkout_id, owner)
            self._require_active(checkout, CheckoutStatus.ACTIVE)
            self._require_unexpired(checkout, CheckoutStatus.ACTIVE)
            if cart_item_ids is not None and not cart_item_ids:
                raise EmptyCart()

            errors: List[str] = []
            method = self._validate_fields(errors, shipping_method if shipping_method is not None else checkout.shipping_method)
            shipping_id = shipping_address_id or checkout.shipping_address_id
            billing_id = billing_address_id or checkout.billing_address_id
            item_ids = collect_id_list(cart_item_ids, "cart_item_ids", errors) if cart_item_ids is not None else checkout.cart_item_ids
            if errors:
                raise ValidationFailed(errors, message="Checkout data validation failed")

            self._check_address(session, owner, "shipping", shipping_id)
            self._check_address(session, owner, "billing", billing_id)
            self._check_cart_items(session, owner, item_ids, checkout_id=checkout.id)

            checkout.shipping_method = method
            checkout.shipping_address_id = shipping_id
            checkout.billing_address_id = billing_id
            if item_ids != checkout.cart_item_ids:
                checkout.items.clear()
                session.flush()
                checkout.items.extend(
                    CheckoutItem(cart_item_id=item_id, position=pos) for pos, item_id in enumerate(item_ids)
                )
            checkout.updated_at = utcnow()
            session.flush()
            return to_checkout_dto(checkout)

    def complete(self, checkout_id: str, *, user_id: Optional[str], session_id: Optional[str]) -> Dict:
        """Create the order for an active checkout and mark the checkout completed.

        Both happen in one transaction; the conditional status update makes a
        racing second completion observe ``InvalidState`` instead of creating
        another order.
        """
        owner = Owner.resolve(user_id, session_id)
        attempts = self._assembler.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                with self._session_factory() as session:
                    checkout = self._load_owned(session, checkout_id, owner)
                    self._require_active(checkout, CheckoutStatus.COMPLETED)
                    self._require_unexpired(checkout, CheckoutStatus.COMPLETED)
                    now = utcnow()
                    claimed = (
                        session.query(Checkout)
                        .filter(Checkout.id == checkout.id, Checkout.status == CheckoutStatus.ACTIVE.value)
                        .update(
                            {
                                Checkout.status: CheckoutStatus.COMPLETED.value,
                                Checkout.completed_at: now,
                                Checkout.updated_at: now,
                            },
                            synchronize_session=False,
                        )
                    )
                    if claimed != 1:
                        current = session.query(Checkout.status).filter(Checkout.id == checkout.id).scalar()
                        raise InvalidState("checkout", current or "unknown", CheckoutStatus.COMPLETED.value)

                    order = self._assembler.complete(session, checkout)
                    session.query(CartItem).filter(CartItem.id.in_(checkout.cart_item_ids)).update(
                        {CartItem.deleted_at: now}, synchronize_session=False
                    )
                    result = to_order_dto(order)
            except IntegrityError as exc:
                if _violates(exc, "order_number"):
                    log_event("warning", "order.number_conflict", checkout_id=checkout_id, attempt=attempt)
                    if attempt < attempts:
                        continue
                    raise OrderNumberExhausted(attempts) from exc
                if _violates(exc, "checkout_id"):
                    raise InvalidState("checkout", CheckoutStatus.COMPLETED.value, CheckoutStatus.COMPLETED.value) from exc
                logger.exception("checkout completion failed: %s", checkout_id)
                raise InternalError("checkout.complete failed") from exc
            except SQLAlchemyError as exc:
                logger.exception("checkout completion failed: %s", checkout_id)
                log_event("error", "checkout.complete.failed", checkout_id=checkout_id, error=type(exc).__name__)
                raise InternalError("checkout.complete failed") from exc

            log_event("info", "checkout.completed", checkout_id=checkout_id, order_id=result["id"])
            notify_safely(
                self._notifier,
                "order.created",
                {
                    "order_id": result["id"],
                    "order_number": result["order_number"],
                    "status": result["status"],
                    "total": result["total"],
                    "user_id": owner.user_id,
                    "session_id": owner.session_id,
                },
            )
            return result
        raise OrderNumberExhausted(attempts)

    def abandon(self, checkout_id: str, *, user_id: Optional[str], session_id: Optional[str]) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("checkout.abandon", checkout_id=checkout_id), self._session_factory() as session:
            checkout = self._load_owned(session, checkout_id, owner)
            self._require_active(checkout, CheckoutStatus.ABANDONED)
            now = utcnow()
            claimed = (
                session.query(Checkout)
                .filter(Checkout.id == checkout.id, Checkout.status == CheckoutStatus.ACTIVE.value)
                .update(
                    {
                        Checkout.status: CheckoutStatus.ABANDONED.value,
                        Checkout.abandoned_at: now,
                        Checkout.updated_at: now,
                    }
                )
            )
            if claimed != 1:
                session.refresh(checkout)
                raise InvalidState("checkout", checkout.status, CheckoutStatus.ABANDONED.value)
            log_event("info", "checkout.abandoned", checkout_id=checkout.id)
            return to_checkout_dto(checkout)

    def abandon_expired(self, now=None) -> int:
        """Abandon every active checkout whose ``expires_at`` has passed."""
        now = now or utcnow()
        with persistence_guard("checkout.abandon_expired"), self._session_factory() as session:
            count = (
                session.query(Checkout)
                .filter(
                    Checkout.status == CheckoutStatus.ACTIVE.value,
                    Checkout.expires_at.isnot(None),
                    Checkout.expires_at < now,
                )
                .update(
                    {
                        Checkout.status: CheckoutStatus.ABANDONED.value,
                        Checkout.abandoned_at: now,
                        Checkout.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            log_event("info", "checkout.expired_swept", count=count)
            return count
