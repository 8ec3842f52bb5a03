from decimal import Decimal, InvalidOperation
from typing import Dict, Optional
from uuid import uuid4

from ..db.session import get_session
from ..errors import InvalidState, NotFound, ValidationFailed
from ..models.base import utcnow
from ..models.order import Order
from ..models.payment import Payment
from ..models.status import CONFIRMED_PAYMENT_STATUSES, OrderStatus, PaymentStatus
from ..utils.dto import to_payment_dto
from .logging import log_event, persistence_guard


class PaymentService:
    """Manual payment records and their confirmation against orders."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def record_payment(self, *, order_id: str, amount, method: str = "manual") -> Dict:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValidationFailed([f"amount is not a number: {amount!r}"])
        if value <= 0:
            raise ValidationFailed(["amount must be > 0"])
        with persistence_guard("payment.record", order_id=order_id), self._session_factory() as session:
            order = session.query(Order).filter(Order.id == order_id).first()
            if not order:
                raise NotFound("order", order_id)
            if OrderStatus(order.status) in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
                raise InvalidState("order", order.status, "payment")
            payment = Payment(
                id=str(uuid4()),
                order_id=order_id,
                amount=value,
                currency=order.currency,
                method=method or "manual",
                status=PaymentStatus.PENDING.value,
            )
            session.add(payment)
            session.flush()
            log_event("info", "payment.recorded", payment_id=payment.id, order_id=order_id, amount=str(value))
            return to_payment_dto(payment)

    def _pending_payment(self, session, payment_id: str, attempted: PaymentStatus) -> Payment:
        payment = session.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
        if not payment:
            raise NotFound("payment", payment_id)
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidState("payment", payment.status, attempted.value)
        return payment

    def confirm(self, payment_id: str) -> Dict:
        with persistence_guard("payment.confirm", payment_id=payment_id), self._session_factory() as session:
            payment = self._pending_payment(session, payment_id, PaymentStatus.CONFIRMED)
            now = utcnow()
            payment.status = PaymentStatus.CONFIRMED.value
            payment.confirmed_at = now
            order = session.query(Order).filter(Order.id == payment.order_id).first()
            if order is not None and OrderStatus(order.status) not in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
                order.payment_status = PaymentStatus.CONFIRMED.value
                order.paid_at = now
                order.updated_at = now
            session.flush()
            log_event("info", "payment.confirmed", payment_id=payment_id, order_id=payment.order_id)
            return to_payment_dto(payment)

    def reject(self, payment_id: str, reason: Optional[str] = None) -> Dict:
        with persistence_guard("payment.reject", payment_id=payment_id), self._session_factory() as session:
            payment = self._pending_payment(session, payment_id, PaymentStatus.FAILED)
            payment.status = PaymentStatus.FAILED.value
            payment.failure_reason = reason
            order = session.query(Order).filter(Order.id == payment.order_id).first()
            if order is not None and order.payment_status == PaymentStatus.PENDING.value:
                order.payment_status = PaymentStatus.FAILED.value
                order.updated_at = utcnow()
            session.flush()
            log_event("info", "payment.rejected", payment_id=payment_id, order_id=payment.order_id, reason=reason)
            return to_payment_dto(payment)

    def has_confirmed_payment(self, order_id: str, session=None) -> bool:
        if session is not None:
            return self._confirmed_query(session, order_id).first() is not None
        with self._session_factory() as own:
            return self._confirmed_query(own, order_id).first() is not None

    @staticmethod
    def _confirmed_query(session, order_id: str):
        return session.query(Payment.id).filter(
            Payment.order_id == order_id, Payment.status.in_(sorted(CONFIRMED_PAYMENT_STATUSES))
        )

    @staticmethod
    def mark_refunded(session, order_id: str) -> int:
        """Flip every confirmed payment of ``order_id`` to refunded; returns how many."""
        return (
            session.query(Payment)
            .filter(Payment.order_id == order_id, Payment.status.in_(sorted(CONFIRMED_PAYMENT_STATUSES)))
            .update(
                {Payment.status: PaymentStatus.REFUNDED.value, Payment.refunded_at: utcnow()},
                synchronize_session=False,
            )
        )
