from typing import Dict, List, Optional
from uuid import uuid4

from sqlalchemy import func

from ..db.session import get_session
from ..errors import InvalidState, NoConfirmedPayment, NotFound, ValidationFailed
from ..models.base import utcnow
from ..models.order import Order, OrderStatusHistory
from ..models.status import OrderStatus, PaymentStatus
from ..utils.dto import to_order_dto
from ..utils.pagination import normalize_paging
from .catalog_service import CatalogService
from .identity import Owner
from .logging import log_event, persistence_guard
from .notification_service import NotificationSender, notify_safely
from .order_status import OrderStateMachine
from .payment_service import PaymentService


# stock is still on the shelf in these statuses
UNSHIPPED_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})


class OrderService:
    """Order retrieval and lifecycle transitions backed by DB."""

    def __init__(
        self,
        session_factory=get_session,
        state_machine: Optional[OrderStateMachine] = None,
        payments: Optional[PaymentService] = None,
        notifier: Optional[NotificationSender] = None,
    ):
        self._session_factory = session_factory
        self._rules = state_machine or OrderStateMachine()
        self._payments = payments or PaymentService(session_factory)
        self._notifier = notifier or NotificationSender()

    @staticmethod
    def _load(session, order_id: str, owner: Optional[Owner] = None) -> Order:
        order = session.query(Order).filter(Order.id == order_id).first() if order_id else None
        if order is None or (owner is not None and not owner.owns(order)):
            raise NotFound("order", order_id)
        return order

    @staticmethod
    def _transition(session, order: Order, target: OrderStatus, actor: Optional[str], reason: Optional[str], **values) -> str:
        """Conditionally move ``order`` out of the status it was loaded with.

        Returns the previous status; a concurrent writer that got there first
        makes this raise ``InvalidState``.
        """
        previous = order.status
        now = utcnow()
        changes = {Order.status: target.value, Order.updated_at: now}
        changes.update({getattr(Order, k): v for k, v in values.items()})
        claimed = (
            session.query(Order)
            .filter(Order.id == order.id, Order.status == previous)
            .update(changes, synchronize_session="evaluate")
        )
        if claimed != 1:
            session.refresh(order)
            raise InvalidState("order", order.status, target.value)
        session.add(
            OrderStatusHistory(
                id=str(uuid4()),
                order_id=order.id,
                previous_status=previous,
                new_status=target.value,
                changed_by=actor,
                reason=reason,
                created_at=now,
            )
        )
        session.flush()
        log_event("info", "order.status_changed", order_id=order.id, previous=previous, status=target.value, actor=actor)
        return previous

    def _notify(self, event: str, order: Dict, previous: str) -> None:
        notify_safely(
            self._notifier,
            event,
            {
                "order_id": order["id"],
                "order_number": order["order_number"],
                "previous_status": previous,
                "status": order["status"],
                "payment_status": order["payment_status"],
            },
        )

    # -- reads ------------------------------------------------------------

    def get_order(self, order_id: str, *, user_id: Optional[str], session_id: Optional[str]) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("order.get", order_id=order_id), self._session_factory() as session:
            return to_order_dto(self._load(session, order_id, owner))

    def list_orders(
        self,
        *,
        user_id: Optional[str],
        session_id: Optional[str],
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        """Return dict: { items: [OrderDTO], page, page_size, total }, newest first."""
        owner = Owner.resolve(user_id, session_id)
        if status is not None:
            try:
                status = OrderStatus(status).value
            except ValueError:
                raise ValidationFailed([f"unknown order status: {status}"])
        p, ps = normalize_paging(page, page_size)
        with persistence_guard("order.list"), self._session_factory() as session:
            q = session.query(Order).filter(owner.filter_for(Order))
            if status:
                q = q.filter(Order.status == status)
            total = q.count()
            rows = q.order_by(Order.created_at.desc(), Order.id).offset((p - 1) * ps).limit(ps).all()
            return {"items": [to_order_dto(r) for r in rows], "page": p, "page_size": ps, "total": total}

    def get_order_stats(self, *, user_id: Optional[str], session_id: Optional[str]) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("order.stats"), self._session_factory() as session:
            rows = (
                session.query(Order.status, func.count(Order.id))
                .filter(owner.filter_for(Order))
                .group_by(Order.status)
                .all()
            )
        by_status = {s.value: 0 for s in OrderStatus}
        by_status.update({status: count for status, count in rows})
        return {"total": sum(by_status.values()), "by_status": by_status}

    def get_status_history(self, order_id: str) -> List[Dict]:
        with persistence_guard("order.history", order_id=order_id), self._session_factory() as session:
            self._load(session, order_id)
            rows = (
                session.query(OrderStatusHistory)
                .filter(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.created_at, OrderStatusHistory.id)
                .all()
            )
            return [
                {
                    "previous_status": r.previous_status,
                    "new_status": r.new_status,
                    "changed_by": r.changed_by,
                    "reason": r.reason,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                }
                for r in rows
            ]

    # -- owner transitions ------------------------------------------------

    def cancel(self, order_id: str, *, user_id: Optional[str], session_id: Optional[str], reason: Optional[str]) -> Dict:
        """Cancel an order on behalf of its owner; ``reason`` may be empty but not absent."""
        owner = Owner.resolve(user_id, session_id)
        if reason is None:
            raise ValidationFailed(["reason is required"])
        with persistence_guard("order.cancel", order_id=order_id), self._session_factory() as session:
            order = self._load(session, order_id, owner)
            self._rules.check_cancel(order.status)
            values = {"cancel_reason": reason, "cancelled_at": utcnow()}
            if order.payment_status == PaymentStatus.PENDING.value:
                values["payment_status"] = PaymentStatus.CANCELLED.value
            previous = self._transition(
                session, order, OrderStatus.CANCELLED, owner.user_id or "guest", reason, **values
            )
            for item in order.items:
                CatalogService.release_stock(session, item.product_id, item.quantity)
            result = to_order_dto(order)
        self._notify("order.cancelled", result, previous)
        return result

    def refund(self, order_id: str, *, user_id: Optional[str], session_id: Optional[str], reason: Optional[str] = None) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("order.refund", order_id=order_id), self._session_factory() as session:
            order = self._load(session, order_id, owner)
            if order.status == OrderStatus.REFUNDED.value:
                raise InvalidState("order", order.status, OrderStatus.REFUNDED.value)
            self._rules.check_refund(order.status)
            if not self._payments.has_confirmed_payment(order.id, session=session):
                raise NoConfirmedPayment(order.id)
            restock = OrderStatus(order.status) in UNSHIPPED_STATUSES
            previous = self._transition(
                session,
                order,
                OrderStatus.REFUNDED,
                owner.user_id or "guest",
                reason,
                payment_status=PaymentStatus.REFUNDED.value,
                refunded_at=utcnow(),
            )
            self._payments.mark_refunded(session, order.id)
            if restock:
                for item in order.items:
                    CatalogService.release_stock(session, item.product_id, item.quantity)
            result = to_order_dto(order)
        self._notify("order.refunded", result, previous)
        return result

    # -- administrative ---------------------------------------------------

    def advance(
        self,
        order_id: str,
        new_status: str,
        *,
        actor: str = "admin",
        note: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> Dict:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationFailed([f"unknown order status: {new_status}"])
        with persistence_guard("order.advance", order_id=order_id), self._session_factory() as session:
            order = self._load(session, order_id)
            self._rules.check_advance(order.status, target)
            values = {}
            if note is not None:
                values["admin_notes"] = note
            if tracking_number:
                values["tracking_number"] = tracking_number
            previous = self._transition(session, order, target, actor, note, **values)
            result = to_order_dto(order)
        self._notify("order.status_changed", result, previous)
        return result
