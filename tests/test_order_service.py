"""Tests for OrderService transitions and reads."""

import pytest

from storefront.errors import AmbiguousOwnership, InvalidState, NoConfirmedPayment, NotFound, ValidationFailed
from storefront.models import Order, OrderStatusHistory, Payment, Product
from storefront.services import OrderService, OrderStateMachine
from storefront.services.order_status import build_advance_transitions


def _confirm_payment(payments, order):
    payment = payments.record_payment(order_id=order["id"], amount=order["total"])
    return payments.confirm(payment["id"])


class TestReads:
    def test_get_order_owner_only(self, place_order, orders):
        order = place_order(user_id="user-a")
        assert orders.get_order(order["id"], user_id="user-a", session_id=None)["id"] == order["id"]
        with pytest.raises(NotFound):
            orders.get_order(order["id"], user_id="user-b", session_id=None)

    def test_get_order_requires_identity(self, place_order, orders):
        order = place_order(user_id="user-a")
        with pytest.raises(AmbiguousOwnership):
            orders.get_order(order["id"], user_id=None, session_id=None)

    def test_list_orders_scoped_and_paged(self, place_order, orders):
        for _ in range(3):
            place_order(session_id="s1", quantities=(1,))
        place_order(session_id="s2", quantities=(1,))

        page = orders.list_orders(user_id=None, session_id="s1", page=1, page_size=2)
        assert page["total"] == 3
        assert len(page["items"]) == 2
        rest = orders.list_orders(user_id=None, session_id="s1", page=2, page_size=2)
        assert len(rest["items"]) == 1

    def test_list_orders_filters_status(self, place_order, orders):
        keep = place_order(session_id="s1", quantities=(1,))
        gone = place_order(session_id="s1", quantities=(1,))
        orders.cancel(gone["id"], user_id=None, session_id="s1", reason="")

        pending = orders.list_orders(user_id=None, session_id="s1", status="pending")
        assert [o["id"] for o in pending["items"]] == [keep["id"]]
        with pytest.raises(ValidationFailed):
            orders.list_orders(user_id=None, session_id="s1", status="lost")

    def test_stats(self, place_order, orders):
        place_order(user_id="user-a", quantities=(1,))
        cancelled = place_order(user_id="user-a", quantities=(1,))
        orders.cancel(cancelled["id"], user_id="user-a", session_id=None, reason="changed mind")

        stats = orders.get_order_stats(user_id="user-a", session_id=None)
        assert stats["total"] == 2
        assert stats["by_status"]["pending"] == 1
        assert stats["by_status"]["cancelled"] == 1
        assert stats["by_status"]["shipped"] == 0


class TestCancel:
    def test_cancel_pending(self, seed, place_order, orders, notifier):
        order = place_order(session_id="s1", quantities=(2,), stock=5)
        result = orders.cancel(order["id"], user_id=None, session_id="s1", reason="too slow")

        assert result["status"] == "cancelled"
        assert result["payment_status"] == "cancelled"
        assert result["cancel_reason"] == "too slow"
        assert seed.get(Product, order["items"][0]["product_id"]).stock == 5
        assert notifier.events()[-1] == "order.cancelled"

    def test_empty_reason_allowed_missing_reason_rejected(self, place_order, orders):
        order = place_order(session_id="s1", quantities=(1,))
        with pytest.raises(ValidationFailed):
            orders.cancel(order["id"], user_id=None, session_id="s1", reason=None)
        assert orders.cancel(order["id"], user_id=None, session_id="s1", reason="")["status"] == "cancelled"

    def test_cancel_twice(self, place_order, orders):
        order = place_order(session_id="s1", quantities=(1,))
        orders.cancel(order["id"], user_id=None, session_id="s1", reason="")
        with pytest.raises(InvalidState) as exc:
            orders.cancel(order["id"], user_id=None, session_id="s1", reason="")
        assert exc.value.current == "cancelled"
        assert exc.value.attempted == "cancelled"

    def test_cannot_cancel_shipped(self, place_order, orders):
        order = place_order(user_id="user-a", quantities=(1,))
        for status in ("confirmed", "processing", "shipped"):
            orders.advance(order["id"], status)
        with pytest.raises(InvalidState):
            orders.cancel(order["id"], user_id="user-a", session_id=None, reason="late")

    def test_non_owner_gets_not_found(self, place_order, orders):
        order = place_order(user_id="user-a", quantities=(1,))
        with pytest.raises(NotFound):
            orders.cancel(order["id"], user_id="user-b", session_id=None, reason="")

    def test_history_row_written(self, place_order, orders, session_factory):
        order = place_order(session_id="s1", quantities=(1,))
        orders.cancel(order["id"], user_id=None, session_id="s1", reason="dup")
        history = orders.get_status_history(order["id"])
        assert [(h["previous_status"], h["new_status"]) for h in history] == [
            (None, "pending"),
            ("pending", "cancelled"),
        ]
        assert history[-1]["changed_by"] == "guest"


class TestRefund:
    def test_refund_requires_confirmed_payment(self, place_order, orders, payments, seed):
        order = place_order(user_id="user-a", quantities=(1,))
        with pytest.raises(NoConfirmedPayment):
            orders.refund(order["id"], user_id="user-a", session_id=None)

        _confirm_payment(payments, order)
        result = orders.refund(order["id"], user_id="user-a", session_id=None)
        assert result["status"] == "refunded"
        assert result["payment_status"] == "refunded"

    def test_pending_payment_is_not_enough(self, place_order, orders, payments):
        order = place_order(user_id="user-a", quantities=(1,))
        payments.record_payment(order_id=order["id"], amount=order["total"])
        with pytest.raises(NoConfirmedPayment):
            orders.refund(order["id"], user_id="user-a", session_id=None)

    def test_refund_twice(self, place_order, orders, payments):
        order = place_order(user_id="user-a", quantities=(1,))
        _confirm_payment(payments, order)
        orders.refund(order["id"], user_id="user-a", session_id=None)
        with pytest.raises(InvalidState) as exc:
            orders.refund(order["id"], user_id="user-a", session_id=None)
        assert exc.value.current == "refunded"

    def test_payments_marked_refunded(self, place_order, orders, payments, session_factory):
        order = place_order(user_id="user-a", quantities=(1,))
        confirmed = _confirm_payment(payments, order)
        orders.refund(order["id"], user_id="user-a", session_id=None)
        with session_factory() as session:
            payment = session.query(Payment).filter(Payment.id == confirmed["id"]).first()
            assert payment.status == "refunded"
            assert payment.refunded_at is not None

    def test_refund_shipped_order_keeps_stock(self, seed, place_order, orders, payments):
        order = place_order(user_id="user-a", quantities=(2,), stock=4)
        _confirm_payment(payments, order)
        for status in ("confirmed", "processing", "shipped"):
            orders.advance(order["id"], status)
        orders.refund(order["id"], user_id="user-a", session_id=None)
        assert seed.get(Product, order["items"][0]["product_id"]).stock == 2

    def test_refund_unshipped_order_restocks(self, seed, place_order, orders, payments):
        order = place_order(user_id="user-a", quantities=(2,), stock=4)
        _confirm_payment(payments, order)
        orders.refund(order["id"], user_id="user-a", session_id=None)
        assert seed.get(Product, order["items"][0]["product_id"]).stock == 4

    def test_cancelled_order_cannot_be_refunded(self, place_order, orders, payments):
        order = place_order(user_id="user-a", quantities=(1,))
        _confirm_payment(payments, order)
        orders.cancel(order["id"], user_id="user-a", session_id=None, reason="")
        with pytest.raises(InvalidState):
            orders.refund(order["id"], user_id="user-a", session_id=None)

    def test_refundable_statuses_are_configurable(self, session_factory, payments, notifier, place_order):
        rules = OrderStateMachine(refundable={"pending", "confirmed"})
        service = OrderService(session_factory, state_machine=rules, payments=payments, notifier=notifier)
        order = place_order(user_id="user-a", quantities=(1,))
        _confirm_payment(payments, order)
        service.advance(order["id"], "confirmed")
        service.advance(order["id"], "processing")
        with pytest.raises(InvalidState):
            service.refund(order["id"], user_id="user-a", session_id=None)

    def test_non_owner_gets_not_found(self, place_order, orders, payments):
        order = place_order(user_id="user-a", quantities=(1,))
        _confirm_payment(payments, order)
        with pytest.raises(NotFound):
            orders.refund(order["id"], user_id=None, session_id="s9")


class TestAdvance:
    def test_linear_path(self, place_order, orders, notifier, seed):
        order = place_order(session_id="s1", quantities=(1,))
        for status in ("confirmed", "processing", "shipped", "delivered"):
            assert orders.advance(order["id"], status, actor="ops")["status"] == status
        assert seed.get(Order, order["id"]).status == "delivered"
        assert notifier.events().count("order.status_changed") == 4

    def test_strict_rejects_skip(self, place_order, orders):
        order = place_order(session_id="s1", quantities=(1,))
        with pytest.raises(InvalidState) as exc:
            orders.advance(order["id"], "shipped")
        assert exc.value.current == "pending"
        assert exc.value.attempted == "shipped"

    def test_relaxed_allows_forward_skip(self, session_factory, payments, notifier, place_order):
        rules = OrderStateMachine(advance_transitions=build_advance_transitions(strict=False))
        service = OrderService(session_factory, state_machine=rules, payments=payments, notifier=notifier)
        order = place_order(session_id="s1", quantities=(1,))
        assert service.advance(order["id"], "shipped")["status"] == "shipped"
        with pytest.raises(InvalidState):
            service.advance(order["id"], "confirmed")

    def test_cannot_advance_into_terminal(self, place_order, orders):
        order = place_order(session_id="s1", quantities=(1,))
        with pytest.raises(InvalidState):
            orders.advance(order["id"], "cancelled")

    def test_unknown_status(self, place_order, orders):
        order = place_order(session_id="s1", quantities=(1,))
        with pytest.raises(ValidationFailed):
            orders.advance(order["id"], "teleported")

    def test_unknown_order(self, orders):
        with pytest.raises(NotFound):
            orders.advance("missing", "confirmed")

    def test_tracking_and_note_stored(self, place_order, orders, session_factory, seed):
        order = place_order(session_id="s1", quantities=(1,))
        orders.advance(order["id"], "confirmed")
        orders.advance(order["id"], "processing")
        orders.advance(order["id"], "shipped", actor="ops", note="via UPS", tracking_number="1Z999")
        stored = seed.get(Order, order["id"])
        assert stored.tracking_number == "1Z999"
        assert stored.admin_notes == "via UPS"
        with session_factory() as session:
            last = (
                session.query(OrderStatusHistory)
                .filter(OrderStatusHistory.order_id == order["id"], OrderStatusHistory.new_status == "shipped")
                .one()
            )
            assert last.changed_by == "ops"
            assert last.reason == "via UPS"

    def test_dto_carries_fulfilment_fields(self, place_order, orders):
        order = place_order(session_id="s1", quantities=(1,))
        assert order["tracking_number"] is None
        assert order["paid_at"] is None
        orders.advance(order["id"], "confirmed")
        orders.advance(order["id"], "processing")
        shipped = orders.advance(order["id"], "shipped", note="via UPS", tracking_number="1Z999")
        assert shipped["tracking_number"] == "1Z999"
        assert shipped["admin_notes"] == "via UPS"
        fetched = orders.get_order(order["id"], user_id=None, session_id="s1")
        assert fetched["tracking_number"] == "1Z999"
        assert fetched["admin_notes"] == "via UPS"

    def test_dto_carries_lifecycle_timestamps(self, place_order, orders, payments):
        cancelled = place_order(session_id="s1", quantities=(1,))
        result = orders.cancel(cancelled["id"], user_id=None, session_id="s1", reason="")
        assert result["cancelled_at"] is not None
        assert result["refunded_at"] is None

        paid = place_order(session_id="s1", quantities=(1,))
        payments.confirm(payments.record_payment(order_id=paid["id"], amount=paid["total"])["id"])
        refunded = orders.refund(paid["id"], user_id=None, session_id="s1")
        assert refunded["paid_at"] is not None
        assert refunded["refunded_at"] is not None
