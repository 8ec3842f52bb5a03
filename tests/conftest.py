"""Pytest fixtures for storefront tests."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.pool import StaticPool

from storefront.db.session import init_db, make_engine, make_session_factory
from storefront.models import Address, CartItem, Product
from storefront.services import (
    CategoryService,
    CheckoutService,
    NotificationSender,
    OrderAssembler,
    OrderService,
    OrderStateMachine,
    PaymentService,
    PricingRules,
)


class RecordingNotifier(NotificationSender):
    """Keeps every notification instead of logging it."""

    def __init__(self):
        self.sent = []

    def send(self, event, payload):
        self.sent.append((event, payload))

    def events(self):
        return [event for event, _ in self.sent]


class Seeder:
    """Inserts catalog, address and cart rows directly."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def product(self, *, price="29.99", stock=10, name="Widget", sku=None, category_id=None, is_active=True):
        pid = str(uuid4())
        with self._session_factory() as session:
            session.add(
                Product(
                    id=pid,
                    sku=sku or f"SKU-{pid[:8]}",
                    name=name,
                    price=Decimal(price),
                    currency="USD",
                    category_id=category_id,
                    stock=stock,
                    is_active=is_active,
                )
            )
        return pid

    def address(self, *, user_id=None, session_id=None, city="Springfield"):
        aid = str(uuid4())
        with self._session_factory() as session:
            session.add(
                Address(
                    id=aid,
                    user_id=user_id,
                    session_id=session_id,
                    first_name="Ada",
                    last_name="Lovelace",
                    line1="1 Main St",
                    city=city,
                    postal_code="12345",
                    country="US",
                )
            )
        return aid

    def cart_item(self, product_id, *, quantity=1, user_id=None, session_id=None, unit_price="29.99"):
        cid = str(uuid4())
        with self._session_factory() as session:
            session.add(
                CartItem(
                    id=cid,
                    user_id=user_id,
                    session_id=session_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=Decimal(unit_price),
                    currency="USD",
                )
            )
        return cid

    def get(self, model, row_id):
        with self._session_factory() as session:
            return session.query(model).filter(model.id == row_id).first()


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def pricing():
    return PricingRules(
        tax_rate=Decimal("0"),
        shipping_rates={"standard": Decimal("0"), "express": Decimal("9.95")},
    )


@pytest.fixture
def assembler(pricing):
    return OrderAssembler(pricing)


@pytest.fixture
def checkouts(session_factory, assembler, notifier):
    return CheckoutService(session_factory, assembler=assembler, notifier=notifier)


@pytest.fixture
def payments(session_factory):
    return PaymentService(session_factory)


@pytest.fixture
def orders(session_factory, payments, notifier):
    return OrderService(session_factory, state_machine=OrderStateMachine(), payments=payments, notifier=notifier)


@pytest.fixture
def categories(session_factory):
    return CategoryService(session_factory)


@pytest.fixture
def open_checkout(seed, checkouts):
    """Build addresses, cart items and an active checkout for one owner."""

    def _open(*, user_id=None, session_id=None, quantities=(1, 1), price="29.99", stock=10, shipping_method="standard"):
        address_id = seed.address(user_id=user_id, session_id=session_id)
        item_ids = []
        for qty in quantities:
            product_id = seed.product(price=price, stock=stock)
            item_ids.append(
                seed.cart_item(product_id, quantity=qty, user_id=user_id, session_id=session_id, unit_price=price)
            )
        return checkouts.create(
            user_id=user_id,
            session_id=session_id,
            shipping_address_id=address_id,
            billing_address_id=address_id,
            shipping_method=shipping_method,
            cart_item_ids=item_ids,
        )

    return _open


@pytest.fixture
def place_order(open_checkout, checkouts):
    """Complete a fresh checkout and return the order DTO."""

    def _place(*, user_id=None, session_id=None, **kwargs):
        checkout = open_checkout(user_id=user_id, session_id=session_id, **kwargs)
        return checkouts.complete(checkout["id"], user_id=user_id, session_id=session_id)

    return _place
