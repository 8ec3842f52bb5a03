"""Checkout session and its ordered cart-item references."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship
from .base import Base


class Checkout(Base):
    __tablename__ = "checkout"
    __table_args__ = (
        CheckConstraint("(user_id IS NULL) <> (session_id IS NULL)", name="ck_checkout_single_owner"),
    )

    id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=True)
    session_id = Column(String(128), nullable=True)
    shipping_address_id = Column(String(36), ForeignKey("address.id"), nullable=False)
    billing_address_id = Column(String(36), ForeignKey("address.id"), nullable=False)
    shipping_method = Column(String(64), nullable=False)
    payment_method = Column(String(64), nullable=True)
    status = Column(String(32), nullable=False, default="active")
    expires_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    abandoned_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    items = relationship(
        "CheckoutItem",
        order_by="CheckoutItem.position",
        cascade="all, delete-orphan",
        back_populates="checkout",
    )

    @property
    def cart_item_ids(self):
        return [it.cart_item_id for it in self.items]


class CheckoutItem(Base):
    """Reference from a checkout to a cart item; the cart item is not owned."""

    __tablename__ = "checkout_item"

    checkout_id = Column(String(36), ForeignKey("checkout.id", ondelete="CASCADE"), primary_key=True)
    cart_item_id = Column(String(36), ForeignKey("cart_item.id"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    checkout = relationship("Checkout", back_populates="items")
