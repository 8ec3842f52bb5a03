"""Cart line owned by a guest session or a user, referenced by checkouts."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from .base import Base


class CartItem(Base):
    __tablename__ = "cart_item"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_item_quantity_positive"),
        Index("ix_cart_item_session_id", "session_id"),
        Index("ix_cart_item_user_id", "user_id"),
    )

    id = Column(String(36), primary_key=True)
    session_id = Column(String(128), nullable=True)
    user_id = Column(String(128), nullable=True)
    product_id = Column(String(36), ForeignKey("product.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    # price shown in the cart; orders re-read the product price
    unit_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    added_at = Column(DateTime, nullable=False, server_default=func.now())
    # set when the item is consumed by a completed checkout
    deleted_at = Column(DateTime, nullable=True)
