"""Catalog product; price and name are copied into order lines at completion."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from .base import Base


class Product(Base):
    __tablename__ = "product"
    __table_args__ = (
        CheckConstraint("stock IS NULL OR stock >= 0", name="ck_product_stock_non_negative"),
        Index("ix_product_category_id", "category_id"),
    )

    id = Column(String(36), primary_key=True)
    sku = Column(String(128), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    category_id = Column(String(36), ForeignKey("category.id"), nullable=True)
    # NULL means stock is not tracked
    stock = Column(Integer, nullable=True, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
