"""Category node; ``parent_id`` links form the navigation hierarchy."""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text
from .base import Base


class Category(Base):
    __tablename__ = "category"
    __table_args__ = (Index("ix_category_parent_id", "parent_id"),)

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    parent_id = Column(String(36), ForeignKey("category.id"), nullable=True)
    # NULL sorts after every numbered sibling
    sort_order = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_published = Column(Boolean, nullable=False, default=True)
