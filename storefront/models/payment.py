from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, func
from .base import Base


class Payment(Base):
    __tablename__ = "payment"

    id = Column(String(36), primary_key=True)
    order_id = Column(String(36), ForeignKey("order.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    method = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    confirmed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
