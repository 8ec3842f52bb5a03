from sqlalchemy import Column, DateTime, String, func
from .base import Base


class Address(Base):
    __tablename__ = "address"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(128), nullable=True)
    session_id = Column(String(128), nullable=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(128), nullable=False)
    state = Column(String(128), nullable=True)
    postal_code = Column(String(32), nullable=False)
    country = Column(String(2), nullable=False)
    phone = Column(String(32), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_snapshot(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }
