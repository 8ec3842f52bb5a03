from typing import Dict, Optional
from uuid import uuid4

from ..db.session import get_session
from ..errors import ValidationFailed
from ..models.address import Address
from .identity import Owner
from .logging import persistence_guard


REQUIRED_FIELDS = ("first_name", "last_name", "line1", "city", "postal_code", "country")


class AddressService:
    """Address store; ``find`` serves callers already inside a transaction."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def create_address(self, *, user_id: Optional[str], session_id: Optional[str], **fields) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        errors = [f"{name} is required" for name in REQUIRED_FIELDS if not str(fields.get(name) or "").strip()]
        country = str(fields.get("country") or "").strip().upper()
        if country and len(country) != 2:
            errors.append("country must be an ISO-3166 alpha-2 code")
        if errors:
            raise ValidationFailed(errors, message="Address validation failed")
        with persistence_guard("address.create"), self._session_factory() as session:
            address = Address(
                id=str(uuid4()),
                user_id=owner.user_id,
                session_id=owner.session_id,
                first_name=fields["first_name"].strip(),
                last_name=fields["last_name"].strip(),
                line1=fields["line1"].strip(),
                line2=(fields.get("line2") or None),
                city=fields["city"].strip(),
                state=(fields.get("state") or None),
                postal_code=str(fields["postal_code"]).strip(),
                country=country,
                phone=(fields.get("phone") or None),
            )
            session.add(address)
            session.flush()
            return address.to_snapshot()

    @staticmethod
    def find(session, address_id: str) -> Optional[Address]:
        """Load an address inside the caller's transaction."""
        if not address_id:
            return None
        return session.query(Address).filter(Address.id == address_id).first()

    def exists(self, address_id: str) -> bool:
        with self._session_factory() as session:
            return self.find(session, address_id) is not None

    def get_address(self, address_id: str) -> Dict:
        with self._session_factory() as session:
            address = self.find(session, address_id)
            if not address:
                return {}
            data = address.to_snapshot()
            data["user_id"] = address.user_id
            data["session_id"] = address.session_id
            return data
