"""Owner credential presented with every checkout and order request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..errors import AmbiguousOwnership


@dataclass(frozen=True)
class Owner:
    """Exactly one of an authenticated user id or a guest session id."""

    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def resolve(cls, user_id: Optional[str], session_id: Optional[str]) -> "Owner":
        uid = (user_id or "").strip() or None
        sid = (session_id or "").strip() or None
        if uid and sid:
            raise AmbiguousOwnership(both=True)
        if not uid and not sid:
            raise AmbiguousOwnership(both=False)
        return cls(user_id=uid, session_id=sid)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def owns(self, record) -> bool:
        """True when ``record`` (anything with user_id/session_id) belongs to this owner."""
        if self.is_guest:
            return getattr(record, "user_id", None) is None and getattr(record, "session_id", None) == self.session_id
        return getattr(record, "user_id", None) == self.user_id

    def filter_for(self, model):
        """SQLAlchemy criterion selecting rows of ``model`` owned by this owner."""
        if self.is_guest:
            return (model.session_id == self.session_id) & model.user_id.is_(None)
        return model.user_id == self.user_id
