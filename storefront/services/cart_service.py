from typing import Dict, List, Optional
from uuid import uuid4
from decimal import Decimal
from ..db.session import get_session
from ..errors import NotFound, ValidationFailed
from ..models.product import Product
from ..models.cart_item import CartItem
from ..utils.validators import non_negative_int
from .identity import Owner
from .logging import persistence_guard


def _item_dto(it: CartItem) -> Dict:
    return {
        "id": it.id,
        "product_id": it.product_id,
        "quantity": it.quantity,
        "unit_price": float(it.unit_price or 0),
        "currency": it.currency,
    }


class CartService:
    """Cart operations backed by DB."""

    def __init__(self, session_factory=get_session, currency: str = "USD"):
        self._session_factory = session_factory
        self._currency = currency

    @staticmethod
    def _live_items(session, owner: Owner):
        return session.query(CartItem).filter(owner.filter_for(CartItem), CartItem.deleted_at.is_(None))

    @staticmethod
    def find_items(session, item_ids: List[str]) -> Dict[str, CartItem]:
        """Live cart rows keyed by id, loaded inside the caller's transaction."""
        if not item_ids:
            return {}
        rows = session.query(CartItem).filter(CartItem.id.in_(item_ids), CartItem.deleted_at.is_(None)).all()
        return {it.id: it for it in rows}

    def get_items(self, item_ids: List[str]) -> List[Dict]:
        with self._session_factory() as session:
            rows = self.find_items(session, item_ids)
            result = []
            for item_id in item_ids:
                it = rows.get(item_id)
                if it is None:
                    continue
                data = _item_dto(it)
                data["user_id"] = it.user_id
                data["session_id"] = it.session_id
                result.append(data)
            return result

    def get_cart(self, *, session_id: Optional[str], user_id: Optional[str]) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with self._session_factory() as session:
            rows = self._live_items(session, owner).order_by(CartItem.added_at, CartItem.id).all()
            items = [_item_dto(it) for it in rows]
            subtotal = sum((Decimal(str(it.unit_price)) * Decimal(it.quantity) for it in rows), Decimal("0"))
            currency = items[0]["currency"] if items else self._currency
            return {"items": items, "subtotal": float(subtotal), "currency": currency}

    def add_item(self, *, session_id: Optional[str], user_id: Optional[str], product_id: str, quantity=1) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        errors: List[str] = []
        if not product_id:
            errors.append("product_id required")
        qnty = non_negative_int(1 if quantity is None else quantity, "quantity", errors)
        if qnty == 0:
            errors.append("quantity must be > 0")
        if errors:
            raise ValidationFailed(errors)
        with persistence_guard("cart.add_item", product_id=product_id), self._session_factory() as session:
            prod = (
                session.query(Product)
                .filter(Product.id == product_id, Product.is_active.is_(True))
                .first()
            )
            if not prod:
                raise NotFound("product", product_id)
            if prod.stock is not None and qnty > int(prod.stock):
                raise ValidationFailed(["insufficient stock"])

            # Merge with an existing line for the same product and identity
            existing = (
                self._live_items(session, owner)
                .filter(CartItem.product_id == product_id)
                .first()
            )
            if existing:
                new_q = existing.quantity + qnty
                if prod.stock is not None and new_q > int(prod.stock):
                    raise ValidationFailed(["insufficient stock"])
                existing.quantity = new_q
                item_id = existing.id
            else:
                item = CartItem(
                    id=str(uuid4()),
                    session_id=owner.session_id,
                    user_id=owner.user_id,
                    product_id=product_id,
                    quantity=qnty,
                    unit_price=prod.price,
                    currency=prod.currency,
                )
                session.add(item)
                item_id = item.id
            session.flush()
            return {"status": "added", "item_id": item_id}

    def _owned_item(self, session, owner: Owner, item_id: str) -> CartItem:
        it = self._live_items(session, owner).filter(CartItem.id == item_id).first() if item_id else None
        if it is None:
            raise NotFound("cart item", item_id)
        return it

    def update_item(self, *, session_id: Optional[str], user_id: Optional[str], item_id: str, quantity) -> Dict:
        """Set the quantity of one of the owner's lines; 0 removes it."""
        owner = Owner.resolve(user_id, session_id)
        errors: List[str] = []
        qnty = non_negative_int(quantity, "quantity", errors)
        if errors:
            raise ValidationFailed(errors)
        with persistence_guard("cart.update_item", item_id=item_id), self._session_factory() as session:
            it = self._owned_item(session, owner, item_id)
            if qnty == 0:
                session.delete(it)
                session.flush()
                return {"status": "removed", "item_id": item_id}
            prod = session.query(Product).filter(Product.id == it.product_id).first()
            if prod and prod.stock is not None and qnty > int(prod.stock):
                raise ValidationFailed(["insufficient stock"])
            it.quantity = qnty
            session.flush()
            return {"status": "updated", "item_id": item_id}

    def remove_item(self, *, session_id: Optional[str], user_id: Optional[str], item_id: str) -> Dict:
        owner = Owner.resolve(user_id, session_id)
        with persistence_guard("cart.remove_item", item_id=item_id), self._session_factory() as session:
            session.delete(self._owned_item(session, owner, item_id))
            session.flush()
        return {"status": "removed", "item_id": item_id}
