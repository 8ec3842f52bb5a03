from typing import Dict, Optional
from sqlalchemy import or_
from ..db.session import get_session
from ..errors import CartItemInvalid
from ..models.category import Category
from ..models.product import Product
from ..utils.dto import to_product_dto
from ..utils.pagination import normalize_paging
from .category_tree import CategoryIndex


class CatalogService:
    """Product catalog: listing for browsing, snapshots and stock for order assembly."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def list_products(
        self,
        *,
        query: Optional[str] = None,
        category: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict:
        """Return dict: { items: [ProductDTO], page, page_size, total }

        ``category`` (id or slug) matches products in that category or any of
        its descendants.
        """
        p, ps = normalize_paging(page, page_size)
        with self._session_factory() as session:
            q = session.query(Product).filter(Product.is_active.is_(True))
            if query:
                like = f"%{query}%"
                q = q.filter(
                    or_(
                        Product.name.ilike(like),
                        Product.description.ilike(like),
                        Product.sku.ilike(like),
                    )
                )
            if category:
                index = CategoryIndex.from_rows(
                    session.query(Category).filter(Category.is_published.is_(True)).all()
                )
                root = index.get(category) or next(
                    (n for n in index.nodes.values() if n.slug == category), None
                )
                if root is None:
                    return {"items": [], "page": p, "page_size": ps, "total": 0}
                ids = [root.id] + [n.id for n in index.descendants(root.id)]
                q = q.filter(Product.category_id.in_(ids))
            total = q.count()
            rows = (
                q.order_by(Product.sort_order.desc(), Product.created_at.desc(), Product.id)
                .offset((p - 1) * ps)
                .limit(ps)
                .all()
            )
            return {"items": [to_product_dto(r) for r in rows], "page": p, "page_size": ps, "total": total}

    def get_product(self, product_id: str) -> dict:
        """Return ProductDTO for given product id."""
        with self._session_factory() as session:
            r = (
                session.query(Product)
                .filter(Product.id == product_id, Product.is_active.is_(True))
                .first()
            )
            return to_product_dto(r) if r else {}

    # -- used inside an order-assembly transaction ------------------------

    @staticmethod
    def reserve_stock(session, product_id: str, quantity: int) -> Product:
        """Lock the product row, check availability and decrement stock."""
        prod = (
            session.query(Product)
            .filter(Product.id == product_id)
            .with_for_update()
            .first()
        )
        if not prod or not prod.is_active:
            raise CartItemInvalid("Product no longer available", [product_id])
        if prod.stock is not None:
            if quantity > int(prod.stock):
                raise CartItemInvalid("Insufficient stock for product", [product_id])
            prod.stock = int(prod.stock) - quantity
        return prod

    @staticmethod
    def release_stock(session, product_id: str, quantity: int) -> None:
        prod = session.query(Product).filter(Product.id == product_id).with_for_update().first()
        if prod is not None and prod.stock is not None:
            prod.stock = int(prod.stock) + quantity
