import re
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import func

from ..db.session import get_session
from ..errors import CircularReference, NotFound, ValidationFailed
from ..models.category import Category
from ..models.product import Product
from ..utils.validators import non_negative_int
from .category_tree import CategoryIndex, CategoryNode
from .logging import log_event, persistence_guard


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")
    return slug or "category"


def _crumb(node) -> Dict:
    return {"id": node.id, "name": node.name, "slug": node.slug}


def _category_url(slug: str) -> str:
    return f"/categories/{slug}"


class CategoryService:
    """Category hierarchy: cycle-safe parenting, tree building and navigation."""

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    # -- loading ----------------------------------------------------------

    @staticmethod
    def _load_index(session, published_only: bool = False) -> CategoryIndex:
        q = session.query(Category)
        if published_only:
            q = q.filter(Category.is_published.is_(True))
        return CategoryIndex.from_rows(q.all())

    def load_index(self, published_only: bool = False) -> CategoryIndex:
        with self._session_factory() as session:
            return self._load_index(session, published_only)

    # -- invariants -------------------------------------------------------

    def check_circular_reference(self, candidate_parent_id: Optional[str], category_id: Optional[str]) -> bool:
        """True when ``candidate_parent_id`` is ``category_id`` or one of its descendants."""
        if candidate_parent_id and candidate_parent_id == category_id:
            return True
        with self._session_factory() as session:
            return self._load_index(session).is_circular(candidate_parent_id, category_id)

    def get_next_sort_order(self, parent_id: Optional[str]) -> int:
        with self._session_factory() as session:
            return self._next_sort_order(session, parent_id)

    @staticmethod
    def _next_sort_order(session, parent_id: Optional[str]) -> int:
        q = session.query(Category)
        q = q.filter(Category.parent_id == parent_id) if parent_id else q.filter(Category.parent_id.is_(None))
        siblings = q.all()
        if not siblings:
            return 0
        return max((c.sort_order or 0) for c in siblings) + 1

    def find_by_name_and_parent(self, name: str, parent_id: Optional[str]) -> Optional[Dict]:
        with self._session_factory() as session:
            row = self._find_by_name_and_parent(session, name, parent_id)
            return CategoryNode.from_row(row).to_dict() if row else None

    @staticmethod
    def _find_by_name_and_parent(session, name: str, parent_id: Optional[str]):
        q = session.query(Category).filter(func.lower(Category.name) == (name or "").strip().lower())
        q = q.filter(Category.parent_id == parent_id) if parent_id else q.filter(Category.parent_id.is_(None))
        return q.first()

    # -- writes -----------------------------------------------------------

    def create_category(
        self,
        *,
        name: str,
        slug: Optional[str] = None,
        parent_id: Optional[str] = None,
        sort_order: Optional[int] = None,
        description: Optional[str] = None,
        is_active: bool = True,
        is_published: bool = True,
    ) -> Dict:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed(["name is required"])
        errors: List[str] = []
        if sort_order is not None:
            sort_order = non_negative_int(sort_order, "sort_order", errors)
        if errors:
            raise ValidationFailed(errors)
        slug = slugify(slug or name)
        with persistence_guard("category.create", slug=slug), self._session_factory() as session:
            if parent_id and session.query(Category.id).filter(Category.id == parent_id).first() is None:
                raise NotFound("parent category", parent_id)
            errors = []
            if session.query(Category.id).filter(Category.slug == slug).first() is not None:
                errors.append(f"slug already in use: {slug}")
            if self._find_by_name_and_parent(session, name, parent_id) is not None:
                errors.append(f"a category named {name} already exists under this parent")
            if errors:
                raise ValidationFailed(errors, message="Category validation failed")
            category = Category(
                id=str(uuid4()),
                name=name,
                slug=slug,
                description=description,
                parent_id=parent_id,
                sort_order=sort_order if sort_order is not None else self._next_sort_order(session, parent_id),
                is_active=bool(is_active),
                is_published=bool(is_published),
            )
            session.add(category)
            session.flush()
            log_event("info", "category.created", category_id=category.id, parent_id=parent_id)
            return CategoryNode.from_row(category).to_dict()

    def set_parent(self, category_id: str, parent_id: Optional[str]) -> Dict:
        """Move a category under ``parent_id`` (or to the root when None), refusing cycles."""
        with persistence_guard("category.set_parent", category_id=category_id), self._session_factory() as session:
            category = session.query(Category).filter(Category.id == category_id).first()
            if not category:
                raise NotFound("category", category_id)
            if parent_id:
                index = self._load_index(session)
                if parent_id not in index:
                    raise NotFound("parent category", parent_id)
                if index.is_circular(parent_id, category_id):
                    raise CircularReference(category_id, parent_id)
            category.parent_id = parent_id or None
            session.flush()
            log_event("info", "category.reparented", category_id=category_id, parent_id=parent_id)
            return {"id": category.id, "parent_id": category.parent_id}

    def delete_category(self, category_id: str) -> Dict:
        """Delete a category; its children move up to its parent and its products are detached."""
        with persistence_guard("category.delete", category_id=category_id), self._session_factory() as session:
            category = session.query(Category).filter(Category.id == category_id).first()
            if not category:
                raise NotFound("category", category_id)
            new_parent = category.parent_id
            moved = (
                session.query(Category)
                .filter(Category.parent_id == category_id)
                .update({Category.parent_id: new_parent}, synchronize_session=False)
            )
            detached = (
                session.query(Product)
                .filter(Product.category_id == category_id)
                .update({Product.category_id: None}, synchronize_session=False)
            )
            session.delete(category)
            session.flush()
            log_event("info", "category.deleted", category_id=category_id, reparented=moved, detached_products=detached)
            return {"id": category_id, "reparented": moved, "detached_products": detached}

    def reorder_categories(self, orders: List[Tuple[str, int]]) -> int:
        with persistence_guard("category.reorder"), self._session_factory() as session:
            errors: List[str] = []
            for _, sort_order in orders:
                non_negative_int(sort_order, "sort_order", errors)
            if errors:
                raise ValidationFailed(errors)
            ids = [cid for cid, _ in orders]
            rows = {c.id: c for c in session.query(Category).filter(Category.id.in_(ids)).all()}
            missing = [cid for cid in ids if cid not in rows]
            if missing:
                raise NotFound("category", missing[0])
            for cid, sort_order in orders:
                rows[cid].sort_order = int(sort_order)
            session.flush()
            return len(orders)

    # -- reads ------------------------------------------------------------

    def get_category_tree(self) -> List[Dict]:
        with self._session_factory() as session:
            return self._load_index(session, published_only=True).build_tree()

    def get_breadcrumbs(self, category_id: str) -> List[Dict]:
        with self._session_factory() as session:
            return [_crumb(n) for n in self._load_index(session).path_to_root(category_id)]

    def get_category_path(self, category_id: str) -> str:
        return "/".join(c["slug"] for c in self.get_breadcrumbs(category_id))

    def get_ancestors(self, category_id: str) -> List[Dict]:
        return self.get_breadcrumbs(category_id)[:-1]

    def get_breadcrumb_navigation(self, category_id: str) -> List[Dict]:
        crumbs = self.get_breadcrumbs(category_id)
        last = len(crumbs) - 1
        return [
            dict(crumb, url=_category_url(crumb["slug"]), is_first=i == 0, is_last=i == last)
            for i, crumb in enumerate(crumbs)
        ]

    def get_descendants(self, category_id: str) -> List[Dict]:
        with self._session_factory() as session:
            index = self._load_index(session, published_only=True)
            return [_crumb(n) for n in index.descendants(category_id)]

    def get_siblings(self, category_id: str) -> List[Dict]:
        with self._session_factory() as session:
            index = self._load_index(session, published_only=True)
            if category_id not in index:
                raise NotFound("category", category_id)
            return [n.to_dict() for n in index.siblings_of(category_id) if n.is_active]

    def get_navigation_menu(self, max_depth: int = 3) -> List[Dict]:
        with self._session_factory() as session:
            rows = (
                session.query(Category)
                .filter(Category.is_published.is_(True), Category.is_active.is_(True))
                .all()
            )
        menu = CategoryIndex.from_rows(rows).build_tree(max_depth=max(1, int(max_depth)))

        def decorate(items: List[Dict]) -> List[Dict]:
            for item in items:
                item["url"] = _category_url(item["slug"])
                decorate(item["children"])
            return items

        return decorate(menu)
