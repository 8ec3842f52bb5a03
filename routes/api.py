"""Customer-facing JSON API: catalog, cart, checkout, orders and categories."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request

from storefront.errors import NotFound, ValidationFailed


api_bp = Blueprint("storefront_api", __name__, url_prefix="/api")

ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "line1",
    "line2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)


def _components() -> Dict[str, Any]:
    return current_app.extensions["storefront_components"]


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _identity(payload: Optional[Dict[str, Any]] = None) -> Tuple[Optional[str], Optional[str]]:
    """(user_id, session_id) as presented; the upstream gateway authenticates ``X-User-Id``."""
    payload = payload or {}
    user_id = request.headers.get("X-User-Id")
    session_id = request.args.get("sessionId") or payload.get("sessionId")
    return user_id, session_id


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailed([f"{name} must be an integer"])


# -- catalog ---------------------------------------------------------------


@api_bp.get("/products")
def list_products():
    result = _components()["catalog"].list_products(
        query=request.args.get("q"),
        category=request.args.get("category"),
        page=_int_arg("page", 1),
        page_size=_int_arg("page_size", 20),
    )
    return jsonify(result)


@api_bp.get("/products/<product_id>")
def get_product(product_id: str):
    product = _components()["catalog"].get_product(product_id)
    if not product:
        raise NotFound("product", product_id)
    return jsonify(product)


# -- cart ------------------------------------------------------------------


@api_bp.get("/cart")
def get_cart():
    user_id, session_id = _identity()
    return jsonify(_components()["cart"].get_cart(session_id=session_id, user_id=user_id))


@api_bp.post("/cart/items")
def add_cart_item():
    payload = _payload()
    user_id, session_id = _identity(payload)
    result = _components()["cart"].add_item(
        session_id=session_id,
        user_id=user_id,
        product_id=str(payload.get("product_id", "")).strip(),
        quantity=payload.get("quantity", 1),
    )
    return jsonify(result), 201


@api_bp.patch("/cart/items/<item_id>")
def update_cart_item(item_id: str):
    payload = _payload()
    user_id, session_id = _identity(payload)
    result = _components()["cart"].update_item(
        session_id=session_id,
        user_id=user_id,
        item_id=item_id,
        quantity=payload.get("quantity", 0),
    )
    return jsonify(result)


@api_bp.delete("/cart/items/<item_id>")
def remove_cart_item(item_id: str):
    payload = _payload()
    user_id, session_id = _identity(payload)
    return jsonify(_components()["cart"].remove_item(session_id=session_id, user_id=user_id, item_id=item_id))


# -- addresses -------------------------------------------------------------


@api_bp.post("/addresses")
def create_address():
    payload = _payload()
    user_id, session_id = _identity(payload)
    fields = {k: payload.get(k) for k in ADDRESS_FIELDS if k in payload}
    address = _components()["addresses"].create_address(user_id=user_id, session_id=session_id, **fields)
    return jsonify(address), 201


# -- checkout --------------------------------------------------------------


@api_bp.post("/checkouts")
def create_checkout():
    payload = _payload()
    user_id, session_id = _identity(payload)
    checkout = _components()["checkouts"].create(
        user_id=user_id,
        session_id=session_id,
        shipping_address_id=payload.get("shipping_address_id"),
        billing_address_id=payload.get("billing_address_id"),
        shipping_method=payload.get("shipping_method"),
        cart_item_ids=payload.get("cart_item_ids") or [],
        payment_method=payload.get("payment_method"),
    )
    return jsonify(checkout), 201


@api_bp.get("/checkouts/<checkout_id>")
def get_checkout(checkout_id: str):
    user_id, session_id = _identity()
    return jsonify(_components()["checkouts"].get(checkout_id, user_id=user_id, session_id=session_id))


@api_bp.post("/checkouts/<checkout_id>/validate")
def validate_checkout(checkout_id: str):
    payload = _payload()
    user_id, session_id = _identity(payload)
    checkout = _components()["checkouts"].validate(
        checkout_id,
        user_id=user_id,
        session_id=session_id,
        shipping_method=payload.get("shipping_method"),
        shipping_address_id=payload.get("shipping_address_id"),
        billing_address_id=payload.get("billing_address_id"),
        cart_item_ids=payload.get("cart_item_ids"),
    )
    return jsonify(checkout)


@api_bp.post("/checkouts/<checkout_id>/complete")
def complete_checkout(checkout_id: str):
    user_id, session_id = _identity(_payload())
    order = _components()["checkouts"].complete(checkout_id, user_id=user_id, session_id=session_id)
    return jsonify(order), 201


@api_bp.post("/checkouts/<checkout_id>/abandon")
def abandon_checkout(checkout_id: str):
    user_id, session_id = _identity(_payload())
    return jsonify(_components()["checkouts"].abandon(checkout_id, user_id=user_id, session_id=session_id))


# -- orders ----------------------------------------------------------------


@api_bp.get("/orders")
def list_orders():
    user_id, session_id = _identity()
    result = _components()["orders"].list_orders(
        user_id=user_id,
        session_id=session_id,
        status=request.args.get("status") or None,
        page=_int_arg("page", 1),
        page_size=_int_arg("page_size", 20),
    )
    return jsonify(result)


@api_bp.get("/orders/stats")
def order_stats():
    user_id, session_id = _identity()
    return jsonify(_components()["orders"].get_order_stats(user_id=user_id, session_id=session_id))


@api_bp.get("/orders/<order_id>")
def get_order(order_id: str):
    user_id, session_id = _identity()
    return jsonify(_components()["orders"].get_order(order_id, user_id=user_id, session_id=session_id))


@api_bp.post("/orders/<order_id>/cancel")
def cancel_order(order_id: str):
    payload = _payload()
    user_id, session_id = _identity(payload)
    order = _components()["orders"].cancel(
        order_id, user_id=user_id, session_id=session_id, reason=payload.get("reason")
    )
    return jsonify(order)


@api_bp.post("/orders/<order_id>/refund")
def refund_order(order_id: str):
    payload = _payload()
    user_id, session_id = _identity(payload)
    order = _components()["orders"].refund(
        order_id, user_id=user_id, session_id=session_id, reason=payload.get("reason")
    )
    return jsonify(order)


# -- categories ------------------------------------------------------------


@api_bp.get("/categories")
def category_tree():
    return jsonify({"categories": _components()["categories"].get_category_tree()})


@api_bp.get("/categories/menu")
def navigation_menu():
    menu = _components()["categories"].get_navigation_menu(max_depth=_int_arg("max_depth", 3))
    return jsonify({"menu": menu})


@api_bp.get("/categories/<category_id>/breadcrumbs")
def category_breadcrumbs(category_id: str):
    categories = _components()["categories"]
    return jsonify(
        {
            "breadcrumbs": categories.get_breadcrumb_navigation(category_id),
            "path": categories.get_category_path(category_id),
        }
    )


@api_bp.get("/categories/<category_id>/descendants")
def category_descendants(category_id: str):
    return jsonify({"descendants": _components()["categories"].get_descendants(category_id)})


@api_bp.get("/categories/<category_id>/siblings")
def category_siblings(category_id: str):
    return jsonify({"siblings": _components()["categories"].get_siblings(category_id)})
