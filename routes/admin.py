"""Administrative JSON routes: order fulfilment, payments and category upkeep."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session

from storefront.errors import ValidationFailed


admin_bp = Blueprint("storefront_admin", __name__, url_prefix="/admin")


def _components() -> dict:
    return current_app.extensions["storefront_components"]


def _config():
    return current_app.config["STOREFRONT_CONFIG"]


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _is_authenticated() -> bool:
    return bool(session.get("storefront_admin"))


@admin_bp.before_request
def guard_private_routes():
    if request.endpoint and request.endpoint.startswith("storefront_admin."):
        if request.endpoint != "storefront_admin.login" and not _is_authenticated():
            return jsonify({"error": "unauthorized", "message": "Admin login required", "details": []}), 401
    return None


@admin_bp.post("/login")
def login():
    payload = _payload()
    username = str(payload.get("username", "")).strip()
    password = str(payload.get("password", "")).strip()
    cfg = _config()
    if username == cfg.admin_username and password == cfg.admin_password:
        session["storefront_admin"] = True
        session["storefront_admin_user"] = username
        return jsonify({"status": "ok"})
    return jsonify({"error": "unauthorized", "message": "Invalid username or password", "details": []}), 401


@admin_bp.post("/logout")
def logout():
    session.pop("storefront_admin", None)
    session.pop("storefront_admin_user", None)
    return jsonify({"status": "ok"})


# -- orders ----------------------------------------------------------------


@admin_bp.post("/orders/<order_id>/status")
def advance_order(order_id: str):
    payload = _payload()
    new_status = str(payload.get("status", "")).strip()
    if not new_status:
        raise ValidationFailed(["status is required"])
    order = _components()["orders"].advance(
        order_id,
        new_status,
        actor=session.get("storefront_admin_user", "admin"),
        note=payload.get("note"),
        tracking_number=payload.get("tracking_number"),
    )
    return jsonify(order)


@admin_bp.get("/orders/<order_id>/history")
def order_history(order_id: str):
    return jsonify({"history": _components()["orders"].get_status_history(order_id)})


@admin_bp.post("/checkouts/expire")
def expire_checkouts():
    return jsonify({"abandoned": _components()["checkouts"].abandon_expired()})


# -- payments --------------------------------------------------------------


@admin_bp.post("/orders/<order_id>/payments")
def record_payment(order_id: str):
    payload = _payload()
    payment = _components()["payments"].record_payment(
        order_id=order_id,
        amount=payload.get("amount"),
        method=payload.get("method") or "manual",
    )
    return jsonify(payment), 201


@admin_bp.post("/payments/<payment_id>/confirm")
def confirm_payment(payment_id: str):
    return jsonify(_components()["payments"].confirm(payment_id))


@admin_bp.post("/payments/<payment_id>/reject")
def reject_payment(payment_id: str):
    return jsonify(_components()["payments"].reject(payment_id, _payload().get("reason")))


# -- categories ------------------------------------------------------------


@admin_bp.post("/categories")
def create_category():
    payload = _payload()
    category = _components()["categories"].create_category(
        name=payload.get("name"),
        slug=payload.get("slug"),
        parent_id=payload.get("parent_id"),
        sort_order=payload.get("sort_order"),
        description=payload.get("description"),
        is_active=payload.get("is_active", True),
        is_published=payload.get("is_published", True),
    )
    return jsonify(category), 201


@admin_bp.put("/categories/<category_id>/parent")
def set_category_parent(category_id: str):
    return jsonify(_components()["categories"].set_parent(category_id, _payload().get("parent_id")))


@admin_bp.delete("/categories/<category_id>")
def delete_category(category_id: str):
    return jsonify(_components()["categories"].delete_category(category_id))


@admin_bp.post("/categories/reorder")
def reorder_categories():
    entries = _payload().get("orders") or []
    if not isinstance(entries, list):
        raise ValidationFailed(["orders must be a list"])
    pairs = []
    for entry in entries:
        if not isinstance(entry, dict) or "id" not in entry:
            raise ValidationFailed(["each entry needs id and sort_order"])
        pairs.append((entry["id"], entry.get("sort_order")))
    return jsonify({"updated": _components()["categories"].reorder_categories(pairs)})
