from decimal import Decimal
from typing import Any, Dict


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount or 0)) * 100).to_integral_value())


def _iso(value) -> Any:
    return value.isoformat() if value is not None else None


def to_product_dto(row: Any) -> Dict:
    return {
        "id": getattr(row, "id", None),
        "sku": getattr(row, "sku", None),
        "name": getattr(row, "name", None),
        "description": getattr(row, "description", None),
        "price": float(getattr(row, "price", 0) or 0),
        "currency": getattr(row, "currency", None),
        "category_id": getattr(row, "category_id", None),
        "stock": getattr(row, "stock", 0) or 0,
        "is_active": bool(getattr(row, "is_active", True)),
    }


def to_checkout_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "session_id": row.session_id,
        "shipping_address_id": row.shipping_address_id,
        "billing_address_id": row.billing_address_id,
        "shipping_method": row.shipping_method,
        "payment_method": row.payment_method,
        "status": row.status,
        "cart_item_ids": list(row.cart_item_ids),
        "expires_at": _iso(row.expires_at),
        "completed_at": _iso(row.completed_at),
        "abandoned_at": _iso(row.abandoned_at),
    }


def to_order_item_dto(row: Any) -> Dict:
    return {
        "product_id": row.product_id,
        "sku": row.sku,
        "product_name": row.product_name,
        "quantity": row.quantity,
        "unit_price": float(row.unit_price),
        "line_price": float(row.line_price),
        "discount": float(row.discount or 0),
        "tax": float(row.tax or 0),
    }


def to_order_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "order_number": row.order_number,
        "user_id": row.user_id,
        "checkout_id": row.checkout_id,
        "status": row.status,
        "payment_status": row.payment_status,
        "subtotal": float(row.subtotal),
        "tax": float(row.tax),
        "shipping": float(row.shipping),
        "discount": float(row.discount),
        "total": float(row.total),
        "total_minor": to_minor_units(row.total),
        "currency": row.currency,
        "shipping_method": row.shipping_method,
        "shipping_address": row.shipping_address,
        "billing_address": row.billing_address,
        "cancel_reason": row.cancel_reason,
        "tracking_number": row.tracking_number,
        "admin_notes": row.admin_notes,
        "items": [to_order_item_dto(it) for it in row.items],
        "created_at": _iso(row.created_at),
        "paid_at": _iso(row.paid_at),
        "cancelled_at": _iso(row.cancelled_at),
        "refunded_at": _iso(row.refunded_at),
    }


def to_payment_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "order_id": row.order_id,
        "amount": float(row.amount),
        "currency": row.currency,
        "method": row.method,
        "status": row.status,
        "confirmed_at": _iso(row.confirmed_at),
    }
