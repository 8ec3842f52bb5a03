"""Error taxonomy for checkout, order and category operations."""

from __future__ import annotations

from typing import List, Optional


class ShopError(Exception):
    """Base exception for all storefront errors."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class AmbiguousOwnership(ShopError):
    """Raised when both or neither of user/session identity are presented."""

    code = "ambiguous_ownership"

    def __init__(self, both: bool):
        self.both = both
        if both:
            msg = "Ambiguous request - provide either user authentication or session ID, not both"
        else:
            msg = "Authentication required - provide either user authentication or session ID"
        super().__init__(msg)


class EmptyCart(ShopError):
    code = "empty_cart"

    def __init__(self):
        super().__init__("Cart items are required for checkout")


class AddressNotFound(ShopError):
    code = "address_not_found"

    def __init__(self, kind: str, address_id: str):
        self.kind = kind
        self.address_id = address_id
        super().__init__(f"{kind.capitalize()} address not found: {address_id}")


class AddressMismatch(ShopError):
    code = "address_mismatch"

    def __init__(self, kind: str, address_id: str):
        self.kind = kind
        self.address_id = address_id
        super().__init__(f"{kind.capitalize()} address does not belong to the requesting owner")


class CartItemInvalid(ShopError):
    """Raised for missing, foreign-owned or already-attached cart items."""

    code = "cart_item_invalid"

    def __init__(self, reason: str, item_ids: Optional[List[str]] = None):
        self.reason = reason
        self.item_ids = list(item_ids or [])
        msg = reason
        if self.item_ids:
            msg = f"{reason}: {', '.join(self.item_ids)}"
        super().__init__(msg)


class NotFound(ShopError):
    """Raised for absent entities and for entities owned by someone else."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Optional[str]):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found")


class InvalidState(ShopError):
    code = "invalid_state"

    def __init__(self, entity: str, current: str, attempted: str):
        self.entity = entity
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot move {entity} from {current} to {attempted}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current"] = self.current
        data["attempted"] = self.attempted
        return data


class NoConfirmedPayment(ShopError):
    code = "no_confirmed_payment"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order has no confirmed payment to refund")


class ValidationFailed(ShopError):
    """Field-level validation failure carrying individual messages."""

    code = "validation_failed"

    def __init__(self, details: List[str], message: str = "Validation failed"):
        self.details = list(details)
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["details"] = self.details
        return data


class CircularReference(ValidationFailed):
    def __init__(self, category_id: str, parent_id: str):
        self.category_id = category_id
        self.parent_id = parent_id
        super().__init__(
            [f"Category {parent_id} cannot be the parent of {category_id}"],
            message="Circular reference detected in category hierarchy",
        )


class InternalError(ShopError):
    code = "internal_error"


class OrderNumberExhausted(InternalError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique order number after {attempts} attempts")
