"""Storefront checkout and order Flask application."""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify

from routes import admin, api
from storefront.config import AppConfig, load_env
from storefront.db.session import init_db, make_engine, make_session_factory
from storefront.errors import ShopError
from storefront.services import (
    AddressService,
    CartService,
    CatalogService,
    CategoryService,
    CheckoutService,
    NotificationSender,
    OrderAssembler,
    OrderService,
    OrderStateMachine,
    PaymentService,
)
from storefront.services.logging import log_event


STATUS_BY_CODE = {
    "ambiguous_ownership": 401,
    "empty_cart": 400,
    "address_not_found": 400,
    "address_mismatch": 400,
    "cart_item_invalid": 400,
    "validation_failed": 400,
    "not_found": 404,
    "invalid_state": 409,
    "no_confirmed_payment": 409,
    "internal_error": 500,
}


def build_components(config: AppConfig, session_factory, notifier: Optional[NotificationSender] = None) -> dict:
    notifier = notifier or NotificationSender()
    payments = PaymentService(session_factory)
    return {
        "addresses": AddressService(session_factory),
        "cart": CartService(session_factory, currency=config.currency),
        "catalog": CatalogService(session_factory),
        "categories": CategoryService(session_factory),
        "checkouts": CheckoutService(
            session_factory,
            assembler=OrderAssembler.from_config(config),
            notifier=notifier,
            ttl_days=config.checkout_ttl_days,
        ),
        "orders": OrderService(
            session_factory,
            state_machine=OrderStateMachine.from_config(config),
            payments=payments,
            notifier=notifier,
        ),
        "payments": payments,
    }


def _handle_shop_error(exc: ShopError):
    status = STATUS_BY_CODE.get(exc.code, 500)
    body = exc.to_dict()
    body.setdefault("details", getattr(exc, "item_ids", []))
    if status >= 500:
        log_event("error", "http.internal_error", error=exc.code, message=exc.message)
    return jsonify(body), status


def create_app(config: Optional[AppConfig] = None, session_factory=None, notifier: Optional[NotificationSender] = None) -> Flask:
    config = config or load_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    if session_factory is None:
        engine = make_engine(config.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["STOREFRONT_CONFIG"] = config
    app.extensions["storefront_components"] = build_components(config, session_factory, notifier)

    app.register_error_handler(ShopError, _handle_shop_error)
    app.register_blueprint(api.api_bp)
    app.register_blueprint(admin.admin_bp)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=6055, debug=False)


if __name__ == "__main__":
    main()
