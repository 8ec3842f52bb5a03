"""HTTP tests for the Flask blueprints."""

from decimal import Decimal

import pytest

from app import create_app
from storefront.config import AppConfig


@pytest.fixture
def config():
    return AppConfig(
        database_url="sqlite://",
        secret_key="test-secret",
        log_level="WARNING",
        currency="USD",
        shipping_rates={"standard": Decimal("0"), "express": Decimal("9.95")},
        admin_username="root",
        admin_password="hunter2",
    )


@pytest.fixture
def client(config, session_factory, notifier):
    app = create_app(config, session_factory=session_factory, notifier=notifier)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def admin(client):
    resp = client.post("/admin/login", json={"username": "root", "password": "hunter2"})
    assert resp.status_code == 200
    return client


def _checkout_body(seed, *, user_id=None, session_id=None):
    address_id = seed.address(user_id=user_id, session_id=session_id)
    items = [
        seed.cart_item(seed.product(price="29.99"), user_id=user_id, session_id=session_id),
        seed.cart_item(seed.product(price="29.99"), user_id=user_id, session_id=session_id),
    ]
    body = {
        "shipping_address_id": address_id,
        "billing_address_id": address_id,
        "shipping_method": "standard",
        "cart_item_ids": items,
    }
    if session_id:
        body["sessionId"] = session_id
    return body


class TestCheckoutEndpoints:
    def test_guest_checkout_to_order(self, client, seed):
        created = client.post("/api/checkouts", json=_checkout_body(seed, session_id="s1"))
        assert created.status_code == 201
        checkout_id = created.get_json()["id"]

        completed = client.post(f"/api/checkouts/{checkout_id}/complete", json={"sessionId": "s1"})
        assert completed.status_code == 201
        order = completed.get_json()
        assert order["total_minor"] == 5998
        assert order["user_id"] is None

        again = client.post(f"/api/checkouts/{checkout_id}/complete", json={"sessionId": "s1"})
        assert again.status_code == 409
        assert again.get_json()["error"] == "invalid_state"

    def test_ambiguous_identity_is_401(self, client, seed):
        body = _checkout_body(seed, session_id="s1")
        resp = client.post("/api/checkouts", json=body, headers={"X-User-Id": "user-a"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "ambiguous_ownership"

    def test_empty_cart_is_400(self, client, seed):
        body = _checkout_body(seed, user_id="user-a")
        body["cart_item_ids"] = []
        resp = client.post("/api/checkouts", json=body, headers={"X-User-Id": "user-a"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "empty_cart"

    def test_validation_details_returned(self, client, seed):
        body = _checkout_body(seed, user_id="user-a")
        body["shipping_method"] = "rocket"
        resp = client.post("/api/checkouts", json=body, headers={"X-User-Id": "user-a"})
        data = resp.get_json()
        assert resp.status_code == 400
        assert data["error"] == "validation_failed"
        assert data["details"]

    def test_other_user_gets_404(self, client, seed):
        created = client.post(
            "/api/checkouts", json=_checkout_body(seed, user_id="user-a"), headers={"X-User-Id": "user-a"}
        )
        checkout_id = created.get_json()["id"]
        for path in ("validate", "complete", "abandon"):
            resp = client.post(f"/api/checkouts/{checkout_id}/{path}", json={}, headers={"X-User-Id": "user-b"})
            assert resp.status_code == 404
            assert resp.get_json()["message"] == "Checkout not found"


class TestCartEndpoints:
    def test_item_scoped_to_owner(self, client, seed):
        pid = seed.product()
        added = client.post("/api/cart/items", json={"product_id": pid, "quantity": 2}, headers={"X-User-Id": "user-a"})
        assert added.status_code == 201
        item_id = added.get_json()["item_id"]

        other = {"X-User-Id": "user-b"}
        patched = client.patch(f"/api/cart/items/{item_id}", json={"quantity": 9}, headers=other)
        assert patched.status_code == 404
        assert patched.get_json()["error"] == "not_found"
        assert client.delete(f"/api/cart/items/{item_id}", headers=other).status_code == 404
        assert client.delete(f"/api/cart/items/{item_id}?sessionId=s1").status_code == 404

        cart = client.get("/api/cart", headers={"X-User-Id": "user-a"}).get_json()
        assert [it["quantity"] for it in cart["items"]] == [2]

        owner = {"X-User-Id": "user-a"}
        assert client.patch(f"/api/cart/items/{item_id}", json={"quantity": 3}, headers=owner).status_code == 200
        assert client.delete(f"/api/cart/items/{item_id}", headers=owner).get_json()["status"] == "removed"

    @pytest.mark.parametrize("quantity", [0, "abc"])
    def test_bad_quantity_is_400(self, client, seed, quantity):
        pid = seed.product()
        resp = client.post("/api/cart/items", json={"product_id": pid, "quantity": quantity, "sessionId": "s1"})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_failed"

class TestOrderEndpoints:
    def _order(self, client, seed):
        created = client.post(
            "/api/checkouts", json=_checkout_body(seed, user_id="user-a"), headers={"X-User-Id": "user-a"}
        )
        checkout_id = created.get_json()["id"]
        return client.post(f"/api/checkouts/{checkout_id}/complete", headers={"X-User-Id": "user-a"}).get_json()

    def test_refund_flow(self, admin, seed):
        order = self._order(admin, seed)
        headers = {"X-User-Id": "user-a"}

        denied = admin.post(f"/api/orders/{order['id']}/refund", json={}, headers=headers)
        assert denied.status_code == 409
        assert denied.get_json()["error"] == "no_confirmed_payment"

        payment = admin.post(f"/admin/orders/{order['id']}/payments", json={"amount": order["total"]}).get_json()
        assert admin.post(f"/admin/payments/{payment['id']}/confirm").status_code == 200

        refunded = admin.post(f"/api/orders/{order['id']}/refund", json={}, headers=headers)
        assert refunded.status_code == 200
        assert refunded.get_json()["status"] == "refunded"
        assert refunded.get_json()["payment_status"] == "refunded"

    def test_cancel_needs_reason_field(self, client, seed):
        order = self._order(client, seed)
        headers = {"X-User-Id": "user-a"}
        assert client.post(f"/api/orders/{order['id']}/cancel", json={}, headers=headers).status_code == 400
        resp = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": ""}, headers=headers)
        assert resp.get_json()["status"] == "cancelled"

    def test_list_and_stats(self, client, seed):
        self._order(client, seed)
        headers = {"X-User-Id": "user-a"}
        listing = client.get("/api/orders", headers=headers).get_json()
        assert listing["total"] == 1
        stats = client.get("/api/orders/stats", headers=headers).get_json()
        assert stats["by_status"]["pending"] == 1

    def test_admin_advance(self, admin, seed):
        order = self._order(admin, seed)
        resp = admin.post(f"/admin/orders/{order['id']}/status", json={"status": "confirmed"})
        assert resp.status_code == 200
        skip = admin.post(f"/admin/orders/{order['id']}/status", json={"status": "delivered"})
        assert skip.status_code == 409
        history = admin.get(f"/admin/orders/{order['id']}/history").get_json()["history"]
        assert history[-1]["changed_by"] == "root"


class TestAdminAuth:
    def test_admin_routes_need_login(self, client):
        resp = client.post("/admin/orders/whatever/status", json={"status": "confirmed"})
        assert resp.status_code == 401

    def test_bad_password(self, client):
        resp = client.post("/admin/login", json={"username": "root", "password": "nope"})
        assert resp.status_code == 401

    def test_logout(self, admin):
        admin.post("/admin/logout")
        assert admin.post("/admin/categories", json={"name": "X"}).status_code == 401


class TestCategoryEndpoints:
    def test_tree_breadcrumbs_and_cycle(self, admin):
        root = admin.post("/admin/categories", json={"name": "Electronics"}).get_json()
        laptops = admin.post("/admin/categories", json={"name": "Laptops", "parent_id": root["id"]}).get_json()
        gaming = admin.post("/admin/categories", json={"name": "Gaming", "parent_id": laptops["id"]}).get_json()

        crumbs = admin.get(f"/api/categories/{gaming['id']}/breadcrumbs").get_json()
        assert crumbs["path"] == "electronics/laptops/gaming"

        descendants = admin.get(f"/api/categories/{root['id']}/descendants").get_json()["descendants"]
        assert [d["name"] for d in descendants] == ["Laptops", "Gaming"]

        cycle = admin.put(f"/admin/categories/{root['id']}/parent", json={"parent_id": gaming["id"]})
        assert cycle.status_code == 400
        assert cycle.get_json()["error"] == "validation_failed"

        tree = admin.get("/api/categories").get_json()["categories"]
        assert tree[0]["name"] == "Electronics"

    def test_missing_product_is_404(self, client):
        assert client.get("/api/products/ghost").status_code == 404
