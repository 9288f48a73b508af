"""
HTTP surface: authentication guards, role permissions and error mapping.

Verifies:
- Protected endpoints return 401 without a token
- Roles are denied operations outside their permission set (403)
- Service errors map to their status codes with kind and failed codes
- The checkout -> delivery -> refund flow works end to end over HTTP
"""

import pytest

from storefront.extensions import db
from storefront.models import Refund


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("POST", "/api/checkout/quote"),
            ("POST", "/api/checkout/sessions"),
            ("POST", "/api/orders/complete"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders/1/cancel"),
            ("POST", "/api/orders/1/refunds"),
            ("GET", "/api/orders/management"),
            ("PATCH", "/api/orders/management/1/status"),
            ("GET", "/api/deliveries"),
            ("PATCH", "/api/deliveries/1/status"),
            ("GET", "/api/refunds"),
            ("PATCH", "/api/refunds/1/status"),
            ("GET", "/api/coupons"),
            ("POST", "/api/products/1/stock"),
            ("GET", "/api/cart"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token(self, client, db_session):
        resp = client.get("/api/orders", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_public_catalog_and_health(self, client, product_a):
        assert client.get("/api/health").status_code == 200

        resp = client.get("/api/products")
        assert resp.status_code == 200
        assert [p["sku"] for p in resp.json["products"]] == ["LAMP-01"]

        assert client.get(f"/api/products/{product_a.id}").json["product"]["quantity"] == 10
        assert client.get("/api/products/999").status_code == 404


# =============================================================================
# ROLE PERMISSIONS (403)
# =============================================================================


class TestRolePermissions:

    def test_customer_denied_staff_operations(self, client, customer_headers):
        assert client.get("/api/orders/management", headers=customer_headers).status_code == 403
        assert client.get("/api/deliveries", headers=customer_headers).status_code == 403
        assert client.patch("/api/deliveries/1/status", json={"status": "delivered"},
                            headers=customer_headers).status_code == 403
        assert client.patch("/api/refunds/1/status", json={"decision": "approve"},
                            headers=customer_headers).status_code == 403
        assert client.get("/api/coupons", headers=customer_headers).status_code == 403

    def test_support_agent_can_view_but_not_change(self, client, support_headers):
        assert client.get("/api/orders/management", headers=support_headers).status_code == 200
        assert client.get("/api/orders/management/overview", headers=support_headers).status_code == 200
        assert client.patch("/api/orders/management/1/status", json={"status": "delivered"},
                            headers=support_headers).status_code == 403
        assert client.get("/api/refunds", headers=support_headers).status_code == 403

    def test_sales_manager_scope(self, client, sales_headers):
        assert client.get("/api/refunds", headers=sales_headers).status_code == 200
        assert client.get("/api/coupons", headers=sales_headers).status_code == 200
        assert client.patch("/api/refunds/1/status", json={"decision": "approve"},
                            headers=sales_headers).status_code == 403
        assert client.get("/api/deliveries", headers=sales_headers).status_code == 403

    def test_staff_cannot_place_orders(self, client, pm_headers):
        resp = client.post("/api/orders/complete", json={"session_key": "cs_x"}, headers=pm_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "PLACE_ORDER"

    def test_admin_has_everything(self, client, admin_headers):
        for path in ("/api/orders/management", "/api/deliveries", "/api/refunds", "/api/coupons"):
            assert client.get(path, headers=admin_headers).status_code == 200


# =============================================================================
# AUTH AND CART
# =============================================================================


class TestAuthFlow:

    def test_register_login_me_logout(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "new@example.com", "password": "Password123"})
        assert resp.status_code == 201
        assert resp.json["user"]["role"] == "customer"

        resp = client.post("/api/auth/login", json={"email": "new@example.com", "password": "Password123"})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json['token']}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.json["user"]["email"] == "new@example.com"
        assert "PLACE_ORDER" in me.json["user"]["permissions"]

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_weak_password_rejected(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "new@example.com", "password": "short"})
        assert resp.status_code == 400
        assert resp.json["failed"] == ["weak_password"]

    def test_bad_credentials(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong12345"})
        assert resp.status_code == 401

    def test_guest_cart_merged_on_login(self, client, customer, product_a):
        guest = {"X-Guest-Session": "guest-42"}
        resp = client.post("/api/cart/items", json={"product_id": product_a.id, "quantity": 2}, headers=guest)
        assert resp.status_code == 201

        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Password123"},
                           headers=guest)
        headers = {"Authorization": f"Bearer {resp.json['token']}"}

        cart = client.get("/api/cart", headers=headers).json["cart"]
        assert [(i["product_id"], i["quantity"]) for i in cart["items"]] == [(product_a.id, 2)]

    def test_cart_line_updates(self, client, customer_headers, product_a):
        client.post("/api/cart/items", json={"product_id": product_a.id}, headers=customer_headers)

        resp = client.patch(f"/api/cart/items/{product_a.id}", json={"quantity": 50}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["exceeds_stock"]

        resp = client.patch(f"/api/cart/items/{product_a.id}", json={"quantity": 0}, headers=customer_headers)
        assert resp.json["cart"]["items"] == []


# =============================================================================
# ORDER LIFECYCLE OVER HTTP
# =============================================================================


def _checkout(client, headers, product, quantity):
    client.post("/api/cart/items", json={"product_id": product.id, "quantity": quantity}, headers=headers)
    resp = client.post("/api/checkout/sessions", json={"delivery_address": "1 Main St"}, headers=headers)
    assert resp.status_code == 201
    key = resp.json["session"]["session_key"]
    assert client.post(f"/api/checkout/sessions/{key}/confirm", headers=headers).status_code == 200
    return key


class TestOrderLifecycle:

    def test_unpaid_session_is_payment_error(self, client, customer_headers, product_a):
        client.post("/api/cart/items", json={"product_id": product_a.id}, headers=customer_headers)
        key = client.post("/api/checkout/sessions", json={"delivery_address": "1 Main St"},
                          headers=customer_headers).json["session"]["session_key"]

        resp = client.post("/api/orders/complete", json={"session_key": key}, headers=customer_headers)
        assert resp.status_code == 402
        assert resp.json["kind"] == "payment_error"

    def test_insufficient_stock_is_conflict(self, client, customer_headers, product_a):
        key = _checkout(client, customer_headers, product_a, 3)
        product_a.quantity = 1
        db.session.commit()

        resp = client.post("/api/orders/complete", json={"session_key": key}, headers=customer_headers)
        assert resp.status_code == 409
        assert resp.json["kind"] == "insufficient_stock"
        assert resp.json["available_quantity"] == 1

    def test_other_customer_cannot_see_or_cancel(self, client, customer_headers, other_customer_headers, product_a):
        key = _checkout(client, customer_headers, product_a, 1)
        order_id = client.post("/api/orders/complete", json={"session_key": key},
                               headers=customer_headers).json["order"]["id"]

        resp = client.get(f"/api/orders/{order_id}", headers=other_customer_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["not_owner"]

        resp = client.post(f"/api/orders/{order_id}/cancel", headers=other_customer_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["not_owner"]

    def test_full_flow(self, client, customer_headers, pm_headers, product_a, product_b):
        client.post("/api/cart/items", json={"product_id": product_b.id}, headers=customer_headers)
        key = _checkout(client, customer_headers, product_a, 2)

        resp = client.post("/api/orders/complete", json={"session_key": key}, headers=customer_headers)
        assert resp.status_code == 200
        order = resp.json["order"]
        assert order["status"] == "processing"

        # Repeated completion returns the same order
        again = client.post("/api/orders/complete", json={"session_key": key}, headers=customer_headers)
        assert again.json["order"]["id"] == order["id"]

        detail = client.get(f"/api/orders/{order['id']}", headers=customer_headers).json["order"]
        delivery_ids = [d["id"] for d in detail["deliveries"]]
        assert len(delivery_ids) == 2

        resp = client.patch(f"/api/deliveries/{delivery_ids[0]}/status", json={"status": "shipped"},
                            headers=pm_headers)
        assert resp.status_code == 400
        assert resp.json["kind"] == "validation_error"

        resp = client.patch("/api/deliveries/9999/status", json={"status": "delivered"}, headers=pm_headers)
        assert resp.status_code == 404

        statuses = []
        for delivery_id in delivery_ids:
            resp = client.patch(f"/api/deliveries/{delivery_id}/status",
                                json={"status": "delivered", "tracking_number": "TRK"}, headers=pm_headers)
            assert resp.status_code == 200
            statuses.append(resp.json["order"]["status"])
        assert statuses == ["processing", "delivered"]

        resp = client.post(f"/api/orders/{order['id']}/cancel", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["not_cancellable"]

        resp = client.post(f"/api/orders/{order['id']}/refunds",
                           json={"items": [{"product_id": product_a.id, "quantity": 1}], "reason": "Scratched"},
                           headers=customer_headers)
        assert resp.status_code == 201
        refund_id = resp.json["refunds"][0]["id"]

        mine = client.get("/api/refunds/mine", headers=customer_headers).json["refunds"]
        assert [r["id"] for r in mine] == [refund_id]

        queue = client.get("/api/refunds?status=pending", headers=pm_headers).json["refunds"]
        assert [r["id"] for r in queue] == [refund_id]

        resp = client.patch(f"/api/refunds/{refund_id}/status", json={"decision": "approve"}, headers=pm_headers)
        assert resp.status_code == 200
        assert resp.json["refund"]["status"] == "approved"
        assert resp.json["refund"]["stock_added_back"] is True

        resp = client.patch(f"/api/refunds/{refund_id}/status", json={"decision": "approve"}, headers=pm_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["invalid_transition"]

        # 10 - 2 ordered + 1 refunded
        assert client.get(f"/api/products/{product_a.id}").json["product"]["quantity"] == 9
        assert db.session.query(Refund).count() == 1

    def test_cancel_restores_stock(self, client, customer_headers, product_a):
        key = _checkout(client, customer_headers, product_a, 4)
        order_id = client.post("/api/orders/complete", json={"session_key": key},
                               headers=customer_headers).json["order"]["id"]
        assert client.get(f"/api/products/{product_a.id}").json["product"]["quantity"] == 6

        resp = client.post(f"/api/orders/{order_id}/cancel", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "cancelled"
        assert client.get(f"/api/products/{product_a.id}").json["product"]["quantity"] == 10


class TestStaffEndpoints:

    def test_management_override_and_limits(self, client, customer, pm_headers, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])

        assert client.get("/api/orders/management?limit=51", headers=pm_headers).status_code == 400
        assert client.get("/api/deliveries?limit=101", headers=pm_headers).status_code == 400

        resp = client.patch(f"/api/orders/management/{order.id}/status", json={"status": "in-transit"},
                            headers=pm_headers)
        assert resp.status_code == 200
        assert [d["status"] for d in resp.json["order"]["deliveries"]] == ["in-transit"]

    def test_stock_adjustment(self, client, pm_headers, product_a):
        resp = client.post(f"/api/products/{product_a.id}/stock", json={"quantity_delta": -4, "note": "Damaged"},
                           headers=pm_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["quantity"] == 6
        assert resp.json["movements"][0]["reason"] == "ADJUST"

        resp = client.post(f"/api/products/{product_a.id}/stock", json={"quantity_delta": -7}, headers=pm_headers)
        assert resp.status_code == 409

    def test_coupon_admin(self, client, sales_headers):
        resp = client.post("/api/coupons", json={"code": "welcome", "discount_rate": 5}, headers=sales_headers)
        assert resp.status_code == 201
        assert resp.json["coupon"]["code"] == "WELCOME"

        resp = client.post("/api/coupons", json={"code": "welcome", "discount_rate": 5}, headers=sales_headers)
        assert resp.status_code == 400

        codes = [c["code"] for c in client.get("/api/coupons", headers=sales_headers).json["coupons"]]
        assert codes == ["WELCOME"]


# =============================================================================
# NON-STRING JSON VALUES (400, never 500)
# =============================================================================


class TestJsonValueTypes:

    def test_numeric_tracking_number_accepted(self, client, customer, pm_headers, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])
        delivery_id = order.deliveries[0].id

        resp = client.patch(f"/api/deliveries/{delivery_id}/status",
                            json={"status": "delivered", "tracking_number": 12345}, headers=pm_headers)
        assert resp.status_code == 200
        assert resp.json["delivery"]["tracking_number"] == "12345"
        assert resp.json["order"]["status"] == "delivered"

    def test_structured_tracking_number_rejected(self, client, customer, pm_headers, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])
        delivery_id = order.deliveries[0].id

        resp = client.patch(f"/api/deliveries/{delivery_id}/status",
                            json={"status": "delivered", "tracking_number": {"carrier": "UPS"}}, headers=pm_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["invalid_tracking_number"]

    def test_numeric_refund_reason_rejected(self, client, customer, customer_headers, product_a, delivered_order):
        order = delivered_order(customer, [(product_a, 1)])

        resp = client.post(f"/api/orders/{order.id}/refunds",
                           json={"items": [{"product_id": product_a.id}], "reason": 5}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["invalid_reason"]
        assert db.session.query(Refund).count() == 0

    def test_product_returned_must_be_boolean(self, client, customer, customer_headers, pm_headers,
                                              product_a, delivered_order):
        order = delivered_order(customer, [(product_a, 1)])
        refund_id = client.post(f"/api/orders/{order.id}/refunds",
                                json={"items": [{"product_id": product_a.id}]},
                                headers=customer_headers).json["refunds"][0]["id"]

        resp = client.patch(f"/api/refunds/{refund_id}/status",
                            json={"decision": "approve", "product_returned": "false"}, headers=pm_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["invalid_product_returned"]

        resp = client.patch(f"/api/refunds/{refund_id}/status",
                            json={"decision": "approve", "product_returned": False}, headers=pm_headers)
        assert resp.status_code == 200
        assert resp.json["refund"]["product_returned"] is False

    def test_list_decision_and_status_rejected(self, client, customer, pm_headers, product_a, place_order):
        order = place_order(customer, [(product_a, 1)])

        resp = client.patch("/api/refunds/1/status", json={"decision": ["approve"]}, headers=pm_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["invalid_decision"]

        resp = client.patch(f"/api/orders/management/{order.id}/status", json={"status": ["delivered"]},
                            headers=pm_headers)
        assert resp.status_code == 400
        assert resp.json["failed"] == ["invalid_status"]

    def test_numeric_credentials(self, client, customer):
        resp = client.post("/api/auth/register", json={"email": 42, "password": 12345678})
        assert resp.status_code == 400

        resp = client.post("/api/auth/login", json={"email": customer.email, "password": 12345678})
        assert resp.status_code == 401
