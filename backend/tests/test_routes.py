# Overview: HTTP-level tests for authentication, tenant scoping and response shapes.

"""
API Route Tests

Exercises the Flask blueprints end to end with signed bearer tokens:
authentication, per-role projections, indistinguishable 404s, order
creation with Idempotency-Key, inventory endpoints and staff endpoints.
"""

import pytest

from packdesk.models import Order, Product

from conftest import OWNER_A, OWNER_B, auth_headers


class TestAuthentication:

    def test_health_is_public(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_missing_token(self, client, db_session, tenant_a):
        response = client.get(f"/api/tenants/{tenant_a.id}/products")
        assert response.status_code == 401

    def test_bad_signature(self, client, db_session, tenant_a, token_for):
        token = token_for(OWNER_A, tenant_a.id, ["owner"], secret="wrong-secret")
        response = client.get(f"/api/tenants/{tenant_a.id}/products", headers=auth_headers(token))
        assert response.status_code == 401

    def test_expired_token(self, client, db_session, tenant_a, token_for):
        token = token_for(OWNER_A, tenant_a.id, ["owner"], expires_in=-60)
        response = client.get(f"/api/tenants/{tenant_a.id}/products", headers=auth_headers(token))
        assert response.status_code == 401

    def test_unresolvable_tenant(self, client, db_session, tenant_a, token_for):
        token = token_for("auth0|stranger", roles=["owner"])
        response = client.get(f"/api/tenants/{tenant_a.id}/products", headers=auth_headers(token))
        assert response.status_code == 401


class TestSession:

    def test_session_metadata(self, client, db_session, tenant_a, owner_a_headers):
        response = client.get("/api/session", headers=owner_a_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["tenant_id"] == tenant_a.id
        assert body["role"] == "owner"

    def test_fresh_signup(self, client, db_session, token_for):
        response = client.get("/api/session", headers=auth_headers(token_for("auth0|fresh")))
        assert response.status_code == 200
        assert response.get_json()["tenant_id"] is None


class TestProductRoutes:

    def test_projection_per_role(self, client, db_session, tenant_a, product_a,
                                 owner_a_headers, admin_a_headers, packer_a_headers):
        url = f"/api/tenants/{tenant_a.id}/products/{product_a.id}"

        owner = client.get(url, headers=owner_a_headers).get_json()["product"]
        admin = client.get(url, headers=admin_a_headers).get_json()["product"]
        packer = client.get(url, headers=packer_a_headers).get_json()["product"]

        assert owner["view"] == "owner" and owner["cost_cents"] == 400
        assert admin["view"] == "admin" and "cost_cents" not in admin and admin["price_cents"] == 1000
        assert packer["view"] == "packer" and "price_cents" not in packer and "cost_cents" not in packer

    def test_list(self, client, db_session, tenant_a, product_a, product_a2, product_b, packer_a_headers):
        response = client.get(f"/api/tenants/{tenant_a.id}/products", headers=packer_a_headers)
        body = response.get_json()
        assert body["count"] == 2
        assert all("cost_cents" not in item for item in body["items"])

    def test_cross_tenant_looks_missing(self, client, db_session, tenant_a, product_a, product_b, owner_a_headers):
        cross = client.get(f"/api/tenants/{tenant_a.id}/products/{product_b.id}", headers=owner_a_headers)
        missing = client.get(f"/api/tenants/{tenant_a.id}/products/999999", headers=owner_a_headers)

        assert cross.status_code == missing.status_code == 404
        assert cross.get_json() == missing.get_json() == {"error": "Not found"}

    def test_other_tenant_in_url(self, client, db_session, tenant_a, tenant_b, product_b, owner_a_headers):
        response = client.get(f"/api/tenants/{tenant_b.id}/products/{product_b.id}", headers=owner_a_headers)
        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}

    def test_forbidden_write_looks_missing(self, client, db_session, tenant_a, product_a, packer_a_headers):
        response = client.patch(
            f"/api/tenants/{tenant_a.id}/products/{product_a.id}",
            json={"name": "Nope"},
            headers=packer_a_headers,
        )
        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}

    def test_create_and_conflict(self, client, db_session, tenant_a, owner_a_headers):
        body = {"sku": "TAPE-1", "name": "Tape", "price_cents": 300, "cost_cents": 100,
                "warehouse_location": "C-1", "stock_quantity": 4}
        first = client.post(f"/api/tenants/{tenant_a.id}/products", json=body, headers=owner_a_headers)
        assert first.status_code == 201
        assert first.get_json()["product"]["stock_quantity"] == 4

        second = client.post(f"/api/tenants/{tenant_a.id}/products", json=body, headers=owner_a_headers)
        assert second.status_code == 409

    def test_patch_stock_rejected(self, client, db_session, tenant_a, product_a, owner_a_headers):
        response = client.patch(
            f"/api/tenants/{tenant_a.id}/products/{product_a.id}",
            json={"stock_quantity": 500},
            headers=owner_a_headers,
        )
        assert response.status_code == 400


class TestOrderRoutes:

    def test_create_then_short_stock(self, client, db_session, tenant_a, product_a, order_payload, owner_a_headers):
        url = f"/api/tenants/{tenant_a.id}/orders"

        created = client.post(url, json=order_payload((product_a.id, 8)), headers=owner_a_headers)
        assert created.status_code == 201
        order = created.get_json()["order"]
        assert order["order_number"] == "ORD-00001"
        assert order["total_profit_cents"] == 4800

        short = client.post(url, json=order_payload((product_a.id, 3)), headers=owner_a_headers)
        assert short.status_code == 409
        assert short.get_json()["details"]["available"] == 2
        assert db_session.get(Product, product_a.id).stock_quantity == 2

    def test_idempotency_header(self, client, db_session, tenant_a, product_a, order_payload, owner_a_headers):
        url = f"/api/tenants/{tenant_a.id}/orders"
        headers = {**owner_a_headers, "Idempotency-Key": "abc-123"}

        first = client.post(url, json=order_payload((product_a.id, 2)), headers=headers)
        second = client.post(url, json=order_payload((product_a.id, 2)), headers=headers)

        assert first.get_json()["order"]["id"] == second.get_json()["order"]["id"]
        assert db_session.query(Order).count() == 1
        assert db_session.get(Product, product_a.id).stock_quantity == 8

    def test_packer_flow(self, client, db_session, tenant_a, product_a, order_payload,
                         owner_a_headers, packer_a_headers):
        base = f"/api/tenants/{tenant_a.id}/orders"
        order_id = client.post(base, json=order_payload((product_a.id, 1)), headers=owner_a_headers).get_json()["order"]["id"]

        assert client.get(f"{base}/{order_id}", headers=packer_a_headers).status_code == 404
        assert client.get(f"{base}/next", headers=packer_a_headers).get_json() == {"order": None}

        paid = client.post(f"{base}/{order_id}/status", json={"status": "paid"}, headers=owner_a_headers)
        assert paid.status_code == 200

        nxt = client.get(f"{base}/next", headers=packer_a_headers).get_json()["order"]
        assert nxt["id"] == order_id
        assert "total_price_cents" not in nxt

        packed = client.post(f"{base}/{order_id}/pack", json={"weight_grams": 420}, headers=packer_a_headers)
        assert packed.get_json()["order"]["status"] == "processing"

        shipped = client.patch(f"{base}/{order_id}/shipping", json={"tracking_number": "TRK-5"}, headers=packer_a_headers)
        assert shipped.get_json()["order"]["status"] == "shipped"

        cancel = client.post(f"{base}/{order_id}/cancel", json={}, headers=owner_a_headers)
        assert cancel.status_code == 409

    def test_invalid_transition(self, client, db_session, tenant_a, product_a, order_payload, owner_a_headers):
        base = f"/api/tenants/{tenant_a.id}/orders"
        order_id = client.post(base, json=order_payload((product_a.id, 1)), headers=owner_a_headers).get_json()["order"]["id"]
        response = client.post(f"{base}/{order_id}/status", json={"status": "delivered"}, headers=owner_a_headers)
        assert response.status_code == 409

    def test_bad_date_range(self, client, db_session, tenant_a, owner_a_headers):
        response = client.get(f"/api/tenants/{tenant_a.id}/orders?start=yesterday", headers=owner_a_headers)
        assert response.status_code == 400

    def test_report_by_product(self, client, db_session, tenant_a, product_a, order_payload, admin_a_headers):
        base = f"/api/tenants/{tenant_a.id}/orders"
        client.post(base, json=order_payload((product_a.id, 1)), headers=admin_a_headers)
        body = client.get(f"{base}/reports/by-product/{product_a.id}", headers=admin_a_headers).get_json()
        assert body["count"] == 1
        assert "total_cost_cents" not in body["items"][0]


class TestInventoryRoutes:

    def test_adjust_and_history(self, client, db_session, tenant_a, product_a, owner_a_headers):
        base = f"/api/tenants/{tenant_a.id}/inventory"

        adjusted = client.post(f"{base}/{product_a.id}/adjust", json={"delta": -3, "note": "breakage"}, headers=owner_a_headers)
        assert adjusted.status_code == 201
        assert adjusted.get_json()["movement"]["quantity_after"] == 7

        received = client.post(f"{base}/{product_a.id}/receive", json={"quantity": 5}, headers=owner_a_headers)
        assert received.status_code == 201

        history = client.get(f"{base}/movements?product_id={product_a.id}", headers=owner_a_headers).get_json()
        assert [m["type"] for m in history["items"]] == ["stock_in", "stock_adjustment"]

        stats = client.get(f"{base}/movements/stats", headers=owner_a_headers).get_json()
        assert (stats["total_in"], stats["total_out"]) == (5, 3)

        level = client.get(f"{base}/{product_a.id}/stock", headers=owner_a_headers).get_json()
        assert level["stock_quantity"] == 12

    def test_negative_adjust(self, client, db_session, tenant_a, product_a, owner_a_headers):
        response = client.post(
            f"/api/tenants/{tenant_a.id}/inventory/{product_a.id}/adjust", json={"delta": -50}, headers=owner_a_headers
        )
        assert response.status_code == 409

    @pytest.mark.parametrize("query", ["start=not-a-date", "start=2024-02-01&end=2024-01-01"])
    def test_bad_dates(self, client, db_session, tenant_a, owner_a_headers, query):
        response = client.get(f"/api/tenants/{tenant_a.id}/inventory/movements?{query}", headers=owner_a_headers)
        assert response.status_code == 400

    def test_non_string_note(self, client, db_session, tenant_a, product_a, owner_a_headers):
        response = client.post(
            f"/api/tenants/{tenant_a.id}/inventory/{product_a.id}/adjust", json={"delta": 1, "note": 123}, headers=owner_a_headers
        )
        assert response.status_code == 400

    def test_admin_cannot_adjust(self, client, db_session, tenant_a, product_a, admin_a_headers):
        response = client.post(
            f"/api/tenants/{tenant_a.id}/inventory/{product_a.id}/adjust", json={"delta": 1}, headers=admin_a_headers
        )
        assert response.status_code == 404


class TestStaffRoutes:

    def test_assign_and_list(self, client, db_session, tenant_a, owner_a_headers, admin_a_headers):
        base = f"/api/tenants/{tenant_a.id}/staff"

        assigned = client.post(f"{base}/roles", json={"subject": "auth0|new", "role": "packer"}, headers=owner_a_headers)
        assert assigned.status_code == 200
        assert assigned.get_json()["user"]["role"] == "packer"

        listed = client.get(base, headers=admin_a_headers).get_json()
        assert {row["subject"] for row in listed["items"]} == {"auth0|admin-a", "auth0|new"}

    def test_admin_cannot_assign(self, client, db_session, tenant_a, admin_a_headers):
        response = client.post(
            f"/api/tenants/{tenant_a.id}/staff/roles",
            json={"subject": "auth0|new", "role": "admin"},
            headers=admin_a_headers,
        )
        assert response.status_code == 404

    def test_owner_of_other_tenant(self, client, db_session, tenant_a, tenant_b, token_for):
        headers = auth_headers(token_for(OWNER_B, tenant_b.id, ["owner"]))
        response = client.get(f"/api/tenants/{tenant_a.id}/staff", headers=headers)
        assert response.status_code == 404
