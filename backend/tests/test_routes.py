"""
HTTP API tests.

Verifies:
- Bearer token required on every data endpoint (401)
- Error kinds map to status codes with the attempt id in the body
- Role-scoped stock and product listings
"""

import pytest

from stockflow.services import session_service

from conftest import auth_headers, put_stock, quantity_of


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales/1"),
            ("GET", "/api/stock"),
            ("GET", "/api/stock/low"),
            ("GET", "/api/stock/quantity?product_id=1"),
            ("POST", "/api/stock/receive"),
            ("GET", "/api/products"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_revoked_token(self, client, db_session, seller_user):
        token = session_service.issue_token(seller_user.id)
        session_service.revoke_token(token)

        resp = client.get("/api/sales", headers=auth_headers(token))
        assert resp.status_code == 401

    def test_deactivated_user(self, client, db_session, seller_user):
        token = session_service.issue_token(seller_user.id)
        seller_user.is_active = False
        db_session.commit()

        resp = client.get("/api/sales", headers=auth_headers(token))
        assert resp.status_code == 401


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"


# =============================================================================
# SALES
# =============================================================================


class TestCreateSale:

    def test_created(self, client, db_session, store_1, product_a, seller_headers):
        put_stock(db_session, product_a, store_1, 10)

        resp = client.post(
            "/api/sales",
            json={
                "store_id": store_1.id,
                "lines": [{"product_id": product_a.id, "quantity": 3, "unit_price": "10.00"}],
                "payment_method": "card",
            },
            headers=seller_headers,
        )

        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_cents"] == 3600
        assert sale["payment_method"] == "card"
        assert sale["sale_number"].startswith("VTE-")
        assert len(sale["lines"]) == 1
        assert quantity_of(product_a, store_1) == 7

    def test_replay_returns_200(self, client, db_session, store_1, product_a, seller_headers):
        put_stock(db_session, product_a, store_1, 10)
        body = {
            "store_id": store_1.id,
            "lines": [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 1000}],
            "attempt_id": "client-attempt-1",
        }

        first = client.post("/api/sales", json=body, headers=seller_headers)
        second = client.post("/api/sales", json=body, headers=seller_headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json["sale"]["id"] == first.json["sale"]["id"]
        assert quantity_of(product_a, store_1) == 9

    def test_empty_cart_is_400(self, client, db_session, store_1, seller_headers):
        resp = client.post("/api/sales", json={"store_id": store_1.id, "lines": []}, headers=seller_headers)

        assert resp.status_code == 400
        assert resp.json["kind"] == "EmptyOrInvalidCart"
        assert resp.json["attempt_id"]

    def test_invalid_price_is_400(self, client, db_session, store_1, product_a, seller_headers):
        resp = client.post(
            "/api/sales",
            json={"store_id": store_1.id, "lines": [{"product_id": product_a.id, "quantity": 1, "unit_price": "abc"}]},
            headers=seller_headers,
        )

        assert resp.status_code == 400
        assert resp.json["kind"] == "InvalidPrice"
        assert resp.json["attempt_id"]

    def test_foreign_store_is_403(self, client, db_session, store_1, store_2, product_a, seller_headers):
        put_stock(db_session, product_a, store_2, 10)

        resp = client.post(
            "/api/sales",
            json={"store_id": store_2.id, "lines": [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 100}]},
            headers=seller_headers,
        )

        assert resp.status_code == 403
        assert resp.json["kind"] == "PermissionDenied"
        assert quantity_of(product_a, store_2) == 10

    @pytest.mark.parametrize(
        "lines",
        [
            [{"product_id": 1, "quantity": 1, "unit_price": "abc"}],
            ["oops"],
            "not-a-list",
        ],
    )
    def test_foreign_store_denied_before_cart_checks(self, client, db_session, store_2, seller_headers, lines):
        resp = client.post(
            "/api/sales",
            json={"store_id": store_2.id, "lines": lines},
            headers=seller_headers,
        )

        assert resp.status_code == 403
        assert resp.json["kind"] == "PermissionDenied"
        assert resp.json["attempt_id"]

    def test_blank_row_ignored(self, client, db_session, store_1, product_a, seller_headers):
        put_stock(db_session, product_a, store_1, 10)

        resp = client.post(
            "/api/sales",
            json={
                "store_id": store_1.id,
                "lines": [
                    {"product_id": product_a.id, "quantity": 3, "unit_price_cents": 1000},
                    {"product_id": None, "quantity": 0},
                ],
            },
            headers=seller_headers,
        )

        assert resp.status_code == 201
        assert len(resp.json["sale"]["lines"]) == 1
        assert quantity_of(product_a, store_1) == 7

    def test_insufficient_stock_is_409(self, client, db_session, store_1, product_a, seller_headers):
        put_stock(db_session, product_a, store_1, 2)

        resp = client.post(
            "/api/sales",
            json={
                "store_id": store_1.id,
                "lines": [{"product_id": product_a.id, "quantity": 3, "unit_price_cents": 1000}],
                "attempt_id": "att-409",
            },
            headers=seller_headers,
        )

        assert resp.status_code == 409
        assert resp.json["kind"] == "InsufficientStock"
        assert resp.json["attempt_id"] == "att-409"
        assert resp.json["details"]["requested_quantity"] == 3
        assert resp.json["details"]["available_quantity"] == 2


class TestReadSales:

    def test_list_and_get(self, client, db_session, store_1, product_a, seller_headers):
        put_stock(db_session, product_a, store_1, 10)
        created = client.post(
            "/api/sales",
            json={"store_id": store_1.id, "lines": [{"product_id": product_a.id, "quantity": 1, "unit_price_cents": 500}]},
            headers=seller_headers,
        ).json["sale"]

        listing = client.get("/api/sales", headers=seller_headers)
        assert [s["id"] for s in listing.json["sales"]] == [created["id"]]

        detail = client.get(f"/api/sales/{created['id']}", headers=seller_headers)
        assert detail.status_code == 200
        assert detail.json["sale"]["lines"][0]["quantity"] == 1

    def test_missing_sale_is_404(self, client, db_session, seller_headers):
        resp = client.get("/api/sales/9999", headers=seller_headers)
        assert resp.status_code == 404


# =============================================================================
# STOCK AND PRODUCTS
# =============================================================================


class TestStock:

    def test_receive_requires_inventory_role(self, client, db_session, store_1, product_a, seller_headers):
        resp = client.post(
            "/api/stock/receive",
            json={"product_id": product_a.id, "store_id": store_1.id, "quantity": 5},
            headers=seller_headers,
        )
        assert resp.status_code == 403

    def test_manager_receives(self, client, db_session, store_1, product_a, manager_headers):
        resp = client.post(
            "/api/stock/receive",
            json={"product_id": product_a.id, "store_id": store_1.id, "quantity": 5},
            headers=manager_headers,
        )

        assert resp.status_code == 201
        assert resp.json["stock"]["quantity"] == 5
        assert resp.json["stock"]["level"] == "low"

    def test_receive_invalid_quantity(self, client, db_session, store_1, product_a, manager_headers):
        resp = client.post(
            "/api/stock/receive",
            json={"product_id": product_a.id, "store_id": store_1.id, "quantity": 0},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("missing", ["product_id", "store_id"])
    def test_receive_missing_ids_is_400(self, client, db_session, store_1, product_a, admin_headers, missing):
        body = {"product_id": product_a.id, "store_id": store_1.id, "quantity": 5}
        del body[missing]

        resp = client.post("/api/stock/receive", json=body, headers=admin_headers)

        assert resp.status_code == 400
        assert missing in resp.json["error"]

    def test_low_stock(self, client, db_session, store_1, product_a, product_b, manager_headers):
        put_stock(db_session, product_a, store_1, 1)
        put_stock(db_session, product_b, store_1, 40)

        resp = client.get("/api/stock/low", headers=manager_headers)

        assert resp.status_code == 200
        assert [row["product_id"] for row in resp.json["stock"]] == [product_a.id]

    def test_quantity_aggregate_and_scope(self, client, db_session, store_1, store_2, product_a, seller_headers,
                                          admin_headers):
        put_stock(db_session, product_a, store_1, 3)
        put_stock(db_session, product_a, store_2, 4)

        seller_total = client.get(f"/api/stock/quantity?product_id={product_a.id}", headers=seller_headers)
        admin_total = client.get(f"/api/stock/quantity?product_id={product_a.id}", headers=admin_headers)
        foreign = client.get(
            f"/api/stock/quantity?product_id={product_a.id}&store_id={store_2.id}", headers=seller_headers
        )

        assert seller_total.json["quantity"] == 3
        assert admin_total.json["quantity"] == 7
        assert foreign.status_code == 403


class TestProducts:

    def test_seller_sees_only_in_stock(self, client, db_session, store_1, product_a, product_b, seller_headers):
        put_stock(db_session, product_a, store_1, 2)
        put_stock(db_session, product_b, store_1, 0)

        resp = client.get("/api/products", headers=seller_headers)

        assert resp.json["visibility"] == "in_stock_only"
        assert [p["id"] for p in resp.json["products"]] == [product_a.id]
        assert resp.json["products"][0]["visible_stock"] == 2

    def test_manager_sees_all_with_store_stock(self, client, db_session, store_1, product_a, product_b,
                                               manager_headers):
        put_stock(db_session, product_a, store_1, 2)

        resp = client.get("/api/products", headers=manager_headers)

        rows = {p["id"]: p for p in resp.json["products"]}
        assert set(rows) == {product_a.id, product_b.id}
        assert rows[product_b.id]["stock_by_store"] == [{"store_id": store_1.id, "quantity": 0}]

    def test_admin_sees_all(self, client, db_session, store_1, product_a, product_b, admin_headers):
        resp = client.get("/api/products", headers=admin_headers)

        assert resp.json["visibility"] == "all"
        assert len(resp.json["products"]) == 2
        assert "stock_by_store" not in resp.json["products"][0]
