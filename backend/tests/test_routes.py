"""
HTTP surface: auth, error envelope, status codes.
"""

from backoffice.services import billing_service, import_service

PASSWORD = "Password123!"


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestAuth:
    def test_protected_route_requires_token(self, client):
        response = client.get("/api/products")
        assert response.status_code == 401
        assert response.get_json()["error"] == "Unauthorized"

    def test_garbage_token(self, client):
        response = client.get("/api/products", headers=auth_headers("not-a-token"))
        assert response.status_code == 401

    def test_login_me_logout(self, client, staff_user):
        response = client.post("/api/auth/login", json={"username": "staff", "password": PASSWORD})
        assert response.status_code == 200
        token = response.get_json()["token"]

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "staff"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_bad_password(self, client, staff_user):
        response = client.post("/api/auth/login", json={"username": "staff", "password": "wrong-password"})
        assert response.status_code == 401

    def test_login_requires_both_fields(self, client):
        response = client.post("/api/auth/login", json={"username": "staff"})
        assert response.status_code == 400


class TestBills:
    def test_create_bill(self, client, staff_headers, saree):
        response = client.post("/api/bills", headers=staff_headers, json={
            "items": [{"product_id": saree.id, "quantity": 2}],
            "discount_bps": 500,
            "payment_mode": "card",
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["bill_number"].startswith("BILL-")
        assert body["grand_total_cents"] == 200_000
        assert len(body["items"]) == 1

        fetched = client.get(f"/api/bills/number/{body['bill_number'].lower()}", headers=staff_headers)
        assert fetched.status_code == 200
        assert fetched.get_json()["id"] == body["id"]

    def test_insufficient_stock_envelope(self, client, staff_headers, saree):
        response = client.post("/api/bills", headers=staff_headers, json={
            "items": [{"product_id": saree.id, "quantity": 11}],
        })
        assert response.status_code == 422
        body = response.get_json()
        assert body["error"] == "InsufficientStock"
        assert body["details"]["available"] == 10

    def test_unknown_product_is_404(self, client, staff_headers):
        response = client.post("/api/bills", headers=staff_headers, json={
            "items": [{"product_id": 987654, "quantity": 1}],
        })
        assert response.status_code == 404
        assert response.get_json()["error"] == "ProductNotFound"

    def test_invalid_discount(self, client, staff_headers, saree):
        response = client.post("/api/bills", headers=staff_headers, json={
            "items": [{"product_id": saree.id, "quantity": 1}],
            "discount_bps": 20_000,
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidDiscount"

    def test_missing_bill(self, client, staff_headers):
        response = client.get("/api/bills/424242", headers=staff_headers)
        assert response.status_code == 404
        assert response.get_json()["error"] == "BillNotFound"


class TestDocuments:
    def test_return_over_sold_quantity(self, client, staff_headers, staff_user, saree):
        bill = billing_service.create_bill(items=[{"product_id": saree.id, "quantity": 1}], user_id=staff_user.id)
        response = client.post("/api/returns", headers=staff_headers, json={
            "bill_id": bill.id,
            "items": [{"product_id": saree.id, "quantity": 2}],
        })
        assert response.status_code == 422
        assert response.get_json()["error"] == "InvalidReturnQuantity"

    def test_wastage(self, client, staff_headers, dupatta):
        response = client.post("/api/wastage", headers=staff_headers, json={
            "product_id": dupatta.id,
            "quantity": 2,
            "reason": "cutting",
        })
        assert response.status_code == 201
        assert response.get_json()["cost_impact_cents"] == 40_000

    def test_audit_flow(self, client, staff_headers, saree):
        created = client.post("/api/stock-audits", headers=staff_headers, json={"notes": "Shelf A"})
        assert created.status_code == 201
        audit_id = created.get_json()["id"]

        scanned = client.post(f"/api/stock-audits/{audit_id}/items", headers=staff_headers, json={
            "sku": saree.sku,
            "physical_stock": 9,
        })
        assert scanned.status_code == 200
        assert scanned.get_json()["discrepancies"] == 1

        done = client.post(
            f"/api/stock-audits/{audit_id}/complete",
            headers=staff_headers,
            json={"apply_adjustments": True},
        )
        assert done.status_code == 200
        assert done.get_json()["status"] == "completed"

        again = client.post(f"/api/stock-audits/{audit_id}/cancel", headers=staff_headers)
        assert again.status_code == 409
        assert again.get_json()["error"] == "AuditNotInProgress"

        product = client.get(f"/api/products/{saree.id}", headers=staff_headers).get_json()
        assert product["stock_quantity"] == 9


class TestProducts:
    def test_price_locked_patch_is_403(self, client, staff_headers, staff_user, saree):
        billing_service.create_bill(items=[{"product_id": saree.id, "quantity": 1}], user_id=staff_user.id)
        response = client.patch(f"/api/products/{saree.id}", headers=staff_headers, json={"selling_price_cents": 1})
        assert response.status_code == 403
        assert response.get_json()["error"] == "PriceLocked"

    def test_stock_history(self, client, staff_headers, saree):
        response = client.get(f"/api/products/{saree.id}/stock-history", headers=staff_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["count"] == 1
        assert body["items"][0]["movement_type"] == "in"

    def test_import_requires_row_list(self, client, staff_headers):
        response = client.post("/api/products/import", headers=staff_headers, json={"rows": "nope"})
        assert response.status_code == 400

    def test_import_update_flag_is_strict(self, client, staff_headers, category, make_product):
        make_product(name="Printed Saree", product_code="PT-101")
        rows = [{"name": "Printed Saree", "product_code": "PT-101", "quantity": 2}]

        response = client.post("/api/products/import", headers=staff_headers, json={
            "rows": rows, "category_id": category.id, "update_stock": "false",
        })
        assert response.status_code == 201
        assert response.get_json()["created"] == 1
        assert response.get_json()["updated"] == 0

        response = client.post("/api/products/import", headers=staff_headers, json={
            "rows": rows, "category_id": category.id, "update_stock": "sometimes",
        })
        assert response.status_code == 400


class TestLots:
    def test_only_admin_closes_lot(self, client, staff_headers, admin_headers, staff_user, category):
        result = import_service.bulk_import_products(
            rows=[{"name": "Tussar Saree", "quantity": 2}],
            default_category_id=category.id,
            user_id=staff_user.id,
        )
        lot_id = result["lot"]["id"]

        denied = client.post(f"/api/lots/{lot_id}/close", headers=staff_headers)
        assert denied.status_code == 403

        closed = client.post(f"/api/lots/{lot_id}/close", headers=admin_headers)
        assert closed.status_code == 200
        assert closed.get_json()["status"] == "closed"

        again = client.post(f"/api/lots/{lot_id}/close", headers=admin_headers)
        assert again.status_code == 409

        detail = client.get(f"/api/lots/{lot_id}", headers=staff_headers).get_json()
        assert len(detail["products"]) == 1


class TestReports:
    def test_dead_stock(self, client, staff_headers, saree):
        response = client.get("/api/reports/dead-stock?days=30", headers=staff_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["days"] == 30
        assert body["count"] == 1
        assert body["items"][0]["never_sold"] is True
        assert body["total_stock_value_cents"] == 10 * 60_000

    def test_sales_grouping_validated(self, client, staff_headers):
        response = client.get("/api/reports/sales?group_by=week", headers=staff_headers)
        assert response.status_code == 400
        assert response.get_json()["error"] == "ValidationError"

    def test_product_and_staff_wise(self, client, staff_headers, staff_user, saree):
        billing_service.create_bill(items=[{"product_id": saree.id, "quantity": 2}], user_id=staff_user.id)

        products = client.get("/api/reports/product-wise", headers=staff_headers).get_json()
        assert products["products"][0]["quantity"] == 2

        staff = client.get("/api/reports/staff-wise", headers=staff_headers).get_json()
        assert staff["staff"][0]["username"] == "staff"
        assert staff["total_revenue_cents"] == 210_000

    def test_dashboard_hides_catalogue_counts_from_staff(self, client, staff_headers, admin_headers, saree):
        assert client.get("/api/reports/dashboard", headers=staff_headers).get_json()["total_products"] == 0
        assert client.get("/api/reports/dashboard", headers=admin_headers).get_json()["total_products"] == 1

    def test_requires_auth(self, client):
        assert client.get("/api/reports/highest").status_code == 401


class TestFittings:
    def test_only_admin_manages_rates(self, client, staff_headers, admin_headers):
        payload = {"service_name": "Saree Stitching", "rate_cents": 40_000}
        assert client.post("/api/fittings", headers=staff_headers, json=payload).status_code == 403

        created = client.post("/api/fittings", headers=admin_headers, json=payload)
        assert created.status_code == 201
        fitting_id = created.get_json()["id"]

        duplicate = client.post("/api/fittings", headers=admin_headers, json=payload)
        assert duplicate.status_code == 409

        listed = client.get("/api/fittings?active_only=true", headers=staff_headers).get_json()
        assert listed["count"] == 1

        patched = client.patch(f"/api/fittings/{fitting_id}", headers=admin_headers, json={"is_active": False})
        assert patched.get_json()["is_active"] is False
        assert client.get("/api/fittings?active_only=true", headers=staff_headers).get_json()["count"] == 0

        assert client.delete(f"/api/fittings/{fitting_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/fittings/{fitting_id}", headers=staff_headers).status_code == 404

    def test_bill_with_catalogue_charge(self, client, staff_headers, admin_headers, saree):
        fitting_id = client.post("/api/fittings", headers=admin_headers, json={
            "service_name": "Fall and Pico", "rate_cents": 15_000,
        }).get_json()["id"]

        response = client.post("/api/bills", headers=staff_headers, json={
            "items": [{"product_id": saree.id, "quantity": 1}],
            "additional_charges": [{"fitting_id": fitting_id}],
        })
        assert response.status_code == 201
        assert response.get_json()["additional_charges"][0]["service_name"] == "Fall and Pico"
        assert response.get_json()["grand_total_cents"] == 120_000


def test_health(client):
    response = client.get("/api/system/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"
