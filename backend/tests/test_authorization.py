"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied privileged operations (403)
- Admin role can perform privileged operations
- Discounts need APPLY_DISCOUNT on top of CREATE_SALE, for sales and exchanges
- Technicians only see their own repair jobs
"""

from decimal import Decimal

import pytest

from repairpos.services import permission_service, repair_service, sales_service


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/users"),
            ("GET", "/api/admin/roles"),
            ("GET", "/api/admin/permissions"),
            ("GET", "/api/products"),
            ("GET", "/api/inventory/"),
            ("POST", "/api/inventory/adjust"),
            ("POST", "/api/sales/"),
            ("GET", "/api/sales/"),
            ("POST", "/api/returns/"),
            ("GET", "/api/repairs/"),
            ("GET", "/api/repairs/mine"),
            ("GET", "/api/warranties/"),
            ("POST", "/api/warranties/1/claims"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, seed, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token(self, client, seed):
        resp = client.get("/api/sales/", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid or expired token"

    def test_logged_out_token_rejected(self, client, cashier_headers):
        assert client.post("/api/auth/logout", headers=cashier_headers).status_code == 200
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401

    def test_bad_password(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "WrongPass999!"})
        assert resp.status_code == 401


# =============================================================================
# CASHIER DENIED HIGH-RISK OPERATIONS (403)
# =============================================================================


class TestCashierDeniedHighRisk:
    """Cashier role cannot perform privileged operations."""

    def test_cannot_list_users(self, client, cashier_headers):
        resp = client.get("/api/admin/users", headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.json["missing_permissions"] == ["VIEW_USERS"]

    def test_cannot_create_user(self, client, cashier_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "x", "password": "P@ssw0rd123!", "roles": ["ADMIN"]},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_create_role(self, client, cashier_headers):
        resp = client.post("/api/admin/roles", json={"name": "evil-role"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_adjust_inventory(self, client, cashier_headers, make_product):
        product = make_product(stock=1)
        resp = client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "adjustment_type": "PURCHASE", "quantity": 10},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_void_sale(self, client, cashier_headers):
        resp = client.post("/api/sales/1/void", json={"reason": "x"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_void_warranty(self, client, cashier_headers):
        resp = client.post("/api/warranties/1/void", json={"reason": "x"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_denial_is_audited(self, client, cashier_headers, admin_headers):
        client.get("/api/admin/users", headers=cashier_headers)
        resp = client.get("/api/admin/security-events?event_type=ACCESS_DENIED", headers=admin_headers)
        assert resp.status_code == 200
        assert any(e["resource"] == "/api/admin/users" for e in resp.json["events"])


# =============================================================================
# ADMIN CAN PERFORM PRIVILEGED OPERATIONS
# =============================================================================


class TestAdminPrivileged:

    def test_list_users(self, client, admin_headers):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200

    def test_create_user_and_login(self, client, admin_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "newtech", "password": "Password123!", "roles": ["technician"]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["user"]["roles"] == ["TECHNICIAN"]
        login = client.post("/api/auth/login", json={"username": "newtech", "password": "Password123!"})
        assert login.status_code == 200
        assert "COMPLETE_REPAIR" in login.json["permissions"]

    def test_create_role(self, client, admin_headers):
        resp = client.post(
            "/api/admin/roles",
            json={"name": "stock clerk", "permissions": ["VIEW_INVENTORY", "MANAGE_INVENTORY"]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["role"]["permissions"] == ["MANAGE_INVENTORY", "VIEW_INVENTORY"]

    def test_adjust_inventory(self, client, admin_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "adjustment_type": "purchase", "quantity": 10},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["new_quantity"] == 10

    def test_login_returns_effective_permissions(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": "admin", "password": "Password123!"})
        assert resp.status_code == 200
        assert "MANAGE_SETTINGS" in resp.json["permissions"]


# =============================================================================
# DISCOUNTS NEED APPLY_DISCOUNT
# =============================================================================


class TestDiscountPermission:

    @pytest.fixture
    def till_headers(self, make_user, login):
        permission_service.create_role(name="TILL", permission_codes=["CREATE_SALE"])
        make_user("till", roles=("TILL",))
        return login("till")

    def test_plain_sale_allowed(self, client, till_headers, make_product):
        product = make_product(stock=2)
        resp = client.post(
            "/api/sales/",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=till_headers,
        )
        assert resp.status_code == 201

    def test_discount_denied(self, client, till_headers, make_product):
        product = make_product(stock=2)
        resp = client.post(
            "/api/sales/",
            json={
                "items": [{"product_id": product.id, "quantity": 1}],
                "discount_type": "PERCENTAGE",
                "discount_value": 10,
            },
            headers=till_headers,
        )
        assert resp.status_code == 403
        assert resp.json["details"]["missing_permissions"] == ["APPLY_DISCOUNT"]

    def test_price_override_denied(self, client, till_headers, make_product):
        product = make_product(stock=2)
        resp = client.post(
            "/api/sales/",
            json={"items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 1}]},
            headers=till_headers,
        )
        assert resp.status_code == 403

    def test_cashier_may_discount(self, client, cashier_headers, make_product):
        product = make_product(stock=2)
        resp = client.post(
            "/api/sales/",
            json={
                "items": [{"product_id": product.id, "quantity": 1}],
                "discount_type": "FIXED",
                "discount_value": 500,
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        assert resp.json["sale"]["discount_total_cents"] == 500

    @pytest.fixture
    def exchange_setup(self, make_product, cashier_user):
        old = make_product(stock=2, tax_rate=Decimal("0"))
        new = make_product(stock=2, tax_rate=Decimal("0"), selling_price_cents=20000)
        sale = sales_service.create_sale(
            items=[{"product_id": old.id, "quantity": 1}],
            payments=[{"method": "CASH", "amount_cents": 15000}],
            user_id=cashier_user.id,
        )
        return sale, new

    def _exchange_body(self, sale, new, **line):
        return {
            "original_sale_id": sale.id,
            "return_items": [{"sale_item_id": sale.items[0].id, "quantity": 1}],
            "new_items": [{"product_id": new.id, "quantity": 1, **line}],
            "payments": [{"method": "CASH", "amount_cents": 5000}],
        }

    def test_exchange_discount_denied(self, client, make_user, login, exchange_setup):
        permission_service.create_role(name="COUNTER", permission_codes=["CREATE_SALE", "CREATE_RETURN"])
        make_user("counter", roles=("COUNTER",))
        sale, new = exchange_setup

        resp = client.post(
            "/api/returns/exchange",
            json=self._exchange_body(sale, new, discount_cents=2000),
            headers=login("counter"),
        )
        assert resp.status_code == 403
        assert resp.json["details"]["missing_permissions"] == ["APPLY_DISCOUNT"]

        plain = client.post("/api/returns/exchange", json=self._exchange_body(sale, new), headers=login("counter"))
        assert plain.status_code == 201

    def test_exchange_discount_applied_for_cashier(self, client, cashier_headers, exchange_setup):
        sale, new = exchange_setup

        resp = client.post(
            "/api/returns/exchange",
            json=self._exchange_body(sale, new, discount_cents=2000),
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        assert resp.json["return"]["new_items_total_cents"] == 18000
        assert resp.json["return"]["exchange_amount_due_cents"] == 3000


# =============================================================================
# REPAIR VISIBILITY
# =============================================================================


class TestRepairVisibility:

    def test_technician_sees_only_own_jobs(self, client, technician_user, technician_headers, make_user):
        other = make_user("tech2", roles=("TECHNICIAN",))
        own = repair_service.create_repair(
            customer={"name": "A", "phone": "1"}, device={}, problem_description="Screen",
            user_id=technician_user.id,
        )
        foreign = repair_service.create_repair(
            customer={"name": "B", "phone": "2"}, device={}, problem_description="Battery",
            user_id=other.id,
        )

        assert client.get("/api/repairs/", headers=technician_headers).status_code == 403
        mine = client.get("/api/repairs/mine", headers=technician_headers)
        assert [job["id"] for job in mine.json["items"]] == [own.id]

        assert client.get(f"/api/repairs/{own.id}", headers=technician_headers).status_code == 200
        assert client.get(f"/api/repairs/{foreign.id}", headers=technician_headers).status_code == 403

    def test_cashier_sees_all_jobs(self, client, technician_user, cashier_headers):
        job = repair_service.create_repair(
            customer={"name": "A", "phone": "1"}, device={}, problem_description="Screen",
            user_id=technician_user.id,
        )
        resp = client.get(f"/api/repairs/{job.id}", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["repair"]["job_number"] == job.job_number
