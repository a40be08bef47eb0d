"""
Point API tests.

Verifies:
- Expiration trigger accepts an admin session or the cron secret (401/403 otherwise)
- History and balance are visible to admins and the customer's own account only
- Manual adjustments are admin-only and validate their payload
- Login cookie authenticates follow-up requests
"""

from datetime import timedelta

import pytest

from loyalty.models import Customer, PointHistory
from loyalty.services import point_ledger_service
from loyalty.services.point_ledger_service import PointTransaction
from loyalty.time_utils import utcnow


TEST_PASSWORD = "Password123!"


def _earn(customer_id, amount, expires_at=None):
    return point_ledger_service.apply_point_transaction(PointTransaction(
        customer_id=customer_id,
        type="earned",
        amount=amount,
        description="Reservation",
        expires_at=expires_at,
    )).id


# =============================================================================
# EXPIRATION TRIGGER
# =============================================================================


class TestExpireEndpoint:

    def test_requires_credentials(self, client, db_session):
        resp = client.post("/api/customer/points/expire")
        assert resp.status_code == 401

    def test_wrong_cron_secret(self, client, db_session):
        resp = client.post("/api/customer/points/expire", headers={"Authorization": "Bearer not-the-secret"})
        assert resp.status_code == 401

    def test_non_admin_session_forbidden(self, client, staff_headers):
        resp = client.post("/api/customer/points/expire", headers=staff_headers)
        assert resp.status_code == 403

    def test_cron_secret(self, client, db_session, customer, cron_headers):
        lot_id = _earn(customer.id, 120, utcnow() - timedelta(days=1))

        resp = client.post("/api/customer/points/expire", headers=cron_headers)

        assert resp.status_code == 200
        assert resp.get_json() == {"processedCount": 1, "errorCount": 0}
        assert db_session.get(PointHistory, lot_id).is_expired is True

    def test_admin_session(self, client, admin_headers, customer):
        _earn(customer.id, 120, utcnow() - timedelta(days=1))

        resp = client.post("/api/customer/points/expire", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["processedCount"] == 1

    def test_second_call_processes_nothing(self, client, customer, cron_headers):
        _earn(customer.id, 120, utcnow() - timedelta(days=1))

        client.post("/api/customer/points/expire", headers=cron_headers)
        resp = client.post("/api/customer/points/expire", headers=cron_headers)

        assert resp.get_json() == {"processedCount": 0, "errorCount": 0}

    def test_errors_listed(self, client, customer, cron_headers):
        _earn(customer.id, 300, utcnow() - timedelta(days=1))
        point_ledger_service.adjust_points(customer.id, -250, "Redeemed")

        resp = client.post("/api/customer/points/expire", headers=cron_headers)

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["processedCount"] == 0
        assert body["errorCount"] == 1
        assert body["errors"] == [{
            "customerId": customer.id,
            "reason": "Insufficient points",
            "details": {"customer_id": customer.id, "balance": 50, "requested": -300},
        }]

    def test_cron_disabled_without_secret(self, app, client, db_session, cron_headers, monkeypatch):
        monkeypatch.setitem(app.config, "CRON_SECRET", None)
        resp = client.post("/api/customer/points/expire", headers=cron_headers)
        assert resp.status_code == 401

    def test_unexpected_failure_returns_500(self, client, cron_headers, db_session, monkeypatch):
        from loyalty.services import point_expiration_service

        def broken(now=None):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(point_expiration_service, "run_expiration", broken)

        resp = client.post("/api/customer/points/expire", headers=cron_headers)

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}


# =============================================================================
# HISTORY
# =============================================================================


class TestHistoryEndpoint:

    def test_requires_auth(self, client, db_session, customer):
        resp = client.get(f"/api/customer/points?customer_id={customer.id}")
        assert resp.status_code == 401

    def test_admin_pagination(self, client, admin_headers, customer):
        for amount in (10, 20, 30):
            _earn(customer.id, amount)

        resp = client.get(
            f"/api/customer/points?customer_id={customer.id}&limit=2&offset=0",
            headers=admin_headers,
        )

        body = resp.get_json()
        assert resp.status_code == 200
        assert [row["amount"] for row in body["data"]] == [30, 20]
        assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}

    def test_limit_and_offset_clamped(self, client, admin_headers, customer):
        resp = client.get(
            f"/api/customer/points?customer_id={customer.id}&limit=500&offset=-4",
            headers=admin_headers,
        )

        assert resp.get_json()["pagination"]["limit"] == 100
        assert resp.get_json()["pagination"]["offset"] == 0

    def test_type_filter(self, client, admin_headers, customer):
        _earn(customer.id, 100)
        point_ledger_service.adjust_points(customer.id, -5, "Fix")

        resp = client.get(
            f"/api/customer/points?customer_id={customer.id}&type=adjusted",
            headers=admin_headers,
        )

        assert [row["type"] for row in resp.get_json()["data"]] == ["adjusted"]

    def test_invalid_type(self, client, admin_headers, customer):
        resp = client.get(
            f"/api/customer/points?customer_id={customer.id}&type=stolen",
            headers=admin_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("query", ["", "?customer_id=", "?customer_id=abc", "?customer_id=1.5"])
    def test_customer_id_required(self, client, admin_headers, query):
        resp = client.get(f"/api/customer/points{query}", headers=admin_headers)
        assert resp.status_code == 400

    def test_customer_reads_own_history(self, client, customer_headers, customer):
        _earn(customer.id, 15)
        resp = client.get(f"/api/customer/points?customer_id={customer.id}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.get_json()["pagination"]["total"] == 1

    def test_customer_cannot_read_others(self, client, customer_headers, other_customer):
        resp = client.get(f"/api/customer/points?customer_id={other_customer.id}", headers=customer_headers)
        assert resp.status_code == 403

    def test_staff_cannot_read(self, client, staff_headers, customer):
        resp = client.get(f"/api/customer/points?customer_id={customer.id}", headers=staff_headers)
        assert resp.status_code == 403


# =============================================================================
# BALANCE
# =============================================================================


class TestBalanceEndpoint:

    def test_balance_with_expiring_lot(self, client, customer_headers, customer):
        _earn(customer.id, 80, utcnow() + timedelta(days=400))
        _earn(customer.id, 20, utcnow() + timedelta(days=3))

        resp = client.get(f"/api/customer/points/balance?customer_id={customer.id}", headers=customer_headers)

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["customerId"] == customer.id
        assert body["balance"] == 100
        assert body["expiringPoints"]["amount"] == 20
        assert body["expiringPoints"]["expiresAt"].endswith("Z")

    def test_balance_without_expiring_lot(self, client, customer_headers, customer):
        resp = client.get(f"/api/customer/points/balance?customer_id={customer.id}", headers=customer_headers)
        assert resp.get_json() == {"customerId": customer.id, "balance": 0, "expiringPoints": None}

    def test_unknown_customer(self, client, admin_headers):
        resp = client.get("/api/customer/points/balance?customer_id=987654", headers=admin_headers)
        assert resp.status_code == 404


# =============================================================================
# MANUAL ADJUSTMENT
# =============================================================================


class TestAdjustEndpoint:

    def test_admin_adjusts(self, client, admin_headers, customer, db_session):
        resp = client.post(
            "/api/customer/points/adjust",
            json={"customer_id": customer.id, "amount": 250, "reason": "Service recovery"},
            headers=admin_headers,
        )

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["entry"]["type"] == "adjusted"
        assert body["entry"]["amount"] == 250
        assert body["entry"]["balance_snapshot"] == 250
        assert db_session.get(Customer, customer.id).points_balance == 250

    def test_staff_forbidden(self, client, staff_headers, customer):
        resp = client.post(
            "/api/customer/points/adjust",
            json={"customer_id": customer.id, "amount": 250, "reason": "Nope"},
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_cron_secret_not_accepted(self, client, cron_headers, customer):
        resp = client.post(
            "/api/customer/points/adjust",
            json={"customer_id": customer.id, "amount": 250, "reason": "Nope"},
            headers=cron_headers,
        )
        assert resp.status_code == 401

    @pytest.mark.parametrize("payload", [
        {"amount": 10, "reason": "x"},
        {"customer_id": 1, "amount": 0, "reason": "x"},
        {"customer_id": 1, "amount": 1.5, "reason": "x"},
        {"customer_id": 1, "amount": "1e3", "reason": "x"},
        {"customer_id": 1, "amount": 10_000_001, "reason": "x"},
        {"customer_id": 1, "amount": 10, "reason": "   "},
        {"customer_id": 1, "amount": 10},
    ])
    def test_invalid_payload(self, client, admin_headers, payload):
        resp = client.post("/api/customer/points/adjust", json=payload, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid payload"

    def test_negative_beyond_balance(self, client, admin_headers, customer):
        resp = client.post(
            "/api/customer/points/adjust",
            json={"customer_id": customer.id, "amount": -1, "reason": "Clawback"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Insufficient points"

    def test_unknown_customer(self, client, admin_headers):
        resp = client.post(
            "/api/customer/points/adjust",
            json={"customer_id": 987654, "amount": 5, "reason": "Ghost"},
            headers=admin_headers,
        )
        assert resp.status_code == 404


# =============================================================================
# SESSION COOKIE
# =============================================================================


class TestLoginCookie:

    def test_login_cookie_authorizes_expire(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": admin_user.username, "password": TEST_PASSWORD})
        assert resp.status_code == 200
        assert "admin" in resp.get_json()["roles"]

        resp = client.post("/api/customer/points/expire")
        assert resp.status_code == 200

    def test_logout_revokes_session(self, client, admin_user):
        client.post("/api/auth/login", json={"username": admin_user.username, "password": TEST_PASSWORD})

        assert client.post("/api/auth/logout").status_code == 200
        assert client.post("/api/customer/points/expire").status_code == 401

    def test_bad_password(self, client, admin_user):
        resp = client.post("/api/auth/login", json={"username": admin_user.username, "password": "Wrong123!"})
        assert resp.status_code == 401
