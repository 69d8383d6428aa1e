# Admin API tests

import pytest


@pytest.fixture
def delivered(client, api_run, dasher_headers):
    run_id = api_run["run_id"]
    client.post(f"/api/runs/{run_id}/claim", headers=dasher_headers)
    client.post(f"/api/runs/{run_id}/picked-up", headers=dasher_headers)
    response = client.post(f"/api/runs/{run_id}/delivered", json={"pin": api_run["pin"]},
                           headers=dasher_headers)
    assert response.status_code == 200
    return {**api_run, "payment_id": response.json()["data"]["payment_id"]}


class TestAdminAccess:
    """Admin-only routes"""

    def test_non_admin_is_forbidden(self, client, buyer_a_headers):
        """Regular users get 403"""
        response = client.post("/api/admin/pricing/recalculate", headers=buyer_a_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "permission-denied"

    def test_missing_token(self, client):
        """No token gets 401"""
        assert client.get("/api/admin/maintenance/integrity").status_code == 401


class TestPricingAdmin:
    """Halls, fees and pricing"""

    def test_upsert_hall(self, client, admin_headers, store):
        """Create a dining hall"""
        response = client.put("/api/admin/halls/east-hall", json={
            "name": "East Hall", "prices": {"lunch": 13.0, "dinner": 15.5},
        }, headers=admin_headers)

        assert response.status_code == 200
        assert store.get_document("dining_halls", "east-hall").get("prices") == {"lunch": 13.0, "dinner": 15.5}

    def test_upsert_hall_rejects_unknown_window(self, client, admin_headers):
        """Price keys must be service windows"""
        response = client.put("/api/admin/halls/east-hall", json={
            "name": "East Hall", "prices": {"brunch": 13.0},
        }, headers=admin_headers)

        assert response.status_code == 422

    def test_fee_override_changes_settlement(self, client, admin_headers, api_run, dasher_headers):
        """A hall fee override changes the payout"""
        fees = client.put("/api/admin/fees", json={"hall_id": "north-commons", "fee_dollars": 1.0},
                          headers=admin_headers)
        assert fees.json()["data"] == {"north-commons": 1.0}

        run_id = api_run["run_id"]
        client.post(f"/api/runs/{run_id}/claim", headers=dasher_headers)
        client.post(f"/api/runs/{run_id}/picked-up", headers=dasher_headers)
        delivered = client.post(f"/api/runs/{run_id}/delivered", json={"pin": api_run["pin"]},
                                headers=dasher_headers)

        assert delivered.json()["data"]["payout_cents"] == 1666

    def test_recalculate_pricing(self, client, admin_headers):
        """Rebuild the pricing snapshot"""
        response = client.post("/api/admin/pricing/recalculate", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["north-commons"]["dinner"] == 17.5


class TestSettlementAdmin:
    """Payment outcomes and run close"""

    def test_payment_outcome_then_close(self, client, admin_headers, delivered, store):
        """Report success then close the run"""
        paid = client.post(f"/api/admin/payments/{delivered['payment_id']}/outcome",
                           json={"succeeded": True}, headers=admin_headers)
        assert paid.status_code == 200
        assert store.get_document("runs", delivered["run_id"]).get("status") == "paid"

        closed = client.post(f"/api/admin/runs/{delivered['run_id']}/close", headers=admin_headers)
        assert closed.status_code == 200
        assert store.get_document("orders", delivered["order_ids"][1]).get("status") == "closed"

    def test_close_unpaid_run_conflicts(self, client, admin_headers, delivered):
        """An unpaid run cannot close"""
        response = client.post(f"/api/admin/runs/{delivered['run_id']}/close", headers=admin_headers)

        assert response.status_code == 409

    def test_admin_cancel_refunds(self, client, admin_headers, delivered, store):
        """Cancelling a paid run refunds it"""
        client.post(f"/api/admin/payments/{delivered['payment_id']}/outcome",
                    json={"succeeded": True}, headers=admin_headers)

        response = client.post(f"/api/admin/runs/{delivered['run_id']}/cancel",
                               json={"reason": "Buyer dispute"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["previous_status"] == "paid"
        assert store.get_document("payments", delivered["payment_id"]).get("status") == "refunded"

    def test_unknown_payment(self, client, admin_headers):
        """Unknown payment is 404"""
        response = client.post("/api/admin/payments/missing/outcome", json={"succeeded": True},
                               headers=admin_headers)

        assert response.status_code == 404


class TestMaintenanceAdmin:
    """Maintenance endpoints"""

    def test_expire_requests_with_nothing_due(self, client, admin_headers):
        """Manual sweep with nothing to expire"""
        response = client.post("/api/admin/maintenance/expire-requests", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"expired": [], "failed": []}

    def test_integrity_report(self, client, admin_headers, api_run):
        """Integrity report of a clean store"""
        response = client.get("/api/admin/maintenance/integrity", headers=admin_headers)

        assert response.json()["data"] == {"ok": True, "issues": []}
