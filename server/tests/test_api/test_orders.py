# Order API tests

class TestCreateOrder:
    """Order creation endpoint"""

    def test_create_pooled_order(self, client, buyer_a_headers, store):
        """A new order is pooled"""
        response = client.post("/api/orders", json={
            "hall_id": "north-commons",
            "window_type": "dinner",
            "meet_point": "Library steps",
        }, headers=buyer_a_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "pooled"
        assert body["data"]["price_cents"] == 925
        assert body["data"]["run_id"] is None
        assert "timestamp" in body

    def test_second_buyer_fills_run(self, api_run, store):
        """The second buyer gets a run"""
        run = store.get_document("runs", api_run["run_id"])

        assert run.get("status") == "readyToAssign"
        assert run.get("estimated_payout_cents") == 1850

    def test_live_pool_refreshed_after_order(self, client, buyer_a_headers):
        """The live pool snapshot is refreshed"""
        client.post("/api/orders", json={"hall_id": "west-hall", "window_type": "lunch"},
                    headers=buyer_a_headers)

        response = client.get("/api/orders/pools/west-hall/lunch", headers=buyer_a_headers)

        assert response.status_code == 200
        assert response.json()["data"]["queue_size"] == 1

    def test_unknown_hall_is_not_found(self, client, buyer_a_headers):
        """Unknown hall is 404"""
        response = client.post("/api/orders", json={"hall_id": "south-annex", "window_type": "dinner"},
                               headers=buyer_a_headers)

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "not-found"
        assert body["data"] is None

    def test_bad_window_is_rejected(self, client, buyer_a_headers):
        """Unknown window fails validation"""
        response = client.post("/api/orders", json={"hall_id": "west-hall", "window_type": "brunch"},
                               headers=buyer_a_headers)

        assert response.status_code == 422

    def test_requires_token(self, client):
        """No token gets 401"""
        response = client.post("/api/orders", json={"hall_id": "west-hall", "window_type": "lunch"})

        assert response.status_code == 401
        assert response.json()["code"] == "unauthenticated"


class TestOrderLifecycle:
    """Queue, cancel and read"""

    def test_queue_then_cancel(self, client, buyer_a_headers, store):
        """Queue a requested order then cancel it"""
        created = client.post("/api/orders", json={
            "hall_id": "west-hall", "window_type": "dinner", "queue": False,
        }, headers=buyer_a_headers).json()["data"]
        assert created["status"] == "requested"

        queued = client.post(f"/api/orders/{created['order_id']}/queue", headers=buyer_a_headers)
        assert queued.status_code == 200
        assert queued.json()["data"]["status"] == "pooled"

        cancelled = client.post(f"/api/orders/{created['order_id']}/cancel", headers=buyer_a_headers)
        assert cancelled.status_code == 200
        assert cancelled.json()["data"]["status"] == "cancelledBuyer"
        group = store.get_document("pair_groups", queued.json()["data"]["pair_group_id"])
        assert group.get("filled_count") == 0

    def test_cancel_after_fill_conflicts(self, client, api_run, buyer_a_headers):
        """Cancel after fill is a conflict"""
        response = client.post(f"/api/orders/{api_run['order_ids'][0]}/cancel", headers=buyer_a_headers)

        assert response.status_code == 409
        assert response.json()["code"] == "failed-precondition"

    def test_cancel_other_buyers_order(self, client, api_run, buyer_b_headers):
        """Cancel someone else's order is 403"""
        response = client.post(f"/api/orders/{api_run['order_ids'][0]}/cancel", headers=buyer_b_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "permission-denied"

    def test_get_and_list_orders(self, client, api_run, buyer_a_headers, buyer_b_headers):
        """Read one order and the list"""
        order_id = api_run["order_ids"][0]

        assert client.get(f"/api/orders/{order_id}", headers=buyer_a_headers).json()["data"]["id"] == order_id
        assert client.get(f"/api/orders/{order_id}", headers=buyer_b_headers).status_code == 403

        listed = client.get("/api/orders", headers=buyer_a_headers).json()["data"]
        assert listed["count"] == 1
        assert listed["orders"][0]["id"] == order_id

    def test_list_limit_validation(self, client, buyer_a_headers):
        """Limit is bounded"""
        assert client.get("/api/orders?limit=5", headers=buyer_a_headers).status_code == 422
