# Broadcast delivery request API tests

import pytest

MEET_POINT = {"latitude": 44.9727, "longitude": -93.2354, "description": "Library steps"}


@pytest.fixture
def online_dasher(client, dasher_headers):
    response = client.put("/api/dashers/dasher-1/availability", json={"is_online": True},
                          headers=dasher_headers)
    assert response.status_code == 200
    return "dasher-1"


@pytest.fixture
def broadcast(client, online_dasher, buyer_a_headers):
    order = client.post("/api/orders", json={
        "hall_id": "west-hall", "window_type": "lunch", "queue": False,
    }, headers=buyer_a_headers).json()["data"]

    response = client.post("/api/delivery-requests", json={
        "order_id": order["order_id"],
        "hall_id": "west-hall",
        "window_type": "lunch",
        "items": ["Burrito bowl"],
        "meet_point": MEET_POINT,
    }, headers=buyer_a_headers)
    assert response.status_code == 200
    return {"order_id": order["order_id"], "request_id": response.json()["data"]["request_id"]}


class TestAvailability:
    """Dasher availability endpoint"""

    def test_cannot_set_someone_elses_availability(self, client, dasher_headers):
        """Dashers only toggle themselves"""
        response = client.put("/api/dashers/dasher-2/availability", json={"is_online": True},
                              headers=dasher_headers)

        assert response.status_code == 403


class TestBroadcastFlow:
    """Broadcast request endpoints"""

    def test_request_offered(self, client, broadcast, dasher_headers):
        """Online dashers see the offer"""
        offers = client.get("/api/delivery-requests/offers", headers=dasher_headers).json()["data"]

        assert offers["count"] == 1
        assert offers["requests"][0]["id"] == broadcast["request_id"]

    def test_no_dashers_online(self, client, buyer_a_headers):
        """Nobody online is a conflict"""
        order = client.post("/api/orders", json={
            "hall_id": "west-hall", "window_type": "lunch", "queue": False,
        }, headers=buyer_a_headers).json()["data"]

        response = client.post("/api/delivery-requests", json={
            "order_id": order["order_id"], "hall_id": "west-hall", "window_type": "lunch",
            "meet_point": MEET_POINT,
        }, headers=buyer_a_headers)

        assert response.status_code == 409

    def test_hall_mismatch_is_rejected(self, client, online_dasher, buyer_a_headers):
        """The request must name the order's hall and window"""
        order = client.post("/api/orders", json={
            "hall_id": "west-hall", "window_type": "lunch", "queue": False,
        }, headers=buyer_a_headers).json()["data"]

        response = client.post("/api/delivery-requests", json={
            "order_id": order["order_id"], "hall_id": "north-commons", "window_type": "dinner",
            "meet_point": MEET_POINT,
        }, headers=buyer_a_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid-argument"

    def test_accept_and_complete(self, client, broadcast, dasher_headers, store):
        """Accept then complete with the PIN"""
        accepted = client.post(f"/api/delivery-requests/{broadcast['request_id']}/respond",
                               json={"response": "accept"}, headers=dasher_headers)
        assert accepted.status_code == 200
        assert accepted.json()["data"]["status"] == "assigned"

        pin = store.get_document("orders", broadcast["order_id"]).get("pin_code")
        completed = client.post(f"/api/delivery-requests/{broadcast['request_id']}/complete",
                                json={"pin": pin}, headers=dasher_headers)

        assert completed.status_code == 200
        assert completed.json()["data"]["payout_cents"] == 648
        assert store.get_document("orders", broadcast["order_id"]).get("status") == "delivered"

    def test_invalid_response_value(self, client, broadcast, dasher_headers):
        """Unknown responses fail validation"""
        response = client.post(f"/api/delivery-requests/{broadcast['request_id']}/respond",
                               json={"response": "maybe"}, headers=dasher_headers)

        assert response.status_code == 422

    def test_non_candidate_cannot_read(self, client, broadcast, other_dasher_headers, buyer_a_headers):
        """Only the buyer and candidates can read a request"""
        url = f"/api/delivery-requests/{broadcast['request_id']}"

        assert client.get(url, headers=buyer_a_headers).status_code == 200
        assert client.get(url, headers=other_dasher_headers).status_code == 403

    def test_malformed_pin(self, client, broadcast, dasher_headers):
        """A non-numeric PIN fails validation"""
        client.post(f"/api/delivery-requests/{broadcast['request_id']}/respond",
                    json={"response": "accept"}, headers=dasher_headers)

        response = client.post(f"/api/delivery-requests/{broadcast['request_id']}/complete",
                               json={"pin": "12ab"}, headers=dasher_headers)

        assert response.status_code == 422
