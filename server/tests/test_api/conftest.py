# API test fixtures: a TestClient bound to the in-memory store and tokens
# for buyers, dashers and an admin

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.auth.routes import get_store, jwt_manager


def make_headers(uid: str, is_admin: bool = False):
    token = jwt_manager.create_access_token({"uid": uid, "is_admin": is_admin})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(store, halls):
    """Client whose requests all share the test store"""
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def buyer_a_headers():
    return make_headers("buyer-a")


@pytest.fixture
def buyer_b_headers():
    return make_headers("buyer-b")


@pytest.fixture
def dasher_headers():
    return make_headers("dasher-1")


@pytest.fixture
def other_dasher_headers():
    return make_headers("dasher-2")


@pytest.fixture
def admin_headers():
    return make_headers("admin-1", is_admin=True)


@pytest.fixture
def api_run(client, buyer_a_headers, buyer_b_headers):
    """Two dinner orders placed through the API and pooled into a run"""
    first = client.post("/api/orders", json={"hall_id": "north-commons", "window_type": "dinner"},
                        headers=buyer_a_headers)
    second = client.post("/api/orders", json={"hall_id": "north-commons", "window_type": "dinner"},
                         headers=buyer_b_headers)
    assert first.status_code == 200
    assert second.status_code == 200
    data = second.json()["data"]
    return {
        "run_id": data["run_id"],
        "pin": data["pin_code"],
        "order_ids": [first.json()["data"]["order_id"], data["order_id"]],
    }
