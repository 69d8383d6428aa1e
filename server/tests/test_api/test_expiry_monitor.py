# Background expiry monitor tests

import time

from api.expiry_monitor import ExpiryMonitor


def _stale_request(store, request_id, status="open"):
    store.set_document("delivery_requests", request_id, {
        "status": status,
        "expires_at": "2020-01-01T00:00:00.000000Z",
        "candidate_dasher_ids": ["dasher-1"],
    })


class TestExpiryMonitor:
    """Background expiry monitor"""

    def test_run_once(self, store):
        """One sweep expires only open requests"""
        _stale_request(store, "r1")
        _stale_request(store, "r2", status="assigned")

        result = ExpiryMonitor(lambda: store, interval_seconds=60).run_once()

        assert result == {"expired": ["r1"], "failed": []}
        assert store.get_document("delivery_requests", "r2").get("status") == "assigned"

    def test_background_sweep(self, store):
        """The thread sweeps until stopped"""
        _stale_request(store, "r1")
        monitor = ExpiryMonitor(lambda: store, interval_seconds=0.01)

        monitor.start()
        try:
            deadline = time.time() + 5
            while time.time() < deadline:
                if store.get_document("delivery_requests", "r1").get("status") == "expired":
                    break
                time.sleep(0.01)
        finally:
            monitor.stop()

        assert store.get_document("delivery_requests", "r1").get("status") == "expired"
