# Periodic and derived-data jobs: delivery-request expiry sweep and the
# per hall/window live queue snapshot

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from utils.timeutils import from_iso, to_iso, utc_now

from .errors import EngineError
from .manager import DocumentStore, Transaction
from .models import DeliveryRequestStatus, OrderStatus
from .pooling_operations import parse_window

logger = logging.getLogger(__name__)

QUEUED_ORDER_STATUSES = (OrderStatus.REQUESTED.value, OrderStatus.POOLED.value)


def pool_snapshot_id(hall_id: str, window_type: str) -> str:
    return f"{hall_id}_{window_type}"


class MaintenanceOperations:
    def __init__(self, store: DocumentStore, clock: Optional[Callable] = None):
        self.store = store
        self.clock = clock or utc_now

    def expire_stale_requests(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Expire every open delivery request whose deadline has passed

        Each request is expired in its own transaction that re-checks it is
        still open, so an accept committed first is left alone. A failure on
        one request is logged and the sweep moves on; the next run retries it.

        Returns:
            {"expired": [...ids], "failed": [...ids]}
        """
        cutoff = to_iso(now or self.clock())
        stale = self.store.query_documents("delivery_requests", [
            ("status", "==", DeliveryRequestStatus.OPEN.value),
            ("expires_at", "<=", cutoff),
        ])

        expired, failed = [], []
        for request in stale:
            def expire_request_transaction(txn: Transaction, request_id=request.id):
                current = txn.get("delivery_requests", request_id)
                if current is None or current.get("status") != DeliveryRequestStatus.OPEN.value:
                    return False
                txn.update("delivery_requests", request_id, {
                    "status": DeliveryRequestStatus.EXPIRED.value,
                    "updated_at": to_iso(self.clock()),
                })
                return True

            try:
                if self.store.run_transaction(expire_request_transaction):
                    expired.append(request.id)
            except EngineError as e:
                logger.warning(f"Could not expire delivery request {request.id}: {str(e)}")
                failed.append(request.id)

        logger.info(f"Expired {len(expired)} delivery requests ({len(failed)} failed)")
        return {"expired": expired, "failed": failed}

    def publish_live_pool_snapshot(self, hall_id: str, window_type: str) -> Dict[str, Any]:
        """
        Recompute the queue size and mean wait for one hall/window

        Reads only queued orders and overwrites the hall_pools document.
        """
        window = parse_window(window_type)
        now = self.clock()
        queued = self.store.query_documents("orders", [
            ("hall_id", "==", hall_id),
            ("window_type", "==", window.value),
            ("status", "in", QUEUED_ORDER_STATUSES),
        ])

        waits = [
            max((now - from_iso(order.get("created_at"))).total_seconds(), 0)
            for order in queued if order.get("created_at")
        ]
        snapshot = {
            "hall_id": hall_id,
            "window_type": window.value,
            "queue_size": len(queued),
            "average_wait_seconds": round(sum(waits) / len(waits)) if waits else 0,
            "updated_at": to_iso(now),
        }
        self.store.set_document("hall_pools", pool_snapshot_id(hall_id, window.value), snapshot, merge=False)
        logger.debug(f"Live pool {hall_id}/{window.value}: {snapshot['queue_size']} queued")
        return snapshot
