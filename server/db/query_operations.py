# Read paths for buyers, dashers and the live queue display
# Plain reads outside transactions; results are returned as JSON-ready dicts

from typing import Any, Dict, List, Optional

from .errors import InvalidArgumentError, NotFoundError, PermissionDeniedError
from .maintenance_operations import pool_snapshot_id
from .manager import Document, DocumentStore
from .models import DeliveryRequestStatus, RunStatus
from .pooling_operations import parse_window

ACTIVE_RUN_STATUSES = [
    RunStatus.CLAIMED.value, RunStatus.IN_PROGRESS.value, RunStatus.DELIVERED.value,
]


def _as_dicts(docs: List[Document]) -> List[Dict[str, Any]]:
    return [doc.to_dict() for doc in docs]


class QueryOperations:
    """
    Query operations

    Buyers see their own orders and payments, dashers see available runs,
    their own runs, payouts and open offers.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def _validate_limit(self, limit: int, min_limit: int, max_limit: int):
        if limit < min_limit or limit > max_limit:
            raise InvalidArgumentError(f"limit must be between {min_limit} and {max_limit}")

    def _require(self, collection: str, doc_id: str, label: str) -> Document:
        doc = self.store.get_document(collection, doc_id)
        if doc is None:
            raise NotFoundError(f"{label} does not exist")
        return doc

    # 1. Single documents

    def get_order(self, order_id: str, caller_id: str, is_admin: bool = False) -> Dict[str, Any]:
        """
        Read one order

        Visible to its buyer, the dasher delivering it and admins.
        """
        order = self._require("orders", order_id, "Order")
        if not is_admin and caller_id not in (order.get("buyer_id"), order.get("dasher_id")):
            raise PermissionDeniedError("Cannot read another user's order")
        return order.to_dict()

    def get_run(self, run_id: str, caller_id: str, is_admin: bool = False) -> Dict[str, Any]:
        """
        Read one run

        Unclaimed runs are visible to every dasher; after the claim only the
        run's dasher, its buyers and admins can read it.
        """
        run = self._require("runs", run_id, "Run")
        if (not is_admin and run.get("status") != RunStatus.READY_TO_ASSIGN.value
                and caller_id != run.get("dasher_id")
                and caller_id not in (run.get("buyer_ids") or [])):
            raise PermissionDeniedError("Cannot read this run")
        return run.to_dict()

    def get_delivery_request(self, request_id: str, caller_id: str, is_admin: bool = False) -> Dict[str, Any]:
        request = self._require("delivery_requests", request_id, "Delivery request")
        allowed = {request.get("buyer_id"), request.get("assigned_dasher_id")}
        allowed.update(request.get("candidate_dasher_ids") or [])
        if not is_admin and caller_id not in allowed:
            raise PermissionDeniedError("Cannot read this delivery request")
        return request.to_dict()

    # 2. Buyer listings

    def orders_for_buyer(self, buyer_id: str, limit: int = 20) -> Dict[str, Any]:
        """
        Most recent orders of one buyer

        Args:
            buyer_id: buyer
            limit: 10-50

        Returns:
            {"orders": [...], "count": n}
        """
        self._validate_limit(limit, 10, 50)
        orders = self.store.query_documents(
            "orders", [("buyer_id", "==", buyer_id)],
            order_by="created_at", descending=True, limit=limit,
        )
        return {"orders": _as_dicts(orders), "count": len(orders)}

    def payments_for_buyer(self, buyer_id: str, limit: int = 20) -> Dict[str, Any]:
        self._validate_limit(limit, 1, 50)
        payments = self.store.query_documents(
            "payments", [("buyer_ids", "array-contains", buyer_id)],
            order_by="created_at", descending=True, limit=limit,
        )
        return {"payments": _as_dicts(payments), "count": len(payments)}

    # 3. Dasher listings

    def available_runs(self, hall_id: Optional[str] = None, limit: int = 10) -> Dict[str, Any]:
        """Runs waiting for a dasher, newest first, optionally for one hall."""
        self._validate_limit(limit, 1, 50)
        filters = [("status", "==", RunStatus.READY_TO_ASSIGN.value)]
        if hall_id:
            filters.append(("hall_id", "==", hall_id))
        runs = self.store.query_documents("runs", filters, order_by="created_at",
                                          descending=True, limit=limit)
        return {"runs": _as_dicts(runs), "count": len(runs)}

    def runs_for_dasher(self, dasher_id: str, active_only: bool = False, limit: int = 20) -> Dict[str, Any]:
        self._validate_limit(limit, 1, 50)
        filters = [("dasher_id", "==", dasher_id)]
        if active_only:
            filters.append(("status", "in", ACTIVE_RUN_STATUSES))
        runs = self.store.query_documents("runs", filters, order_by="claimed_at",
                                          descending=True, limit=limit)
        return {"runs": _as_dicts(runs), "count": len(runs)}

    def payouts_for_dasher(self, dasher_id: str, limit: int = 20) -> Dict[str, Any]:
        """Payment records of one dasher with the total payout across them."""
        self._validate_limit(limit, 1, 50)
        payments = self.store.query_documents(
            "payments", [("dasher_id", "==", dasher_id)],
            order_by="created_at", descending=True, limit=limit,
        )
        return {
            "payouts": _as_dicts(payments),
            "count": len(payments),
            "total_payout_cents": sum(p.get("payout_cents", 0) for p in payments),
        }

    def open_requests_for_dasher(self, dasher_id: str) -> Dict[str, Any]:
        requests = self.store.query_documents("delivery_requests", [
            ("candidate_dasher_ids", "array-contains", dasher_id),
            ("status", "==", DeliveryRequestStatus.OPEN.value),
        ], order_by="requested_at", descending=True)
        return {"requests": _as_dicts(requests), "count": len(requests)}

    # 4. Live queue

    def get_live_pool(self, hall_id: str, window_type: str) -> Dict[str, Any]:
        """Last published snapshot, or an empty queue when none exists yet."""
        window = parse_window(window_type)
        snapshot = self.store.get_document("hall_pools", pool_snapshot_id(hall_id, window.value))
        if snapshot is None:
            return {
                "hall_id": hall_id,
                "window_type": window.value,
                "queue_size": 0,
                "average_wait_seconds": 0,
                "updated_at": None,
            }
        return dict(snapshot.data)
