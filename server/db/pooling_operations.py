# Order creation, pair-group pooling and buyer cancellation
# Every operation is the body of a store transaction and re-validates its
# preconditions on each attempt

import logging
import secrets
from typing import Any, Callable, Dict, List, Optional

from utils.timeutils import to_iso, utc_now

from .errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from .manager import Document, DocumentStore, Transaction, new_document_id
from .models import (
    BUYER_CANCELLABLE_STATUSES,
    DeliveryRequestStatus,
    OrderStatus,
    PairGroupStatus,
    RunStatus,
    ServiceWindow,
    advance_order_path,
    advance_order_status,
    is_terminal_order,
)
from .settlement import FeeSchedule, compute_buyer_price_cents

logger = logging.getLogger(__name__)

DEFAULT_TARGET_SIZE = 2


def generate_pin() -> str:
    """Six-digit handoff PIN."""
    return str(100000 + secrets.randbelow(900000))


def parse_window(window_type: Any) -> ServiceWindow:
    try:
        return ServiceWindow(window_type)
    except ValueError:
        raise InvalidArgumentError(f"Unknown service window: {window_type!r}")


def load_owned_order(txn: Transaction, order_id: str, caller_id: str, action: str) -> Document:
    """
    Read an order and check the caller is its buyer

    Raises:
        NotFoundError: the order does not exist
        PermissionDeniedError: the caller is someone else
    """
    order = txn.get("orders", order_id)
    if order is None:
        raise NotFoundError("Order does not exist")
    if order.get("buyer_id") != caller_id:
        raise PermissionDeniedError(f"Cannot {action} another user's order")
    return order


class PoolingOperations:
    """
    Pair group manager

    Buyers for the same hall and service window are pooled into groups of
    `target_size`; the join that fills a group creates the group's Run in
    the same transaction.
    """

    def __init__(self, store: DocumentStore, config: Optional[Dict[str, Any]] = None,
                 clock: Optional[Callable] = None):
        self.store = store
        self.target_size = (config or {}).get("pooling", {}).get("target_size", DEFAULT_TARGET_SIZE)
        self.schedule = FeeSchedule.from_config(config)
        self.clock = clock or utc_now

    def create_order(self, buyer_id: str, hall_id: str, window_type: str,
                     meet_point: Optional[str] = None, pickup_notes: Optional[str] = None,
                     queue: bool = True) -> Dict[str, Any]:
        """
        Create a buyer order priced from the hall's base price

        Args:
            buyer_id: authenticated buyer
            hall_id: dining hall
            window_type: breakfast / lunch / dinner
            meet_point: optional handoff location
            pickup_notes: optional notes for the dasher
            queue: also assign the order to a pair group in the same transaction

        Returns:
            Order summary (id, status, price, group and PIN when pooled)
        """
        window = parse_window(window_type)

        def create_order_transaction(txn: Transaction):
            hall = txn.get("dining_halls", hall_id)
            if hall is None:
                raise NotFoundError("Dining hall not found")
            base_price = (hall.get("prices") or {}).get(window.value)
            if base_price is None:
                raise FailedPreconditionError(f"Dining hall {hall_id} has no {window.value} price")

            now = to_iso(self.clock())
            order_id = new_document_id()
            order = {
                "buyer_id": buyer_id,
                "hall_id": hall_id,
                "window_type": window.value,
                "status": OrderStatus.REQUESTED.value,
                "price_cents": compute_buyer_price_cents(base_price, self.schedule),
                "pair_group_id": None,
                "pin_code": None,
                "delivery_request_id": None,
                "dasher_id": None,
                "meet_point": meet_point,
                "pickup_notes": pickup_notes,
                "created_at": now,
                "updated_at": now,
            }
            if queue:
                return self._assign_to_pool(txn, order_id, order, is_new=True)

            txn.create("orders", order, doc_id=order_id)
            return self._summary(order_id, order)

        result = self.store.run_transaction(create_order_transaction)
        logger.info(f"Order {result['order_id']} created for {buyer_id} at {hall_id}/{window.value}: "
                    f"{result['status']}")
        return result

    def queue_order(self, order_id: str, caller_id: str) -> Dict[str, Any]:
        """
        Assign a `requested` order to the open pair group for its hall/window

        Raises:
            NotFoundError: unknown order
            PermissionDeniedError: caller is not the buyer
            FailedPreconditionError: order not `requested`, already on the
                broadcast path, or the group turned out to be full
        """
        def queue_order_transaction(txn: Transaction):
            order = load_owned_order(txn, order_id, caller_id, "queue")
            if order.get("status") != OrderStatus.REQUESTED.value:
                raise FailedPreconditionError("Order is not waiting to be pooled")

            request_id = order.get("delivery_request_id")
            if request_id:
                request = txn.get("delivery_requests", request_id)
                if request and request.get("status") in (
                    DeliveryRequestStatus.OPEN.value, DeliveryRequestStatus.ASSIGNED.value
                ):
                    raise FailedPreconditionError("Order has an active delivery request")

            return self._assign_to_pool(txn, order.id, dict(order.data), is_new=False)

        result = self.store.run_transaction(queue_order_transaction)
        logger.info(f"Order {order_id} queued into group {result['pair_group_id']}: {result['status']}")
        return result

    def _assign_to_pool(self, txn: Transaction, order_id: str, order: Dict[str, Any],
                        is_new: bool) -> Dict[str, Any]:
        hall_id = order["hall_id"]
        window_type = order["window_type"]
        now = to_iso(self.clock())

        # Reads
        open_groups = txn.query("pair_groups", [
            ("hall_id", "==", hall_id),
            ("window_type", "==", window_type),
            ("status", "==", PairGroupStatus.OPEN.value),
        ], order_by="created_at", limit=1)

        if open_groups:
            group_id = open_groups[0].id
            group = dict(open_groups[0].data)
        else:
            group_id = new_document_id()
            group = {
                "hall_id": hall_id,
                "window_type": window_type,
                "target_size": self.target_size,
                "filled_count": 0,
                "status": PairGroupStatus.OPEN.value,
                "pin": None,
                "run_id": None,
                "created_at": now,
            }

        target_size = group["target_size"]
        if group["filled_count"] >= target_size:
            raise FailedPreconditionError("Pair group full")

        pin = group.get("pin") or generate_pin()
        filled_count = group["filled_count"] + 1
        fills_group = filled_count >= target_size

        members: List[Document] = []
        if fills_group and open_groups:
            members = txn.query("orders", [
                ("pair_group_id", "==", group_id),
                ("status", "==", OrderStatus.POOLED.value),
            ])

        # Writes
        if fills_group:
            order["status"] = advance_order_path(
                order["status"], OrderStatus.POOLED, OrderStatus.READY_TO_ASSIGN
            ).value
        else:
            order["status"] = advance_order_status(order["status"], OrderStatus.POOLED).value
        order.update({"pair_group_id": group_id, "pin_code": pin, "updated_at": now})

        group.update({"filled_count": filled_count, "pin": pin})
        run_id = None

        if fills_group:
            run_id = new_document_id()
            member_orders = {order_id: dict(order)}
            for member in members:
                copy = dict(member.data)
                copy.update({
                    "status": advance_order_status(copy["status"], OrderStatus.READY_TO_ASSIGN).value,
                    "pin_code": pin,
                    "updated_at": now,
                })
                member_orders[member.id] = copy
                txn.update("orders", member.id, {
                    "status": copy["status"], "pin_code": pin, "updated_at": now,
                })

            order_ids = sorted(member_orders)
            txn.create("runs", {
                "hall_id": hall_id,
                "window_type": window_type,
                "pair_group_id": group_id,
                "status": RunStatus.READY_TO_ASSIGN.value,
                "dasher_id": None,
                "estimated_payout_cents": sum(m["price_cents"] for m in member_orders.values()),
                "delivery_pin": pin,
                "order_ids": order_ids,
                "buyer_ids": [member_orders[oid]["buyer_id"] for oid in order_ids],
                "member_orders": member_orders,
                "created_at": now,
                "claimed_at": None,
                "picked_up_at": None,
                "delivered_at": None,
                "paid_at": None,
                "closed_at": None,
                "cancelled_at": None,
            }, doc_id=run_id)
            group.update({"status": PairGroupStatus.FILLED.value, "run_id": run_id})

        txn.set("pair_groups", group_id, group)
        if is_new:
            txn.create("orders", order, doc_id=order_id)
        else:
            txn.set("orders", order_id, order)

        summary = self._summary(order_id, order)
        summary["run_id"] = run_id
        return summary

    def cancel_order(self, order_id: str, caller_id: str) -> Dict[str, Any]:
        """
        Buyer cancellation, allowed only while `requested` or `pooled`

        A pooled order gives its slot back to the still-open group; an open
        delivery request for the order is expired with it.
        """
        def cancel_order_transaction(txn: Transaction):
            order = load_owned_order(txn, order_id, caller_id, "cancel")
            status = OrderStatus(order.get("status"))
            if is_terminal_order(status):
                raise FailedPreconditionError(f"Order is already {status.value}")
            if status not in BUYER_CANCELLABLE_STATUSES:
                raise FailedPreconditionError("Order cannot be cancelled")
            if order.get("dasher_id"):
                raise FailedPreconditionError("Order already has a dasher assigned")

            group = None
            if status == OrderStatus.POOLED and order.get("pair_group_id"):
                group = txn.get("pair_groups", order.get("pair_group_id"))

            request = None
            if order.get("delivery_request_id"):
                request = txn.get("delivery_requests", order.get("delivery_request_id"))

            now = to_iso(self.clock())
            new_status = advance_order_status(status, OrderStatus.CANCELLED_BUYER)
            txn.update("orders", order.id, {
                "status": new_status.value, "cancelled_at": now, "updated_at": now,
            })

            if group and group.get("status") == PairGroupStatus.OPEN.value and group.get("filled_count", 0) > 0:
                txn.update("pair_groups", group.id, {"filled_count": group.get("filled_count") - 1})

            if request and request.get("status") == DeliveryRequestStatus.OPEN.value:
                txn.update("delivery_requests", request.id, {
                    "status": DeliveryRequestStatus.EXPIRED.value, "updated_at": now,
                })

            return self._summary(order.id, {**order.data, "status": new_status.value})

        result = self.store.run_transaction(cancel_order_transaction)
        logger.info(f"Order {order_id} cancelled by buyer")
        return result

    @staticmethod
    def _summary(order_id: str, order: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "order_id": order_id,
            "status": order["status"],
            "hall_id": order["hall_id"],
            "window_type": order["window_type"],
            "price_cents": order["price_cents"],
            "pair_group_id": order.get("pair_group_id"),
            "pin_code": order.get("pin_code"),
        }
