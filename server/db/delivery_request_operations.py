# On-demand broadcast matching between one buyer order and the online dashers
# Independent of pair groups: a request is offered to every online dasher and
# the first accept that commits wins

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from utils.timeutils import to_iso, utc_now

from .errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from .manager import DocumentStore, Transaction, new_document_id
from .models import (
    DeliveryRequestStatus,
    DeliveryResponse,
    OrderStatus,
    advance_order_status,
)
from .pooling_operations import generate_pin, load_owned_order, parse_window
from .settlement import (
    FeeSchedule,
    compute_settlement,
    read_fee_overrides,
    write_payment_record,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TTL_MINUTES = 10
LIVE_REQUEST_STATUSES = (DeliveryRequestStatus.OPEN.value, DeliveryRequestStatus.ASSIGNED.value)


class DeliveryRequestOperations:
    """Broadcast delivery-request negotiator."""

    def __init__(self, store: DocumentStore, config: Optional[Dict[str, Any]] = None,
                 clock: Optional[Callable] = None):
        self.store = store
        broadcast = (config or {}).get("broadcast", {})
        self.request_ttl = timedelta(
            minutes=broadcast.get("request_ttl_minutes", DEFAULT_REQUEST_TTL_MINUTES)
        )
        self.schedule = FeeSchedule.from_config(config)
        self.clock = clock or utc_now

    def create_request(self, order_id: str, buyer_id: str, hall_id: str, window_type: str,
                       items: List[str], meet_point: Dict[str, Any],
                       instructions: Optional[str] = None) -> Dict[str, Any]:
        """
        Broadcast a single order to every online dasher

        Args:
            order_id: buyer's order, still `requested` and not pooled
            buyer_id: caller
            hall_id: pickup hall
            window_type: service window
            items: requested menu items
            meet_point: {latitude, longitude, description}
            instructions: optional free text for the dasher

        Returns:
            {"request_id", "candidate_count", "expires_at"}

        Raises:
            InvalidArgumentError: hall or window differs from the order
            FailedPreconditionError: order not eligible or no dasher online
        """
        window = parse_window(window_type)

        def create_request_transaction(txn: Transaction):
            order = load_owned_order(txn, order_id, buyer_id, "create a delivery request for")
            if order.get("status") != OrderStatus.REQUESTED.value or order.get("pair_group_id"):
                raise FailedPreconditionError("Order is not eligible for a delivery request")
            if order.get("hall_id") != hall_id or order.get("window_type") != window.value:
                raise InvalidArgumentError("Hall and window must match the order")
            if order.get("delivery_request_id"):
                existing = txn.get("delivery_requests", order.get("delivery_request_id"))
                if existing and existing.get("status") in LIVE_REQUEST_STATUSES:
                    raise FailedPreconditionError("Order already has an active delivery request")

            online = txn.query("dasher_availability", [("is_online", "==", True)])
            candidates = [doc.id for doc in online if doc.id != buyer_id]
            if not candidates:
                raise FailedPreconditionError("No dashers currently available")

            now_dt = self.clock()
            now = to_iso(now_dt)
            expires_at = to_iso(now_dt + self.request_ttl)
            request_id = new_document_id()
            txn.create("delivery_requests", {
                "order_id": order.id,
                "buyer_id": buyer_id,
                "hall_id": order.get("hall_id"),
                "window_type": order.get("window_type"),
                "status": DeliveryRequestStatus.OPEN.value,
                "requested_at": now,
                "expires_at": expires_at,
                "items": list(items),
                "instructions": instructions or "",
                "meet_point": meet_point,
                "candidate_dasher_ids": candidates,
                "assigned_dasher_id": None,
                "completed_at": None,
                "updated_at": now,
            }, doc_id=request_id)
            txn.update("orders", order.id, {
                "delivery_request_id": request_id,
                "pin_code": order.get("pin_code") or generate_pin(),
                "updated_at": now,
            })
            return {"request_id": request_id, "candidate_count": len(candidates), "expires_at": expires_at}

        result = self.store.run_transaction(create_request_transaction)
        logger.info(f"Delivery request {result['request_id']} for order {order_id} "
                    f"offered to {result['candidate_count']} dashers")
        return result

    def respond(self, request_id: str, dasher_id: str, response: str) -> Dict[str, Any]:
        """
        Accept or decline an open request

        The first accept to commit assigns the request; any other accept
        re-reads a non-open request on retry and fails. The last decline
        expires the request.
        """
        try:
            response = DeliveryResponse(response)
        except ValueError:
            raise InvalidArgumentError(f"Unknown response: {response!r}")

        def respond_transaction(txn: Transaction):
            request = txn.get("delivery_requests", request_id)
            if request is None:
                raise NotFoundError("Delivery request not found")
            if request.get("status") != DeliveryRequestStatus.OPEN.value:
                raise FailedPreconditionError("Request is no longer open")
            candidates = list(request.get("candidate_dasher_ids") or [])
            if dasher_id not in candidates:
                raise PermissionDeniedError("Not eligible to respond to this request")

            now = to_iso(self.clock())
            if response == DeliveryResponse.ACCEPT:
                order = txn.get("orders", request.get("order_id"))
                if order is None:
                    raise NotFoundError("Associated order not found")
                if order.get("status") != OrderStatus.REQUESTED.value:
                    raise FailedPreconditionError("Order is no longer waiting for a dasher")

                txn.update("delivery_requests", request.id, {
                    "status": DeliveryRequestStatus.ASSIGNED.value,
                    "assigned_dasher_id": dasher_id,
                    "updated_at": now,
                })
                txn.update("orders", order.id, {"dasher_id": dasher_id, "updated_at": now})
                return {"request_id": request.id, "status": DeliveryRequestStatus.ASSIGNED.value}

            remaining = [candidate for candidate in candidates if candidate != dasher_id]
            changes = {"candidate_dasher_ids": remaining, "updated_at": now}
            if not remaining:
                changes["status"] = DeliveryRequestStatus.EXPIRED.value
            txn.update("delivery_requests", request.id, changes)
            return {"request_id": request.id, "status": changes.get("status", request.get("status"))}

        result = self.store.run_transaction(respond_transaction)
        logger.info(f"Dasher {dasher_id} answered {response.value} to request {request_id}: {result['status']}")
        return result

    def complete(self, request_id: str, dasher_id: str, pin: str) -> Dict[str, Any]:
        """
        Confirm hand-off of a broadcast order with its PIN and settle it

        Raises:
            PermissionDeniedError: caller is not the assigned dasher
            FailedPreconditionError: request not assigned or wrong PIN
        """
        pin = (pin or "").strip()

        def complete_transaction(txn: Transaction):
            request = txn.get("delivery_requests", request_id)
            if request is None:
                raise NotFoundError("Delivery request not found")
            if request.get("assigned_dasher_id") != dasher_id:
                raise PermissionDeniedError("Not assigned to this delivery request")
            if request.get("status") != DeliveryRequestStatus.ASSIGNED.value:
                raise FailedPreconditionError("Delivery request is not in progress")

            order = txn.get("orders", request.get("order_id"))
            if order is None:
                raise NotFoundError("Associated order not found")
            fee_overrides = read_fee_overrides(txn)

            if not pin or order.get("pin_code") != pin:
                raise FailedPreconditionError("Invalid PIN code")

            now_dt = self.clock()
            now = to_iso(now_dt)
            status = advance_order_status(order.get("status"), OrderStatus.DELIVERED, broadcast=True)
            txn.update("delivery_requests", request.id, {
                "status": DeliveryRequestStatus.COMPLETED.value,
                "completed_at": now,
                "updated_at": now,
            })
            txn.update("orders", order.id, {
                "status": status.value, "delivered_at": now, "updated_at": now,
            })

            settlement = compute_settlement(
                [order.get("price_cents", 0)], order.get("hall_id"), fee_overrides, self.schedule,
            )
            payment_id = write_payment_record(
                txn, settlement,
                dasher_id=dasher_id,
                buyer_ids=[order.get("buyer_id")],
                now=now_dt,
                delivery_request_id=request.id,
            )
            return {
                "request_id": request.id,
                "status": DeliveryRequestStatus.COMPLETED.value,
                "payment_id": payment_id,
                "payout_cents": settlement.payout_cents,
            }

        result = self.store.run_transaction(complete_transaction)
        logger.info(f"Delivery request {request_id} completed by {dasher_id}, "
                    f"payment {result['payment_id']}")
        return result

    def update_dasher_availability(self, dasher_id: str, caller_id: str, is_online: bool) -> Dict[str, Any]:
        if dasher_id != caller_id:
            raise PermissionDeniedError("Dashers can only update their own availability")

        now = to_iso(self.clock())
        self.store.set_document("dasher_availability", dasher_id, {
            "is_online": bool(is_online),
            "updated_at": now,
        })
        logger.info(f"Dasher {dasher_id} is now {'online' if is_online else 'offline'}")
        return {"dasher_id": dasher_id, "is_online": bool(is_online), "updated_at": now}
