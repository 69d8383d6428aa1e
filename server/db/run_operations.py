# Delivery run lifecycle: claim, pickup, PIN-gated delivery and settlement
# Run status changes cascade to every member order and to the copies kept on
# the run, all inside the same transaction

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from utils.timeutils import to_iso, utc_now

from .errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from .manager import Document, DocumentStore, Transaction
from .models import (
    OrderStatus,
    PaymentStatus,
    RunStatus,
    advance_order_status,
    advance_run_status,
)
from .settlement import (
    FeeSchedule,
    compute_settlement,
    read_fee_overrides,
    write_payment_record,
)

logger = logging.getLogger(__name__)

_PIN_SEPARATORS = re.compile(r"[,\s]+")
_PIN_TOKEN = re.compile(r"\d{4,6}")


def tokenize_pins(pin: str) -> List[str]:
    """Split a dasher-entered PIN string on commas and whitespace."""
    return [token for token in _PIN_SEPARATORS.split(pin or "") if token]


class RunOperations:
    """
    Run lifecycle manager

    A run is created when its pair group fills; from then on the dasher who
    claims it drives it to delivery, and the processor report (or an admin)
    settles and closes it.
    """

    def __init__(self, store: DocumentStore, config: Optional[Dict[str, Any]] = None,
                 clock: Optional[Callable] = None):
        self.store = store
        self.schedule = FeeSchedule.from_config(config)
        self.clock = clock or utc_now

    # Helpers

    def _load_run(self, txn: Transaction, run_id: str) -> Document:
        run = txn.get("runs", run_id)
        if run is None:
            raise NotFoundError("Run does not exist")
        return run

    def _load_members(self, txn: Transaction, run: Document) -> List[Document]:
        members = []
        for order_id in run.get("order_ids") or []:
            order = txn.get("orders", order_id)
            if order is None:
                raise FailedPreconditionError(f"Run {run.id} references missing order {order_id}")
            members.append(order)
        return members

    @staticmethod
    def _require_assigned_dasher(run: Document, dasher_id: str):
        if run.get("dasher_id") != dasher_id:
            raise PermissionDeniedError("Cannot update another dasher's run")

    def _cascade(self, txn: Transaction, run: Document, members: List[Document],
                 target: OrderStatus, now: str,
                 extra: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
        """
        Move every member order to `target`

        Validates each hop, buffers the canonical order updates and returns
        the refreshed member copies for the run document.
        """
        changes = {"status": target.value, "updated_at": now, **(extra or {})}
        copies = dict(run.get("member_orders") or {})

        for order in members:
            advance_order_status(order.get("status"), target)
            txn.update("orders", order.id, changes)
            copies[order.id] = {**copies.get(order.id, order.data), **changes}

        return copies

    # Dasher operations

    def claim_run(self, run_id: str, dasher_id: str) -> Dict[str, Any]:
        """
        Claim a ready run for a dasher

        Only one claim can win; a concurrent loser re-reads the run on retry
        and fails with FailedPreconditionError.
        """
        def claim_run_transaction(txn: Transaction):
            run = self._load_run(txn, run_id)
            if run.get("status") != RunStatus.READY_TO_ASSIGN.value:
                raise FailedPreconditionError("Run is not available")
            if dasher_id in (run.get("buyer_ids") or []):
                raise PermissionDeniedError("Cannot deliver a run that contains your own order")
            members = self._load_members(txn, run)

            now = to_iso(self.clock())
            status = advance_run_status(run.get("status"), RunStatus.CLAIMED)
            copies = self._cascade(txn, run, members, OrderStatus.CLAIMED, now,
                                   {"dasher_id": dasher_id})
            txn.update("runs", run.id, {
                "status": status.value,
                "dasher_id": dasher_id,
                "claimed_at": now,
                "member_orders": copies,
            })
            return {"run_id": run.id, "status": status.value, "dasher_id": dasher_id}

        result = self.store.run_transaction(claim_run_transaction)
        logger.info(f"Run {run_id} claimed by dasher {dasher_id}")
        return result

    def mark_picked_up(self, run_id: str, dasher_id: str) -> Dict[str, Any]:
        def mark_picked_up_transaction(txn: Transaction):
            run = self._load_run(txn, run_id)
            self._require_assigned_dasher(run, dasher_id)
            if run.get("status") != RunStatus.CLAIMED.value:
                raise FailedPreconditionError("Run has not been claimed")
            members = self._load_members(txn, run)

            now = to_iso(self.clock())
            status = advance_run_status(run.get("status"), RunStatus.IN_PROGRESS)
            copies = self._cascade(txn, run, members, OrderStatus.IN_PROGRESS, now)
            txn.update("runs", run.id, {
                "status": status.value, "picked_up_at": now, "member_orders": copies,
            })
            return {"run_id": run.id, "status": status.value}

        result = self.store.run_transaction(mark_picked_up_transaction)
        logger.info(f"Run {run_id} picked up by dasher {dasher_id}")
        return result

    def mark_delivered(self, run_id: str, dasher_id: str, pin: str) -> Dict[str, Any]:
        """
        Confirm hand-off with the buyers' PIN and settle the run

        Args:
            run_id: run being delivered
            dasher_id: caller, must be the run's dasher
            pin: one or more PINs separated by commas or whitespace; every
                member order's PIN must be present

        Returns:
            Run status plus the payment id and settled amounts

        Raises:
            InvalidArgumentError: empty input or a token that is not 4 to 6 digits
            PermissionDeniedError: caller is not the assigned dasher
            FailedPreconditionError: run not in progress or a PIN is missing
        """
        tokens = tokenize_pins(pin)

        def mark_delivered_transaction(txn: Transaction):
            run = self._load_run(txn, run_id)
            self._require_assigned_dasher(run, dasher_id)
            if run.get("status") != RunStatus.IN_PROGRESS.value:
                raise FailedPreconditionError("Run is not in progress")
            if not tokens or not all(_PIN_TOKEN.fullmatch(token) for token in tokens):
                raise InvalidArgumentError("Each PIN must be 4 to 6 digits")
            provided = set(tokens)
            members = self._load_members(txn, run)
            fee_overrides = read_fee_overrides(txn)

            if any(order.get("pin_code") not in provided for order in members):
                raise FailedPreconditionError("PIN does not match")

            now_dt = self.clock()
            now = to_iso(now_dt)
            status = advance_run_status(run.get("status"), RunStatus.DELIVERED)
            copies = self._cascade(txn, run, members, OrderStatus.DELIVERED, now)
            txn.update("runs", run.id, {
                "status": status.value, "delivered_at": now, "member_orders": copies,
            })

            settlement = compute_settlement(
                [order.get("price_cents", 0) for order in members],
                run.get("hall_id"), fee_overrides, self.schedule,
            )
            payment_id = write_payment_record(
                txn, settlement,
                dasher_id=dasher_id,
                buyer_ids=[order.get("buyer_id") for order in members],
                now=now_dt,
                run_id=run.id,
            )
            return {
                "run_id": run.id,
                "status": status.value,
                "payment_id": payment_id,
                "amount_cents": settlement.amount_cents,
                "fee_cents": settlement.fee_cents,
                "payout_cents": settlement.payout_cents,
            }

        result = self.store.run_transaction(mark_delivered_transaction)
        logger.info(f"Run {run_id} delivered by {dasher_id}, payment {result['payment_id']} "
                    f"payout {result['payout_cents']} cents")
        return result

    # Cancellation and settlement follow-up

    def cancel_run(self, run_id: str, actor_id: str, is_admin: bool = False,
                   reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a run

        The assigned dasher may back out of a claimed run. Admins may cancel
        any run that is not closed or already cancelled; member orders end
        `cancelledDasher` before pickup and `disputed` once the food is
        picked up, and any payment is cancelled or refunded.
        """
        def cancel_run_transaction(txn: Transaction):
            run = self._load_run(txn, run_id)
            status = RunStatus(run.get("status"))

            if not is_admin:
                self._require_assigned_dasher(run, actor_id)
                if status != RunStatus.CLAIMED:
                    raise FailedPreconditionError("Only a claimed run can be released by its dasher")

            new_status = advance_run_status(status, RunStatus.CANCELLED)
            members = self._load_members(txn, run)
            payments = []
            if status in (RunStatus.DELIVERED, RunStatus.PAID):
                payments = txn.query("payments", [("run_id", "==", run.id)])

            now = to_iso(self.clock())
            copies = run.get("member_orders") or {}
            if status in (RunStatus.READY_TO_ASSIGN, RunStatus.CLAIMED):
                copies = self._cascade(txn, run, members, OrderStatus.CANCELLED_DASHER, now)
            elif status == RunStatus.IN_PROGRESS:
                copies = self._cascade(txn, run, members, OrderStatus.DISPUTED, now)

            payment_status = PaymentStatus.REFUNDED if status == RunStatus.PAID else PaymentStatus.CANCELLED
            for payment in payments:
                txn.update("payments", payment.id, {"status": payment_status.value})

            txn.update("runs", run.id, {
                "status": new_status.value,
                "cancelled_at": now,
                "cancelled_by": actor_id,
                "cancel_reason": reason,
                "member_orders": copies,
            })
            return {"run_id": run.id, "status": new_status.value, "previous_status": status.value}

        result = self.store.run_transaction(cancel_run_transaction)
        logger.info(f"Run {run_id} cancelled by {actor_id} from {result['previous_status']}"
                    f"{f': {reason}' if reason else ''}")
        return result

    def record_payment_outcome(self, payment_id: str, succeeded: bool) -> Dict[str, Any]:
        """
        Apply the payment processor's report for a settlement

        Success marks the payment captured and moves the delivery to `paid`;
        failure leaves the delivery as is and marks the payment pending so a
        later report can settle it.
        """
        def record_payment_outcome_transaction(txn: Transaction):
            payment = txn.get("payments", payment_id)
            if payment is None:
                raise NotFoundError("Payment does not exist")
            if payment.get("status") not in (PaymentStatus.CAPTURED.value, PaymentStatus.PENDING.value):
                raise FailedPreconditionError(f"Payment is {payment.get('status')}")
            if payment.get("settled_at"):
                raise FailedPreconditionError("Payment already settled")

            run = None
            members: List[Document] = []
            if payment.get("run_id"):
                run = self._load_run(txn, payment.get("run_id"))
                if run.get("status") != RunStatus.DELIVERED.value:
                    raise FailedPreconditionError("Run is not awaiting payment")
                members = self._load_members(txn, run)
            elif payment.get("delivery_request_id"):
                request = txn.get("delivery_requests", payment.get("delivery_request_id"))
                if request is None:
                    raise NotFoundError("Delivery request does not exist")
                order = txn.get("orders", request.get("order_id"))
                if order is None:
                    raise NotFoundError("Order does not exist")
                members = [order]

            now = to_iso(self.clock())
            if not succeeded:
                txn.update("payments", payment.id, {"status": PaymentStatus.PENDING.value})
                return {"payment_id": payment.id, "status": PaymentStatus.PENDING.value}

            txn.update("payments", payment.id, {
                "status": PaymentStatus.CAPTURED.value, "settled_at": now,
            })
            if run is not None:
                status = advance_run_status(run.get("status"), RunStatus.PAID)
                copies = self._cascade(txn, run, members, OrderStatus.PAID, now)
                txn.update("runs", run.id, {
                    "status": status.value, "paid_at": now, "member_orders": copies,
                })
            else:
                for order in members:
                    advance_order_status(order.get("status"), OrderStatus.PAID, broadcast=True)
                    txn.update("orders", order.id, {
                        "status": OrderStatus.PAID.value, "updated_at": now,
                    })
            return {"payment_id": payment.id, "status": PaymentStatus.CAPTURED.value}

        result = self.store.run_transaction(record_payment_outcome_transaction)
        logger.info(f"Payment {payment_id} outcome recorded: "
                    f"{'succeeded' if succeeded else 'failed'} -> {result['status']}")
        return result

    def close_run(self, run_id: str) -> Dict[str, Any]:
        def close_run_transaction(txn: Transaction):
            run = self._load_run(txn, run_id)
            if run.get("status") != RunStatus.PAID.value:
                raise FailedPreconditionError("Only a paid run can be closed")
            members = self._load_members(txn, run)

            now = to_iso(self.clock())
            status = advance_run_status(run.get("status"), RunStatus.CLOSED)
            copies = self._cascade(txn, run, members, OrderStatus.CLOSED, now)
            txn.update("runs", run.id, {
                "status": status.value, "closed_at": now, "member_orders": copies,
            })
            return {"run_id": run.id, "status": status.value}

        result = self.store.run_transaction(close_run_transaction)
        logger.info(f"Run {run_id} closed")
        return result
