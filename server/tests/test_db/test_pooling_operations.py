# Pooling operation tests: order creation, pair-group fill and buyer cancel

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from db.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)


class TestCreateOrder:
    """Order creation"""

    def test_first_order_opens_group(self, pooling_ops, store):
        """The first buyer opens a group and gets its PIN"""
        result = pooling_ops.create_order("buyer-a", "north-commons", "dinner")

        assert result["status"] == "pooled"
        assert result["price_cents"] == 925
        assert result["run_id"] is None
        assert len(result["pin_code"]) == 6

        group = store.get_document("pair_groups", result["pair_group_id"])
        assert group.get("status") == "open"
        assert group.get("filled_count") == 1
        assert group.get("target_size") == 2
        assert group.get("pin") == result["pin_code"]

    def test_price_per_window(self, pooling_ops):
        """Price follows the window"""
        assert pooling_ops.create_order("buyer-a", "north-commons", "lunch")["price_cents"] == 800
        assert pooling_ops.create_order("buyer-a", "north-commons", "breakfast")["price_cents"] == 650

    def test_without_queue_stays_requested(self, pooling_ops, store):
        """An unqueued order stays requested"""
        result = pooling_ops.create_order("buyer-a", "west-hall", "lunch",
                                          meet_point="Library steps", queue=False)

        assert result["status"] == "requested"
        assert result["pair_group_id"] is None
        order = store.get_document("orders", result["order_id"])
        assert order.get("meet_point") == "Library steps"
        assert store.query_documents("pair_groups") == []

    def test_unknown_hall(self, pooling_ops):
        """Unknown hall"""
        with pytest.raises(NotFoundError):
            pooling_ops.create_order("buyer-a", "south-annex", "dinner")

    def test_window_without_price(self, pooling_ops):
        """Hall without a price for the window"""
        with pytest.raises(FailedPreconditionError):
            pooling_ops.create_order("buyer-a", "west-hall", "breakfast")

    def test_unknown_window(self, pooling_ops):
        """Unknown window name"""
        with pytest.raises(InvalidArgumentError):
            pooling_ops.create_order("buyer-a", "west-hall", "brunch")


class TestGroupFill:
    """Pair group fill and run creation"""

    def test_second_join_creates_run(self, filled_run, store):
        """The second buyer fills the group and creates the run"""
        run = store.get_document("runs", filled_run["run_id"])

        assert run.get("status") == "readyToAssign"
        assert run.get("hall_id") == "north-commons"
        assert run.get("order_ids") == sorted(filled_run["order_ids"])
        assert sorted(run.get("buyer_ids")) == ["buyer-a", "buyer-b"]
        assert run.get("estimated_payout_cents") == 1850
        assert run.get("delivery_pin") == filled_run["pin"]
        assert run.get("dasher_id") is None

        group = store.get_document("pair_groups", run.get("pair_group_id"))
        assert group.get("status") == "filled"
        assert group.get("filled_count") == 2
        assert group.get("run_id") == filled_run["run_id"]

    def test_members_ready_with_shared_pin(self, filled_run, store):
        """Both members are ready and share the PIN"""
        run = store.get_document("runs", filled_run["run_id"])

        for order_id in filled_run["order_ids"]:
            order = store.get_document("orders", order_id)
            assert order.get("status") == "readyToAssign"
            assert order.get("pin_code") == filled_run["pin"]
            assert run.get("member_orders")[order_id]["status"] == "readyToAssign"

    def test_next_buyer_opens_new_group(self, filled_run, pooling_ops, store):
        """A third buyer starts a fresh group"""
        filled_group_id = store.get_document("runs", filled_run["run_id"]).get("pair_group_id")

        third = pooling_ops.create_order("buyer-c", "north-commons", "dinner")

        assert third["status"] == "pooled"
        assert third["run_id"] is None
        assert third["pair_group_id"] != filled_group_id

    def test_groups_are_per_hall_and_window(self, pooling_ops):
        """Different halls or windows never pair"""
        dinner = pooling_ops.create_order("buyer-a", "north-commons", "dinner")
        lunch = pooling_ops.create_order("buyer-b", "north-commons", "lunch")
        west = pooling_ops.create_order("buyer-c", "west-hall", "dinner")

        assert len({dinner["pair_group_id"], lunch["pair_group_id"], west["pair_group_id"]}) == 3
        assert all(r["status"] == "pooled" for r in (dinner, lunch, west))

    def test_full_group_is_rejected(self, pooling_ops, store):
        """Joining a group that is already full fails"""
        first = pooling_ops.create_order("buyer-a", "north-commons", "dinner")
        store.set_document("pair_groups", first["pair_group_id"], {"filled_count": 2})

        with pytest.raises(FailedPreconditionError, match="Pair group full"):
            pooling_ops.create_order("buyer-b", "north-commons", "dinner")

        assert store.query_documents("runs") == []

    def test_two_concurrent_buyers_share_one_group(self, pooling_ops, store):
        """Two simultaneous buyers end up in one group and one run"""
        barrier = threading.Barrier(2)
        store.max_attempts = 20

        def join(buyer_id):
            barrier.wait()
            return pooling_ops.create_order(buyer_id, "west-hall", "dinner")

        with ThreadPoolExecutor(max_workers=2) as executor:
            results = list(executor.map(join, ["buyer-a", "buyer-b"]))

        assert len(store.query_documents("pair_groups")) == 1
        assert len(store.query_documents("runs")) == 1
        orders = [store.get_document("orders", r["order_id"]) for r in results]
        assert [o.get("status") for o in orders] == ["readyToAssign", "readyToAssign"]
        assert orders[0].get("pin_code") == orders[1].get("pin_code")

    def test_concurrent_joins_pair_up(self, pooling_ops, store):
        """Many simultaneous buyers pair off cleanly"""
        buyers = [f"buyer-{i}" for i in range(6)]
        barrier = threading.Barrier(len(buyers))
        store.max_attempts = 50

        def join(buyer_id):
            barrier.wait()
            return pooling_ops.create_order(buyer_id, "north-commons", "dinner")

        with ThreadPoolExecutor(max_workers=len(buyers)) as executor:
            results = list(executor.map(join, buyers))

        runs = store.query_documents("runs")
        assert len(runs) == 3
        assert sorted(b for run in runs for b in run.get("buyer_ids")) == sorted(buyers)
        orders = [store.get_document("orders", r["order_id"]) for r in results]
        assert all(order.get("status") == "readyToAssign" for order in orders)
        assert store.find_integrity_issues() == []


class TestQueueOrder:
    """Queueing a requested order"""

    def test_queue_requested_order(self, pooling_ops):
        """A requested order joins a group"""
        created = pooling_ops.create_order("buyer-a", "west-hall", "lunch", queue=False)

        queued = pooling_ops.queue_order(created["order_id"], "buyer-a")

        assert queued["status"] == "pooled"
        assert queued["pair_group_id"]

    def test_queue_fills_with_existing_member(self, pooling_ops, store):
        """Queueing fills a waiting group"""
        pooled = pooling_ops.create_order("buyer-a", "west-hall", "lunch")
        waiting = pooling_ops.create_order("buyer-b", "west-hall", "lunch", queue=False)

        result = pooling_ops.queue_order(waiting["order_id"], "buyer-b")

        assert result["status"] == "readyToAssign"
        assert result["run_id"]
        assert store.get_document("orders", pooled["order_id"]).get("status") == "readyToAssign"

    def test_queue_twice_fails(self, pooling_ops):
        """An order can only be queued once"""
        created = pooling_ops.create_order("buyer-a", "west-hall", "lunch")

        with pytest.raises(FailedPreconditionError):
            pooling_ops.queue_order(created["order_id"], "buyer-a")

    def test_queue_someone_elses_order(self, pooling_ops):
        """Only the buyer can queue the order"""
        created = pooling_ops.create_order("buyer-a", "west-hall", "lunch", queue=False)

        with pytest.raises(PermissionDeniedError):
            pooling_ops.queue_order(created["order_id"], "buyer-b")

    def test_queue_missing_order(self, pooling_ops):
        """Unknown order"""
        with pytest.raises(NotFoundError):
            pooling_ops.queue_order("missing", "buyer-a")


class TestCancelOrder:
    """Buyer cancellation"""

    def test_cancel_pooled_releases_slot(self, pooling_ops, store):
        """Cancelling a pooled order frees its slot"""
        first = pooling_ops.create_order("buyer-a", "north-commons", "dinner")

        cancelled = pooling_ops.cancel_order(first["order_id"], "buyer-a")

        assert cancelled["status"] == "cancelledBuyer"
        group = store.get_document("pair_groups", first["pair_group_id"])
        assert group.get("filled_count") == 0
        assert group.get("status") == "open"

        second = pooling_ops.create_order("buyer-b", "north-commons", "dinner")
        third = pooling_ops.create_order("buyer-c", "north-commons", "dinner")

        assert second["pair_group_id"] == first["pair_group_id"]
        run = store.get_document("runs", third["run_id"])
        assert sorted(run.get("buyer_ids")) == ["buyer-b", "buyer-c"]

    def test_cancel_requested(self, pooling_ops, store):
        """A requested order can be cancelled"""
        created = pooling_ops.create_order("buyer-a", "west-hall", "lunch", queue=False)

        pooling_ops.cancel_order(created["order_id"], "buyer-a")

        order = store.get_document("orders", created["order_id"])
        assert order.get("status") == "cancelledBuyer"
        assert order.get("cancelled_at")

    def test_cannot_cancel_after_fill(self, pooling_ops, filled_run):
        """A filled group locks its orders"""
        with pytest.raises(FailedPreconditionError):
            pooling_ops.cancel_order(filled_run["order_ids"][0], "buyer-a")

    def test_cannot_cancel_twice(self, pooling_ops):
        """A cancelled order is final"""
        created = pooling_ops.create_order("buyer-a", "west-hall", "lunch")
        pooling_ops.cancel_order(created["order_id"], "buyer-a")

        with pytest.raises(FailedPreconditionError, match="already cancelledBuyer"):
            pooling_ops.cancel_order(created["order_id"], "buyer-a")

    def test_cannot_cancel_other_buyers_order(self, pooling_ops):
        """Only the buyer can cancel"""
        created = pooling_ops.create_order("buyer-a", "west-hall", "lunch")

        with pytest.raises(PermissionDeniedError):
            pooling_ops.cancel_order(created["order_id"], "buyer-b")
