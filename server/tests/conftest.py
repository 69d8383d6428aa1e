# Shared fixtures: in-memory document store, controllable clock, seeded
# dining halls and the operation classes wired to them

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ['CONFIG_ENV'] = 'development'

from db.delivery_request_operations import DeliveryRequestOperations
from db.maintenance_operations import MaintenanceOperations
from db.manager import DocumentStore
from db.pooling_operations import PoolingOperations
from db.query_operations import QueryOperations
from db.run_operations import RunOperations
from db.supporting_operations import SupportingOperations

TEST_CONFIG = {
    "pooling": {"target_size": 2},
    "pricing": {
        "buyer_surcharge_dollars": "0.50",
        "default_platform_fee_dollars": "0.50",
        "processing_fee_percent": "0.029",
        "processing_fee_fixed_cents": 30,
    },
    "broadcast": {"request_ttl_minutes": 10},
}


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def store():
    """In-memory document store without retry back-off"""
    store = DocumentStore(":memory:", auto_connect=True, retry_backoff_seconds=0)
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 17, 30, tzinfo=timezone.utc))


@pytest.fixture
def support_ops(store, clock):
    return SupportingOperations(store, clock=clock)


@pytest.fixture
def halls(support_ops):
    """Two dining halls; North Commons dinner is $17.50"""
    support_ops.upsert_dining_hall(
        "north-commons", "North Commons", {"breakfast": 12.00, "lunch": 15.00, "dinner": 17.50}
    )
    support_ops.upsert_dining_hall("west-hall", "West Hall", {"lunch": 14.00, "dinner": 16.00})
    return ["north-commons", "west-hall"]


@pytest.fixture
def pooling_ops(store, clock, halls):
    return PoolingOperations(store, TEST_CONFIG, clock=clock)


@pytest.fixture
def run_ops(store, clock):
    return RunOperations(store, TEST_CONFIG, clock=clock)


@pytest.fixture
def request_ops(store, clock, halls):
    return DeliveryRequestOperations(store, TEST_CONFIG, clock=clock)


@pytest.fixture
def maintenance_ops(store, clock):
    return MaintenanceOperations(store, clock=clock)


@pytest.fixture
def query_ops(store):
    return QueryOperations(store)


@pytest.fixture
def filled_run(pooling_ops):
    """Two dinner buyers at North Commons pooled into one run"""
    first = pooling_ops.create_order("buyer-a", "north-commons", "dinner")
    second = pooling_ops.create_order("buyer-b", "north-commons", "dinner")
    return {
        "run_id": second["run_id"],
        "order_ids": [first["order_id"], second["order_id"]],
        "pin": second["pin_code"],
    }


@pytest.fixture
def claimed_run(run_ops, filled_run):
    run_ops.claim_run(filled_run["run_id"], "dasher-1")
    return filled_run


@pytest.fixture
def in_progress_run(run_ops, claimed_run):
    run_ops.mark_picked_up(claimed_run["run_id"], "dasher-1")
    return claimed_run


@pytest.fixture
def delivered_run(run_ops, in_progress_run):
    result = run_ops.mark_delivered(in_progress_run["run_id"], "dasher-1", in_progress_run["pin"])
    return {**in_progress_run, "payment_id": result["payment_id"]}
