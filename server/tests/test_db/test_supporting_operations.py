# Dining hall, platform fee and pricing snapshot tests

import pytest

from db.errors import InvalidArgumentError


class TestDiningHalls:
    """Dining hall admin"""

    def test_upsert_and_list(self, support_ops, halls):
        """Upserted halls are listed"""
        listed = {hall["id"]: hall for hall in support_ops.list_dining_halls()}

        assert sorted(listed) == ["north-commons", "west-hall"]
        assert listed["north-commons"]["prices"] == {"breakfast": 12.0, "lunch": 15.0, "dinner": 17.5}

    def test_update_keeps_hall_id(self, support_ops, halls, store):
        """Updating a hall keeps its id"""
        support_ops.upsert_dining_hall("west-hall", "West Hall", {"lunch": 14.5})

        assert store.get_document("dining_halls", "west-hall").get("prices") == {"lunch": 14.5}
        assert len(support_ops.list_dining_halls()) == 2

    @pytest.mark.parametrize("prices", [
        {"brunch": 10},
        {"lunch": -1},
        {"lunch": "ten"},
        {"lunch": True},
    ])
    def test_rejects_bad_prices(self, support_ops, prices):
        """Bad prices are refused"""
        with pytest.raises(InvalidArgumentError):
            support_ops.upsert_dining_hall("east-hall", "East Hall", prices)

    def test_requires_hall_id(self, support_ops):
        """A hall id is required"""
        with pytest.raises(InvalidArgumentError):
            support_ops.upsert_dining_hall(" ", "Nameless", {"lunch": 10})


class TestPlatformFee:
    """Platform fee overrides"""

    def test_hall_and_default_keys(self, support_ops):
        """Hall and default fees live in one document"""
        support_ops.set_platform_fee("north-commons", 1.25)
        fees = support_ops.set_platform_fee(None, 0.75)

        assert fees == {"north-commons": 1.25, "default": 0.75}

    def test_rejects_negative_fee(self, support_ops):
        """Negative fees are refused"""
        with pytest.raises(InvalidArgumentError):
            support_ops.set_platform_fee("north-commons", -0.5)


class TestPricingSnapshot:
    """Pricing snapshot"""

    def test_snapshot_covers_every_window(self, support_ops, halls, store):
        """Every priced window appears"""
        snapshot = support_ops.recalculate_pricing()

        assert snapshot["west-hall"] == {"breakfast": None, "lunch": 14.0, "dinner": 16.0}
        stored = store.get_document("config", "pricing")
        assert stored.get("halls") == snapshot
        assert stored.get("updated_at") == "2026-03-02T17:30:00.000000Z"

    def test_removed_hall_disappears(self, support_ops, halls, store):
        """Halls without prices drop out"""
        support_ops.recalculate_pricing()
        store.run_transaction(lambda txn: txn.delete("dining_halls", "west-hall"))

        assert sorted(support_ops.recalculate_pricing()) == ["north-commons"]
        assert sorted(store.get_document("config", "pricing").get("halls")) == ["north-commons"]
