# Supporting admin operations: dining hall prices, platform fee overrides and
# the daily pricing snapshot

import logging
from typing import Any, Dict, List, Optional

from utils.timeutils import to_iso, utc_now

from .errors import InvalidArgumentError
from .manager import DocumentStore, Transaction
from .models import ServiceWindow
from .settlement import CONFIG_COLLECTION, PLATFORM_FEE_DOC_ID

logger = logging.getLogger(__name__)

PRICING_DOC_ID = "pricing"


class SupportingOperations:
    def __init__(self, store: DocumentStore, clock=None):
        self.store = store
        self.clock = clock or utc_now

    def _validate_prices(self, prices: Dict[str, Any]) -> Dict[str, float]:
        """Check window names and that every price is a non-negative number."""
        valid_windows = {window.value for window in ServiceWindow}
        cleaned = {}
        for window, price in (prices or {}).items():
            if window not in valid_windows:
                raise InvalidArgumentError(f"Unknown service window: {window!r}")
            if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
                raise InvalidArgumentError(f"Invalid {window} price: {price!r}")
            cleaned[window] = float(price)
        return cleaned

    def upsert_dining_hall(self, hall_id: str, name: str, prices: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update a dining hall and its base price per window

        Args:
            hall_id: hall identifier
            name: display name
            prices: window -> base price in dollars

        Returns:
            The stored hall document
        """
        if not hall_id or not hall_id.strip():
            raise InvalidArgumentError("hall_id is required")
        cleaned = self._validate_prices(prices)
        hall = {"name": name, "prices": cleaned, "updated_at": to_iso(self.clock())}
        self.store.set_document("dining_halls", hall_id, hall, merge=True)
        logger.info(f"Dining hall {hall_id} saved with prices {cleaned}")
        return {"id": hall_id, **hall}

    def list_dining_halls(self) -> List[Dict[str, Any]]:
        return [doc.to_dict() for doc in self.store.query_documents("dining_halls")]

    def set_platform_fee(self, hall_id: Optional[str], fee_dollars: float) -> Dict[str, Any]:
        """
        Set the platform fee for one hall, or the stored default when
        `hall_id` is None
        """
        if isinstance(fee_dollars, bool) or not isinstance(fee_dollars, (int, float)) or fee_dollars < 0:
            raise InvalidArgumentError(f"Invalid platform fee: {fee_dollars!r}")
        key = hall_id or "default"
        self.store.set_document(CONFIG_COLLECTION, PLATFORM_FEE_DOC_ID, {key: float(fee_dollars)})
        logger.info(f"Platform fee for {key} set to ${fee_dollars}")
        doc = self.store.get_document(CONFIG_COLLECTION, PLATFORM_FEE_DOC_ID)
        return dict(doc.data)

    def recalculate_pricing(self) -> Dict[str, Any]:
        """
        Snapshot every hall's window prices into config/pricing

        Intended to run once a day; the snapshot is rebuilt from scratch so
        removed halls disappear from it.
        """
        def recalculate_pricing_transaction(txn: Transaction):
            halls = txn.query("dining_halls")
            snapshot = {
                hall.id: {
                    window.value: (hall.get("prices") or {}).get(window.value)
                    for window in ServiceWindow
                }
                for hall in halls
            }
            txn.set(CONFIG_COLLECTION, PRICING_DOC_ID, {
                "halls": snapshot,
                "updated_at": to_iso(self.clock()),
            })
            return snapshot

        snapshot = self.store.run_transaction(recalculate_pricing_transaction)
        logger.info(f"Pricing snapshot rebuilt for {len(snapshot)} dining halls")
        return snapshot
