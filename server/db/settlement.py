# Money math for buyer pricing and delivery settlement
# All amounts are integer cents; rounding is half-up

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from utils.timeutils import to_iso

from .manager import Transaction
from .models import PaymentStatus

CONFIG_COLLECTION = "config"
PLATFORM_FEE_DOC_ID = "platform_fee"

DEFAULT_BUYER_SURCHARGE_DOLLARS = "0.50"
DEFAULT_PLATFORM_FEE_DOLLARS = "0.50"
DEFAULT_PROCESSING_FEE_PERCENT = "0.029"
DEFAULT_PROCESSING_FEE_FIXED_CENTS = 30


def round_half_up(value: Any) -> int:
    """Round to the nearest whole number, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeSchedule:
    """Fee parameters taken from the `pricing` config section."""
    buyer_surcharge_dollars: Decimal = Decimal(DEFAULT_BUYER_SURCHARGE_DOLLARS)
    default_platform_fee_dollars: Decimal = Decimal(DEFAULT_PLATFORM_FEE_DOLLARS)
    processing_fee_percent: Decimal = Decimal(DEFAULT_PROCESSING_FEE_PERCENT)
    processing_fee_fixed_cents: int = DEFAULT_PROCESSING_FEE_FIXED_CENTS

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "FeeSchedule":
        pricing = (config or {}).get("pricing", {})
        return cls(
            buyer_surcharge_dollars=Decimal(str(pricing.get(
                "buyer_surcharge_dollars", DEFAULT_BUYER_SURCHARGE_DOLLARS))),
            default_platform_fee_dollars=Decimal(str(pricing.get(
                "default_platform_fee_dollars", DEFAULT_PLATFORM_FEE_DOLLARS))),
            processing_fee_percent=Decimal(str(pricing.get(
                "processing_fee_percent", DEFAULT_PROCESSING_FEE_PERCENT))),
            processing_fee_fixed_cents=int(pricing.get(
                "processing_fee_fixed_cents", DEFAULT_PROCESSING_FEE_FIXED_CENTS)),
        )


@dataclass(frozen=True)
class Settlement:
    amount_cents: int
    platform_fee_cents: int
    processing_fee_cents: int

    @property
    def fee_cents(self) -> int:
        return self.platform_fee_cents + self.processing_fee_cents

    @property
    def payout_cents(self) -> int:
        return max(self.amount_cents - self.fee_cents, 0)


def compute_buyer_price_cents(base_price_dollars: Any, schedule: Optional[FeeSchedule] = None) -> int:
    """
    Price one buyer pays for a pooled meal

    Each of the two buyers covers half the hall's base price plus the
    surcharge, e.g. $17.50 -> (8.75 + 0.50) * 100 = 925 cents.
    """
    schedule = schedule or FeeSchedule()
    base = Decimal(str(base_price_dollars))
    return round_half_up((base / 2 + schedule.buyer_surcharge_dollars) * 100)


def resolve_platform_fee_dollars(hall_id: str, fee_overrides: Optional[Mapping[str, Any]],
                                 schedule: FeeSchedule) -> Decimal:
    """Hall override, then the stored `default`, then the configured default."""
    overrides = fee_overrides or {}
    for key in (hall_id, "default"):
        if overrides.get(key) is not None:
            return Decimal(str(overrides[key]))
    return schedule.default_platform_fee_dollars


def compute_settlement(price_cents: Iterable[int], hall_id: str,
                       fee_overrides: Optional[Mapping[str, Any]] = None,
                       schedule: Optional[FeeSchedule] = None) -> Settlement:
    """
    Compute fees and payout for a completed delivery

    Args:
        price_cents: price of every member order
        hall_id: hall the food was picked up from
        fee_overrides: contents of config/platform_fee (hall id -> dollars)
        schedule: fee parameters

    Returns:
        Settlement with amount, fees and payout in cents
    """
    schedule = schedule or FeeSchedule()
    amount_cents = sum(int(cents) for cents in price_cents)
    processing_fee_cents = (
        round_half_up(Decimal(amount_cents) * schedule.processing_fee_percent)
        + schedule.processing_fee_fixed_cents
    )
    platform_fee_cents = round_half_up(
        resolve_platform_fee_dollars(hall_id, fee_overrides, schedule) * 100
    )
    return Settlement(amount_cents, platform_fee_cents, processing_fee_cents)


def read_fee_overrides(txn: Transaction) -> Dict[str, Any]:
    """Read the per-hall platform fee document inside a transaction."""
    doc = txn.get(CONFIG_COLLECTION, PLATFORM_FEE_DOC_ID)
    return dict(doc.data) if doc else {}


def write_payment_record(txn: Transaction, settlement: Settlement, *, dasher_id: str,
                         buyer_ids: List[str], now, run_id: Optional[str] = None,
                         delivery_request_id: Optional[str] = None) -> str:
    """
    Buffer the single captured PaymentRecord for a completed delivery

    Only called from the delivery-confirmation transactions, which can
    commit once per run or request.
    """
    return txn.create("payments", {
        "run_id": run_id,
        "delivery_request_id": delivery_request_id,
        "dasher_id": dasher_id,
        "buyer_ids": list(buyer_ids),
        "amount_cents": settlement.amount_cents,
        "platform_fee_cents": settlement.platform_fee_cents,
        "processing_fee_cents": settlement.processing_fee_cents,
        "fee_cents": settlement.fee_cents,
        "payout_cents": settlement.payout_cents,
        "status": PaymentStatus.CAPTURED.value,
        "created_at": to_iso(now),
        "settled_at": None,
    })
