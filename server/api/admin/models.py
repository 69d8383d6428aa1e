# Admin request models

from typing import Dict, Optional
from pydantic import BaseModel, Field, field_validator

from utils.validators import validate_hall_id, validate_price_dollars, validate_window_type


class UpsertHallRequest(BaseModel):
    """Dining hall with its base price per service window, in dollars"""
    name: str = Field(..., min_length=1, max_length=100)
    prices: Dict[str, float] = Field(..., description="window -> base price")

    @field_validator("prices")
    @classmethod
    def check_prices(cls, value: Dict[str, float]) -> Dict[str, float]:
        for window, price in value.items():
            if not validate_window_type(window):
                raise ValueError(f"unknown service window {window}")
            if not validate_price_dollars(price):
                raise ValueError(f"invalid price for {window}")
        return value


class SetPlatformFeeRequest(BaseModel):
    """Platform fee in dollars; no hall_id sets the default"""
    hall_id: Optional[str] = None
    fee_dollars: float = Field(..., ge=0)

    @field_validator("hall_id")
    @classmethod
    def check_hall_id(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not validate_hall_id(value):
            raise ValueError("invalid dining hall id")
        return value


class PaymentOutcomeRequest(BaseModel):
    succeeded: bool


class AdminCancelRunRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
