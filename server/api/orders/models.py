# Order request and response models

from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field, field_validator

from utils.validators import validate_hall_id, validate_window_type


class CreateOrderRequest(BaseModel):
    """Create an order, queued into a pair group by default"""
    hall_id: str = Field(..., description="Dining hall id")
    window_type: str = Field(..., description="breakfast, lunch or dinner")
    meet_point: Optional[Union[str, Dict[str, Any]]] = Field(None, description="Handoff location")
    pickup_notes: Optional[str] = Field(None, max_length=500)
    queue: bool = Field(True, description="Join a pair group immediately")

    @field_validator("hall_id")
    @classmethod
    def check_hall_id(cls, value: str) -> str:
        if not validate_hall_id(value):
            raise ValueError("invalid dining hall id")
        return value

    @field_validator("window_type")
    @classmethod
    def check_window_type(cls, value: str) -> str:
        if not validate_window_type(value):
            raise ValueError("window_type must be breakfast, lunch or dinner")
        return value


class OrderSummary(BaseModel):
    order_id: str
    status: str
    hall_id: str
    window_type: str
    price_cents: int
    pair_group_id: Optional[str] = None
    pin_code: Optional[str] = None
    run_id: Optional[str] = None
