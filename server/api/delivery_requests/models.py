# Delivery request models

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

from utils.validators import validate_pin


class MeetPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    description: str = Field(..., max_length=200)


class CreateDeliveryRequest(BaseModel):
    """Broadcast one order to the online dashers"""
    order_id: str
    hall_id: str
    window_type: Literal["breakfast", "lunch", "dinner"]
    items: List[str] = Field(default_factory=list)
    instructions: Optional[str] = Field(None, max_length=500)
    meet_point: MeetPoint


class RespondRequest(BaseModel):
    response: Literal["accept", "decline"]


class CompleteRequest(BaseModel):
    pin: str

    @field_validator("pin")
    @classmethod
    def check_pin(cls, value: str) -> str:
        value = value.strip()
        if not validate_pin(value):
            raise ValueError("PIN must be 6 digits")
        return value
