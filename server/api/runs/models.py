# Run request models

from typing import Optional
from pydantic import BaseModel, Field


class DeliverRunRequest(BaseModel):
    """PINs collected at handoff, separated by commas or spaces"""
    pin: str = Field(..., min_length=4, max_length=200)


class CancelRunRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
