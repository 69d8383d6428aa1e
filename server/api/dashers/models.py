# Dasher models

from pydantic import BaseModel


class AvailabilityRequest(BaseModel):
    is_online: bool
