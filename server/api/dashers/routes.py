# Dasher availability endpoint

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from .models import AvailabilityRequest
from api.auth.routes import config, get_current_user, get_store
from api.auth.models import TokenData
from db.delivery_request_operations import DeliveryRequestOperations
from db.manager import DocumentStore
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/dashers", tags=["dashers"])


@router.put("/{dasher_id}/availability", response_model=Dict[str, Any])
def update_availability(
    availability: AvailabilityRequest,
    dasher_id: str = Path(..., description="Dasher id, must be the caller"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Go online to receive broadcast delivery requests, or offline to stop"""
    result = DeliveryRequestOperations(store, config.config).update_dasher_availability(
        dasher_id, current_user.uid, availability.is_online
    )
    return create_success_response(
        data=result,
        message="You are online" if result["is_online"] else "You are offline"
    )
