# Delivery request endpoints

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from .models import CompleteRequest, CreateDeliveryRequest, RespondRequest
from api.auth.routes import config, get_current_user, get_store
from api.auth.models import TokenData
from db.delivery_request_operations import DeliveryRequestOperations
from db.manager import DocumentStore
from db.query_operations import QueryOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/delivery-requests", tags=["delivery-requests"])


@router.post("", response_model=Dict[str, Any])
def create_delivery_request(
    request: CreateDeliveryRequest,
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Offer an unpooled order to every online dasher"""
    result = DeliveryRequestOperations(store, config.config).create_request(
        order_id=request.order_id,
        buyer_id=current_user.uid,
        hall_id=request.hall_id,
        window_type=request.window_type,
        items=request.items,
        meet_point=request.meet_point.model_dump(),
        instructions=request.instructions,
    )
    return create_success_response(
        data=result,
        message=f"Request sent to {result['candidate_count']} dashers"
    )


@router.get("/offers", response_model=Dict[str, Any])
def list_offers(
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Open requests the caller can still accept"""
    return create_success_response(data=QueryOperations(store).open_requests_for_dasher(current_user.uid))


@router.get("/{request_id}", response_model=Dict[str, Any])
def get_delivery_request(
    request_id: str = Path(..., description="Delivery request id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    request = QueryOperations(store).get_delivery_request(request_id, current_user.uid, current_user.is_admin)
    return create_success_response(data=request)


@router.post("/{request_id}/respond", response_model=Dict[str, Any])
def respond_to_request(
    respond_request: RespondRequest,
    request_id: str = Path(..., description="Delivery request id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = DeliveryRequestOperations(store, config.config).respond(
        request_id, current_user.uid, respond_request.response
    )
    return create_success_response(data=result, message=f"Request {result['status']}")


@router.post("/{request_id}/complete", response_model=Dict[str, Any])
def complete_request(
    complete_request: CompleteRequest,
    request_id: str = Path(..., description="Delivery request id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = DeliveryRequestOperations(store, config.config).complete(
        request_id, current_user.uid, complete_request.pin
    )
    return create_success_response(
        data=result,
        message=f"Delivered, payout {result['payout_cents']} cents"
    )
