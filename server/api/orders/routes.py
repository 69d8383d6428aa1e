# Order endpoints
# Creating, queueing and cancelling buyer orders; queue changes refresh the
# live pool snapshot once the response is sent

import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query

from .models import CreateOrderRequest, OrderSummary
from api.auth.routes import config, get_current_user, get_store
from api.auth.models import TokenData
from db.errors import EngineError
from db.maintenance_operations import MaintenanceOperations
from db.manager import DocumentStore
from db.pooling_operations import PoolingOperations
from db.query_operations import QueryOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


def refresh_live_pool(store: DocumentStore, hall_id: str, window_type: str):
    """Recompute the live queue snapshot; failures only affect the display."""
    try:
        MaintenanceOperations(store).publish_live_pool_snapshot(hall_id, window_type)
    except EngineError as e:
        logger.warning(f"Live pool refresh failed for {hall_id}/{window_type}: {str(e)}")


@router.post("", response_model=Dict[str, Any])
def create_order(
    order_request: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Create an order priced from the hall's base price"""
    pooling_ops = PoolingOperations(store, config.config)
    result = pooling_ops.create_order(
        buyer_id=current_user.uid,
        hall_id=order_request.hall_id,
        window_type=order_request.window_type,
        meet_point=order_request.meet_point,
        pickup_notes=order_request.pickup_notes,
        queue=order_request.queue,
    )
    background_tasks.add_task(refresh_live_pool, store, result["hall_id"], result["window_type"])

    return create_success_response(
        data=OrderSummary(**result).model_dump(),
        message=f"Order created ({result['status']}), price {result['price_cents']} cents"
    )


@router.get("", response_model=Dict[str, Any])
def list_my_orders(
    limit: int = Query(20, ge=10, le=50),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = QueryOperations(store).orders_for_buyer(current_user.uid, limit=limit)
    return create_success_response(data=result)


@router.get("/pools/{hall_id}/{window_type}", response_model=Dict[str, Any])
def get_live_pool(
    hall_id: str = Path(..., description="Dining hall id"),
    window_type: str = Path(..., description="Service window"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Queue size and average wait for a hall and window"""
    return create_success_response(data=QueryOperations(store).get_live_pool(hall_id, window_type))


@router.get("/{order_id}", response_model=Dict[str, Any])
def get_order(
    order_id: str = Path(..., description="Order id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    order = QueryOperations(store).get_order(order_id, current_user.uid, current_user.is_admin)
    return create_success_response(data=order)


@router.post("/{order_id}/queue", response_model=Dict[str, Any])
def queue_order(
    background_tasks: BackgroundTasks,
    order_id: str = Path(..., description="Order id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Put a requested order into the open pair group for its hall and window"""
    result = PoolingOperations(store, config.config).queue_order(order_id, current_user.uid)
    background_tasks.add_task(refresh_live_pool, store, result["hall_id"], result["window_type"])

    message = "Matched, waiting for a dasher" if result.get("run_id") else "Waiting for a partner"
    return create_success_response(data=OrderSummary(**result).model_dump(), message=message)


@router.post("/{order_id}/cancel", response_model=Dict[str, Any])
def cancel_order(
    background_tasks: BackgroundTasks,
    order_id: str = Path(..., description="Order id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = PoolingOperations(store, config.config).cancel_order(order_id, current_user.uid)
    background_tasks.add_task(refresh_live_pool, store, result["hall_id"], result["window_type"])
    return create_success_response(data=OrderSummary(**result).model_dump(), message="Order cancelled")
