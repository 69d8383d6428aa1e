# Run endpoints for dashers

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query

from .models import CancelRunRequest, DeliverRunRequest
from api.auth.routes import config, get_current_user, get_store
from api.auth.models import TokenData
from db.manager import DocumentStore
from db.query_operations import QueryOperations
from db.run_operations import RunOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/runs", tags=["runs"])


@router.get("/available", response_model=Dict[str, Any])
def list_available_runs(
    hall_id: Optional[str] = Query(None, description="Only runs from this hall"),
    limit: int = Query(10, ge=1, le=50),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    return create_success_response(data=QueryOperations(store).available_runs(hall_id, limit=limit))


@router.get("/mine", response_model=Dict[str, Any])
def list_my_runs(
    active_only: bool = Query(False),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = QueryOperations(store).runs_for_dasher(current_user.uid, active_only=active_only)
    return create_success_response(data=result)


@router.get("/{run_id}", response_model=Dict[str, Any])
def get_run(
    run_id: str = Path(..., description="Run id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    run = QueryOperations(store).get_run(run_id, current_user.uid, current_user.is_admin)
    return create_success_response(data=run)


@router.post("/{run_id}/claim", response_model=Dict[str, Any])
def claim_run(
    run_id: str = Path(..., description="Run id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = RunOperations(store, config.config).claim_run(run_id, current_user.uid)
    return create_success_response(data=result, message="Run claimed")


@router.post("/{run_id}/picked-up", response_model=Dict[str, Any])
def mark_picked_up(
    run_id: str = Path(..., description="Run id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    result = RunOperations(store, config.config).mark_picked_up(run_id, current_user.uid)
    return create_success_response(data=result, message="Food picked up")


@router.post("/{run_id}/delivered", response_model=Dict[str, Any])
def mark_delivered(
    deliver_request: DeliverRunRequest,
    run_id: str = Path(..., description="Run id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """
    Confirm delivery with the buyers' PINs

    Settles the run: the response carries the payment id and payout.
    """
    result = RunOperations(store, config.config).mark_delivered(
        run_id, current_user.uid, deliver_request.pin
    )
    return create_success_response(
        data=result,
        message=f"Delivered, payout {result['payout_cents']} cents"
    )


@router.post("/{run_id}/cancel", response_model=Dict[str, Any])
def cancel_run(
    cancel_request: CancelRunRequest,
    run_id: str = Path(..., description="Run id"),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Release a claimed run before pickup"""
    result = RunOperations(store, config.config).cancel_run(
        run_id, current_user.uid, is_admin=False, reason=cancel_request.reason
    )
    return create_success_response(data=result, message="Run cancelled")
