# Admin endpoints

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from .models import (
    AdminCancelRunRequest, PaymentOutcomeRequest, SetPlatformFeeRequest, UpsertHallRequest
)
from api.auth.routes import config, get_admin_user, get_store
from api.auth.models import TokenData
from db.errors import InvalidArgumentError
from db.maintenance_operations import MaintenanceOperations
from db.manager import DocumentStore
from db.run_operations import RunOperations
from db.supporting_operations import SupportingOperations
from utils.response import create_success_response
from utils.validators import validate_hall_id

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


# ===== Pricing =====

@router.put("/halls/{hall_id}", response_model=Dict[str, Any])
def upsert_dining_hall(
    hall_request: UpsertHallRequest,
    hall_id: str = Path(..., description="Dining hall id"),
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    if not validate_hall_id(hall_id):
        raise InvalidArgumentError("Invalid dining hall id")
    hall = SupportingOperations(store).upsert_dining_hall(hall_id, hall_request.name, hall_request.prices)
    logger.info(f"Admin {current_admin.uid} saved dining hall {hall_id}")
    return create_success_response(data=hall, message="Dining hall saved")


@router.put("/fees", response_model=Dict[str, Any])
def set_platform_fee(
    fee_request: SetPlatformFeeRequest,
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    fees = SupportingOperations(store).set_platform_fee(fee_request.hall_id, fee_request.fee_dollars)
    return create_success_response(data=fees, message="Platform fee updated")


@router.post("/pricing/recalculate", response_model=Dict[str, Any])
def recalculate_pricing(
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    snapshot = SupportingOperations(store).recalculate_pricing()
    return create_success_response(data=snapshot, message=f"Pricing snapshot for {len(snapshot)} halls")


# ===== Settlement and runs =====

@router.post("/payments/{payment_id}/outcome", response_model=Dict[str, Any])
def record_payment_outcome(
    outcome: PaymentOutcomeRequest,
    payment_id: str = Path(..., description="Payment id"),
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    """Report the processor's result for a settlement"""
    result = RunOperations(store, config.config).record_payment_outcome(payment_id, outcome.succeeded)
    return create_success_response(data=result, message=f"Payment {result['status']}")


@router.post("/runs/{run_id}/close", response_model=Dict[str, Any])
def close_run(
    run_id: str = Path(..., description="Run id"),
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    result = RunOperations(store, config.config).close_run(run_id)
    return create_success_response(data=result, message="Run closed")


@router.post("/runs/{run_id}/cancel", response_model=Dict[str, Any])
def cancel_run(
    cancel_request: AdminCancelRunRequest,
    run_id: str = Path(..., description="Run id"),
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    result = RunOperations(store, config.config).cancel_run(
        run_id, current_admin.uid, is_admin=True, reason=cancel_request.reason
    )
    return create_success_response(data=result, message="Run cancelled")


# ===== Maintenance =====

@router.post("/maintenance/expire-requests", response_model=Dict[str, Any])
def expire_requests(
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    """Run the delivery-request expiry sweep now"""
    result = MaintenanceOperations(store).expire_stale_requests()
    return create_success_response(data=result, message=f"Expired {len(result['expired'])} requests")


@router.get("/maintenance/integrity", response_model=Dict[str, Any])
def check_integrity(
    current_admin: TokenData = Depends(get_admin_user),
    store: DocumentStore = Depends(get_store)
):
    issues = store.find_integrity_issues()
    if issues:
        logger.warning(f"Integrity check found {len(issues)} problems")
    return create_success_response(
        data={"ok": not issues, "issues": issues},
        message="Integrity check passed" if not issues else f"{len(issues)} problems found"
    )
