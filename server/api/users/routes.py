# Payment history endpoints for buyers and dashers

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from api.auth.routes import get_current_user, get_store
from api.auth.models import TokenData
from db.manager import DocumentStore
from db.query_operations import QueryOperations
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me/payments", response_model=Dict[str, Any])
def list_my_payments(
    limit: int = Query(20, ge=1, le=50),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Payments for deliveries the caller bought into"""
    return create_success_response(data=QueryOperations(store).payments_for_buyer(current_user.uid, limit=limit))


@router.get("/me/payouts", response_model=Dict[str, Any])
def list_my_payouts(
    limit: int = Query(20, ge=1, le=50),
    current_user: TokenData = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Payouts for deliveries the caller completed as a dasher"""
    return create_success_response(data=QueryOperations(store).payouts_for_dasher(current_user.uid, limit=limit))
