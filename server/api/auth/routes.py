# Authentication dependencies and token endpoints
# Every router resolves the caller and the document store through here

import logging
import threading
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import RefreshTokenResponse, TokenData
from db.errors import PermissionDeniedError, UnauthenticatedError
from db.manager import DocumentStore
from utils.config import Config
from utils.response import create_success_response
from utils.security import JWTManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

config = Config()
jwt_manager = JWTManager.from_config(config.config["auth"])
security = HTTPBearer(auto_error=False)

_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def get_store() -> DocumentStore:
    """
    Shared document store for the process

    Opened on first use; tests replace this dependency with their own store.
    """
    global _store
    with _store_lock:
        if _store is None or not _store.is_connected():
            _store = DocumentStore.from_config(config.get_database_config())
        return _store


def close_store():
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
            _store = None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenData:
    """
    Resolve the caller from the bearer token

    Raises:
        UnauthenticatedError: missing, expired or malformed token
    """
    if credentials is None:
        raise UnauthenticatedError("Authentication required")

    payload = jwt_manager.verify_token(credentials.credentials)
    if not payload or not payload.get("uid"):
        logger.info("Rejected request with an invalid or expired token")
        raise UnauthenticatedError("Invalid or expired token")

    return TokenData(
        uid=str(payload["uid"]),
        is_admin=bool(payload.get("is_admin", False)),
        exp=payload.get("exp"),
    )


def get_admin_user(current_user: TokenData = Depends(get_current_user)) -> TokenData:
    if not current_user.is_admin:
        raise PermissionDeniedError("Admin privileges required")
    return current_user


@router.get("/me", response_model=Dict[str, Any])
def read_current_user(current_user: TokenData = Depends(get_current_user)):
    """Claims of the current token."""
    return create_success_response(data=current_user.model_dump())


@router.post("/refresh", response_model=Dict[str, Any])
def refresh_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    current_user: TokenData = Depends(get_current_user)
):
    """Exchange a still-valid token for a fresh one."""
    new_token = jwt_manager.refresh_token(credentials.credentials)
    if not new_token:
        raise UnauthenticatedError("Invalid or expired token")

    logger.info(f"Token refreshed for {current_user.uid}")
    response = RefreshTokenResponse(
        access_token=new_token,
        expires_in=jwt_manager.access_token_expire_minutes * 60,
    )
    return create_success_response(data=response.model_dump(), message="Token refreshed")
