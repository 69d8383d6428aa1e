# Response envelope shared by every endpoint

from typing import Any, Dict, Optional

from utils.timeutils import utc_now


def _timestamp() -> str:
    return utc_now().strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def create_success_response(
    data: Any = None,
    message: str = "OK"
) -> Dict[str, Any]:
    """
    Build a success envelope

    Args:
        data: response payload
        message: human-readable message
    """
    return {
        "success": True,
        "data": data,
        "message": message,
        "timestamp": _timestamp()
    }


def create_error_response(
    error: str,
    code: Optional[str] = None,
    data: Any = None
) -> Dict[str, Any]:
    """
    Build an error envelope

    Args:
        error: error description
        code: machine-readable error code such as "failed-precondition"
        data: optional details
    """
    return {
        "success": False,
        "error": error,
        "code": code,
        "data": data,
        "timestamp": _timestamp()
    }
