# Request logging middleware

import time
import uuid
import logging
from fastapi import FastAPI, Request
from typing import Dict, Any

logger = logging.getLogger(__name__)

QUIET_PATHS = ("/health",)


def setup_logging_middleware(app: FastAPI, config: Dict[str, Any]):
    """
    Log each request with a short request id and its duration

    Requests slower than `logging.slow_request_ms` are logged as warnings;
    health probes only at debug level. The id is echoed back in the
    X-Request-ID header.
    """
    slow_request_seconds = config.get('logging', {}).get('slow_request_ms', 1000) / 1000

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        start_time = time.perf_counter()

        logger.log(level, f"[{request_id}] {request.method} {path}")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] {request.method} {path} raised {type(e).__name__}: {str(e)}")
            raise

        elapsed = time.perf_counter() - start_time
        if elapsed > slow_request_seconds:
            level = logging.WARNING
        logger.log(level, f"[{request_id}] {response.status_code} in {elapsed:.3f}s")

        response.headers["X-Request-ID"] = request_id
        return response
