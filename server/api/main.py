# FastAPI application
# Routers, middleware, error envelopes and the expiry monitor lifecycle

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.logger import setup_logging
from utils.response import create_error_response
from api.middleware import setup_middleware

from api.auth.routes import close_store, config, get_store
from api.auth import auth_router
from api.orders import orders_router
from api.runs import runs_router
from api.delivery_requests import delivery_requests_router
from api.dashers import dashers_router
from api.users import users_router
from api.admin import admin_router
from api.expiry_monitor import ExpiryMonitor
from db.errors import EngineError
from db.manager import DocumentStore

setup_logging(config.config)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{config.config['app']['name']} starting")
    logger.info(f"Environment: {config.env}")
    logger.info(f"Debug: {config.config['app']['debug']}")

    monitor = None
    if config.get('broadcast.sweeper_enabled', True):
        monitor = ExpiryMonitor(get_store, config.get('broadcast.sweep_interval_seconds', 300))
        monitor.start()

    yield

    if monitor is not None:
        monitor.stop()
    close_store()
    logger.info(f"{config.config['app']['name']} stopped")


app = FastAPI(
    title=config.config['app']['name'],
    version=config.config['app']['version'],
    description=config.config['app'].get('description', ''),
    debug=config.config['app']['debug'],
    lifespan=lifespan
)

setup_middleware(app, config.config)

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(runs_router)
app.include_router(delivery_requests_router)
app.include_router(dashers_router)
app.include_router(users_router)
app.include_router(admin_router)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    """Business failures keep their status code and machine-readable code"""
    logger.info(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content=create_error_response(exc.message, code=exc.code)
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail))
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=create_error_response("Internal server error", code="internal")
    )


@app.get("/")
def root():
    return {
        "message": f"{config.config['app']['name']} is running",
        "version": config.config['app']['version'],
        "status": "healthy"
    }


@app.get("/health")
def health_check(store: DocumentStore = Depends(get_store)):
    """Health check including the document store connection"""
    try:
        store.query_documents("dining_halls", limit=1)
    except (ConnectionError, EngineError) as e:
        logger.error(f"Health check failed: {str(e)}")
        raise HTTPException(status_code=503, detail="Service unhealthy")

    return {
        "status": "healthy",
        "version": config.config['app']['version'],
        "environment": config.env
    }


@app.get("/api/info")
def api_info():
    return {
        "name": config.config['app']['name'],
        "version": config.config['app']['version'],
        "description": config.config['app'].get('description', ''),
        "environment": config.env,
        "endpoints": {
            "auth": "/api/auth",
            "orders": "/api/orders",
            "runs": "/api/runs",
            "delivery_requests": "/api/delivery-requests",
            "dashers": "/api/dashers",
            "users": "/api/users",
            "admin": "/api/admin"
        }
    }


if __name__ == "__main__":
    import uvicorn

    server_config = config.config['server']

    uvicorn.run(
        "api.main:app",
        host=server_config.get('host', '127.0.0.1'),
        port=server_config.get('port', 8000),
        reload=server_config.get('reload', False),
        workers=1,
        log_level="debug" if config.config['app']['debug'] else "info"
    )
