# pnap_ccm/main.py
"""
phoenixNAP Load Balancer IP Broker - Main Application
FastAPI application entry point
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import pydantic
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .api.v1 import admin, loadbalancers
from .cloud import CloudProvider
from .config import get_settings
from .exceptions import (
    CCMError,
    ConfigurationError,
    ConflictError,
    TransientError,
    ValidationError,
)
from .schemas.base import HealthResponse

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConflictError: status.HTTP_409_CONFLICT,
    TransientError: status.HTTP_502_BAD_GATEWAY,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _status_for(exc: CCMError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(cloud: Optional[CloudProvider] = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        cloud: Pre-built cloud provider; built from settings at startup when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan events
        - Startup: Build the cloud provider, start the garbage collector
        - Shutdown: Stop the garbage collector, close the provider client
        """
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environment: {settings.ENV}")

        if app.state.cloud is None:
            # tag setup calls the provider; keep it off the event loop
            app.state.cloud = await asyncio.to_thread(CloudProvider.from_settings, settings)
        app.state.startup_time = datetime.now(timezone.utc)
        app.state.cloud.start()

        logger.info("Application started successfully")

        yield

        logger.info("Shutting down application")
        await asyncio.to_thread(app.state.cloud.close)

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
    phoenixNAP Load Balancer IP Broker API

    Assigns public IPs to LoadBalancer services from phoenixNAP IP blocks.
    The provider's tags are the only record of which block belongs to
    which service; released blocks are detached and deleted by a
    background garbage collector.

    - **Load Balancer API**: Get / Ensure / Update / EnsureDeleted per service
    - **Admin API**: Inspect IP blocks, run a garbage collection sweep
      (requires X-Admin-Token header)
    """,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )
    app.state.cloud = cloud
    app.state.startup_time = None

    # === Exception Handlers ===

    @app.exception_handler(CCMError)
    async def ccm_exception_handler(request: Request, exc: CCMError):
        """Translate broker errors into the standard error response"""
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.error_code}: {exc}")
        else:
            logger.warning(f"{exc.error_code}: {exc}")

        details = None
        status_code_of_remote = getattr(exc, "status_code", None)
        if status_code_of_remote is not None:
            details = {"provider_status_code": status_code_of_remote}

        return JSONResponse(
            status_code=status_code,
            content={
                "success": False,
                "error": str(exc),
                "error_code": exc.error_code,
                "details": details,
                "timestamp": _utcnow_iso()
            }
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors"""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": "Validation error",
                "error_code": "VALIDATION_ERROR",
                "details": {"errors": errors},
                "timestamp": _utcnow_iso()
            }
        )

    @app.exception_handler(pydantic.ValidationError)
    async def model_validation_exception_handler(request: Request, exc: pydantic.ValidationError):
        """Handle invalid service identities built from path parameters"""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": "Validation error",
                "error_code": "VALIDATION_ERROR",
                "details": {"errors": [
                    {
                        "field": ".".join(str(loc) for loc in error["loc"]),
                        "message": error["msg"],
                        "type": error["type"]
                    }
                    for error in exc.errors()
                ]},
                "timestamp": _utcnow_iso()
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.exception(f"Unexpected error: {exc}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Internal server error",
                "error_code": "INTERNAL_ERROR",
                "details": {"message": str(exc)} if settings.DEBUG else None,
                "timestamp": _utcnow_iso()
            }
        )

    # === Include Routers ===

    app.include_router(
        loadbalancers.router,
        prefix="/api/v1/loadbalancers",
        tags=["Load Balancers"]
    )

    app.include_router(
        admin.router,
        prefix="/api/v1/admin",
        tags=["Admin"]
    )

    # === Root Endpoints ===

    @app.get(
        "/",
        summary="Root endpoint",
        description="Welcome message and API info"
    )
    async def read_root():
        """Root endpoint with API information"""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health"
        }

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health check",
        description="Check load balancer and garbage collector state"
    )
    async def health_check(request: Request):
        """Health check endpoint for monitoring"""
        cloud = request.app.state.cloud
        startup_time = request.app.state.startup_time

        uptime = None
        if startup_time:
            uptime = (datetime.now(timezone.utc) - startup_time).total_seconds()

        lb_state = "enabled" if cloud is not None and cloud.load_balancer_enabled else "disabled"
        gc_state = "running" if cloud is not None and cloud.gc is not None and cloud.gc.is_running else "stopped"

        healthy = lb_state == "disabled" or gc_state == "running"
        return HealthResponse(
            status="healthy" if healthy else "unhealthy",
            service="pnap-ccm",
            version=settings.APP_VERSION,
            uptime_seconds=uptime,
            load_balancer=lb_state,
            garbage_collector=gc_state
        )

    return app


app = create_app()


# === Run Application ===

def run() -> None:
    uvicorn.run(
        "pnap_ccm.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
