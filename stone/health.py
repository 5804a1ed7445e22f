"""
stone/health.py

Health check endpoints for monitoring
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from stone.middleware.csrf import get_csrf_token
from stone.schemas.response import success_response

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])


@health_router.get("/health")
async def health_check():
    """Basic health check - always returns OK if service is running"""
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "healthy", "service": "stone-api"},
    )


@health_router.get("/ready")
def readiness_check(request: Request):
    """Readiness check - verifies the database is reachable"""
    pool = request.app.state.db_pool
    try:
        pool.ping()
    except SQLAlchemyError as e:
        logger.warning(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "checks": {"database": False},
                "errors": {"database": str(e)},
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "checks": {"database": True},
            "pool": pool.stats(),
        },
    )


@health_router.get("/live")
async def liveness_check():
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "alive", "service": "stone-api"},
    )


@health_router.get("/api/csrf")
async def csrf_token(request: Request):
    """Current CSRF token, for clients that cannot read the cookie"""
    context_key = request.app.state.csrf_config.context_key
    return success_response(
        data={"csrf_token": get_csrf_token(request, context_key)},
        request=request,
    )
