"""API v1 router module."""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.status import HTTP_503_SERVICE_UNAVAILABLE

from app.api.v1.notes import router as notes_router
from app.api.v1.system import get_services
from app.api.v1.system import router as system_router
from app.core.config import settings
from app.core.events import AppStateDict

router = APIRouter(default_response_class=JSONResponse)

router.include_router(system_router)
router.include_router(notes_router)


@router.get("/")
async def api_root() -> dict[str, str]:
    """API root with version information."""
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs",
    }


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest().decode("utf-8"),
        media_type=CONTENT_TYPE_LATEST,
    )


# Health check endpoint


@router.get("/health")
async def health_check(
    request: Request,
    services: AppStateDict = Depends(get_services),
) -> JSONResponse:
    """
    Health check endpoint.

    Returns
    -------
        Health status including database reachability
    """
    health = await services.health_check()
    health["correlation_id"] = getattr(request.state, "correlation_id", None)
    status_code = 200 if health["status"] == "healthy" else HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=health, status_code=status_code)
