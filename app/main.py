"""Main FastAPI application module."""

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette import status

from app.api.v1.router import router as v1_router
from app.core.config import Settings, settings
from app.core.events import lifespan
from app.middleware.correlation import HEADER as REQUEST_ID_HEADER
from app.middleware.correlation import CorrelationMiddleware
from app.middleware.errors import ErrorHandlingMiddleware, register_exception_handlers
from app.middleware.metrics import MetricsMiddleware


def create_app(config: Settings = settings) -> FastAPI:
    """Build the scheduler API with its middleware stack and routes."""
    application = FastAPI(
        title=config.app_name,
        description="AI analysis scheduler for collected content notes",
        version=config.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=JSONResponse,
        lifespan=lifespan,
    )

    # Last added is outermost: CORS, correlation, metrics, then error handling
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(MetricsMiddleware)
    application.add_middleware(CorrelationMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", REQUEST_ID_HEADER, "X-Operator"],
        expose_headers=[REQUEST_ID_HEADER],
        max_age=600,
    )
    register_exception_handlers(application)

    @application.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @application.get("/", include_in_schema=False)
    async def root_redirect() -> Response:
        return RedirectResponse(
            url=application.docs_url or "/docs",
            status_code=status.HTTP_307_TEMPORARY_REDIRECT,
        )

    application.include_router(v1_router, prefix=config.api_prefix)
    return application


app = create_app()
