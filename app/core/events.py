"""Application startup and shutdown events."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from prometheus_client import Counter
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.db import create_tables, dispose_engine, get_session_factory
from app.core.logging import configure_logging, get_logger
from app.llm.queue.dispatcher import Dispatcher

# Prometheus metrics
REQUESTS_TOTAL = Counter(
    "app_http_requests_total",
    "Total number of HTTP requests",
    labelnames=["method", "path"],
)

RESPONSES_TOTAL = Counter(
    "app_http_responses_total",
    "Total number of HTTP responses",
    labelnames=["status_code"],
)

logger = get_logger(module="events")


class AppStateDict:
    """Application services shared by the request handlers."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.dispatcher = dispatcher or Dispatcher(session_factory)

    async def health_check(self) -> dict[str, Any]:
        """Check that the database answers.

        Returns:
            Dict containing health status of all components
        """
        health_status: dict[str, Any] = {
            "status": "healthy",
            "version": settings.version,
            "components": {"database": False},
            "details": {"active_tasks": self.dispatcher.active_tasks},
        }
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            health_status["components"]["database"] = True
        except Exception as e:
            health_status["status"] = "unhealthy"
            health_status["error"] = str(e)
            logger.error("health_check_failed", error=str(e))
        return health_status


def get_app_state(app: Any) -> AppStateDict:
    """Return the shared services, creating them on first use."""
    services = getattr(app.state, "services", None)
    if services is None:
        services = AppStateDict(get_session_factory())
        app.state.services = services
    return services


@asynccontextmanager
async def lifespan(app: Any) -> AsyncIterator[None]:
    """Create tables and services on startup; drain workers on shutdown."""
    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
    await create_tables()
    state = get_app_state(app)
    logger.info(
        "application_started",
        max_concurrent=state.dispatcher.max_concurrent,
        batch_size=state.dispatcher.batch_size,
        launch_interval=state.dispatcher.launch_interval,
    )

    try:
        yield
    finally:
        if state.dispatcher.active_tasks:
            logger.info("waiting_for_workers", active_tasks=state.dispatcher.active_tasks)
        await state.dispatcher.wait_idle()
        await dispose_engine()
        logger.info("application_stopped")
