import logging

from fastapi import FastAPI

from origination.core.settings import settings
from origination.db.session import engine

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Application startup",
            extra={
                "environment": settings.environment,
                "tenancy_mode": settings.tenancy_mode,
                "status_event_dispatcher": settings.status_event_dispatcher,
            },
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        await engine.dispose()
