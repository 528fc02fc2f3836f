from contextlib import asynccontextmanager
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from medreminders.core.config import settings
from medreminders.db.base import Base
from medreminders.db.session import engine

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting up %s (%s)...", settings.PROJECT_NAME, settings.ENVIRONMENT.value)
    # Importing the models registers their tables on Base.metadata
    from medreminders.reminders import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Shutting down %s", settings.PROJECT_NAME)


def create_application() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        lifespan=lifespan,
    )

    if settings.CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
            allow_headers=["*"],
        )
        logger.info("CORS configured with origins: %s", settings.CORS_ORIGINS)

    from medreminders.reminders.api import router as reminders_router

    app.include_router(
        reminders_router,
        prefix=f"{settings.API_V1_STR}/medication-reminders",
        tags=["medication-reminders"],
    )

    if settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator

        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_application()


if __name__ == "__main__":
    uvicorn.run(
        "medreminders.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.ENVIRONMENT.value == "development",
    )
