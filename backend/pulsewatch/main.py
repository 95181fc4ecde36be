"""Main FastAPI application hosting the check scheduler."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import settings
from .database import init_db, close_db
from .routers import monitoring_router, monitors_router, status_router
from .services.scheduler import scheduler_service

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting PulseWatch")

    await init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        scheduler_service.start()
    else:
        logger.info("Scheduler disabled, only manual checks will run")

    yield

    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="PulseWatch",
        description="Uptime, SSL, and browser checks with incident tracking",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(monitoring_router)
    app.include_router(monitors_router)
    app.include_router(status_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler": settings.scheduler_enabled,
        }

    return app


app = create_app()


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)


if __name__ == "__main__":
    run()
