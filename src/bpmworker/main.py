"""BPM worker main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from bpmworker import __version__
from bpmworker.api import router
from bpmworker.config import settings
from bpmworker.db.base import check_db, close_db
from bpmworker.services import build_handlers, build_services
from bpmworker.tasks.dispatch import start_dispatch, stop_dispatch
from bpmworker.worker import DispatchRegistry, ErrorClassifier, FailureReporter

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("bpmworker")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting BPM worker... [workerId={settings.worker_id}]")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Engine: {settings.engine_base_url}")

    await check_db()
    logger.info("Database reachable")

    services = build_services(settings)
    registry = DispatchRegistry(
        services.engine,
        classifier=ErrorClassifier(),
        reporter=FailureReporter(services.engine),
    )
    for handler in build_handlers(services, settings):
        registry.register(handler)

    app.state.services = services
    app.state.registry = registry

    await start_dispatch(registry)
    logger.info("Fetch loop task started")

    yield

    logger.info("Shutting down BPM worker...")
    await stop_dispatch(registry)
    await services.close()
    await close_db()
    app.state.registry = None
    logger.info("Shutdown complete")


app = FastAPI(
    title="BPM Worker",
    description="External task worker for the workflow engine",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "bpmworker.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
