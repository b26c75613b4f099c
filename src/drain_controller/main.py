"""
Node drain controller

Main application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from . import __version__
from .api import api_router
from .config import get_settings
from .services import KubeClient, NodeDrainService, ReconciliationLoop
from .telemetry import setup_telemetry

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    tracer_provider = setup_telemetry(settings, app)

    kube_client = KubeClient(settings)
    drain_service = NodeDrainService(settings, kube_client)
    reconciliation_loop = ReconciliationLoop(settings, kube_client, drain_service)
    app.state.reconciliation_loop = reconciliation_loop

    if settings.drain.enabled:
        reconciliation_loop.start()
    else:
        logger.warning("Reconciliation loop disabled by configuration")

    logger.info(
        "Node drain controller started (grace period %ss)",
        settings.drain.grace_period_seconds,
    )

    yield

    await reconciliation_loop.stop()
    kube_client.close()
    if tracer_provider is not None:
        tracer_provider.shutdown()
    logger.info("Node drain controller stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Node Drain Controller",
        description="Drains cordoned nodes without breaking single-replica disruption budgets",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.include_router(api_router)

    # Mount Prometheus metrics endpoint
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "drain_controller.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
