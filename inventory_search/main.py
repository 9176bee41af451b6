"""Inventory search service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
import structlog

from inventory_libs.common.config import SearchConfig
from inventory_libs.common.logging import configure_logging
from inventory_libs.common.metrics import MetricsCollector
from .api.routes import router as api_router
from .hybrid.search_manager import SearchManager, create_search_manager
from .runtime.metrics import SERVICE_NAME, get_search_metrics

logger = structlog.get_logger("search_service")

API_PREFIX = "/api/v1"


def endpoint_label(request: Request) -> str:
    """Metrics label for a request: the mounted route template, else the raw path."""
    route_path = getattr(request.scope.get("route"), "path", None)
    if route_path is None:
        return request.url.path
    if request.url.path.startswith(API_PREFIX) and not route_path.startswith(API_PREFIX):
        return API_PREFIX + route_path
    return route_path


def create_app(
    config: Optional[SearchConfig] = None,
    search_manager: Optional[SearchManager] = None,
    metrics_collector: Optional[MetricsCollector] = None
) -> FastAPI:
    """Build the FastAPI application.

    A prebuilt ``search_manager`` skips construction from configuration
    (tests inject one wired to in-memory fakes).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        service_config = config or SearchConfig()
        configure_logging(SERVICE_NAME, service_config.inv_log_level, service_config.inv_log_format)
        logger.info("Starting search service", provider=service_config.inv_search_provider)

        app.state.metrics_collector = metrics_collector or get_search_metrics()
        if search_manager is not None:
            app.state.search_manager = search_manager
        else:
            # Fails fast on unusable provider or cache settings.
            app.state.search_manager = create_search_manager(
                service_config,
                metrics=app.state.metrics_collector
            )

        logger.info("Search service started successfully")

        yield

        # Shutdown
        logger.info("Shutting down search service")
        await app.state.search_manager.cleanup()
        logger.info("Search service shutdown complete")

    app = FastAPI(
        title="Inventory Search Service",
        description="Scoped hybrid lexical and semantic item search",
        version="0.1.0",
        lifespan=lifespan
    )

    app.include_router(api_router, prefix=API_PREFIX)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error("Unhandled request error", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error"}
            )

        duration = time.time() - start_time
        response.headers["X-Process-Time"] = str(duration)

        if hasattr(app.state, "metrics_collector"):
            app.state.metrics_collector.record_http_request(
                method=request.method,
                endpoint=endpoint_label(request),
                status=status_code,
                duration=duration
            )

        return response

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        try:
            if hasattr(app.state, "search_manager"):
                healthy = await app.state.search_manager.health_check()
            else:
                healthy = False

            if healthy:
                return {"status": "healthy", "service": SERVICE_NAME}
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "service": SERVICE_NAME}
            )
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "service": SERVICE_NAME, "error": str(e)}
            )

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        if hasattr(app.state, "metrics_collector"):
            return Response(content=app.state.metrics_collector.get_metrics(), media_type="text/plain")
        return Response(content="# No metrics available\n", media_type="text/plain")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "inventory_search.main:app",
        host="0.0.0.0",
        port=SearchConfig().inv_search_port,
        log_level="info"
    )
