"""Control plane API service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from libs.common.auth import create_auth_manager_from_config
from libs.common.config import ControlPlaneConfig
from libs.common.errors import AppError, ErrorType, FieldValidationError
from libs.common.logging import configure_logging, get_logger
from libs.common.metrics import MetricsCollector, get_metrics_collector
from libs.common.response import error_response
from .api import router as api_router
from .runtime.services import Services, create_services

logger = get_logger("control_plane")

SERVICE_NAME = "control-plane"
VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config: ControlPlaneConfig = app.state.config
    configure_logging(SERVICE_NAME, config.cp_log_level, config.cp_log_format)
    logger.info("Starting control plane service", env=config.cp_env)

    yield

    logger.info("Shutting down control plane service")
    await app.state.services.aclose()
    logger.info("Control plane service shutdown complete")


def _route_path(request: Request) -> str:
    """Route template for metric labels, including any mount prefix."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if path is None:
        return request.url.path
    return request.scope.get("root_path", "") + path


def create_app(
    config: Optional[ControlPlaneConfig] = None,
    services: Optional[Services] = None,
    metrics: Optional[MetricsCollector] = None,
) -> FastAPI:
    """Build the API application.

    ``services`` and ``metrics`` default to the in-memory services and the
    process-wide collector.
    """
    config = config or ControlPlaneConfig()
    metrics = metrics or get_metrics_collector(SERVICE_NAME)

    app = FastAPI(
        title="Control Plane Service",
        description="Model catalog, endpoint management and inference proxy",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.metrics_collector = metrics
    app.state.auth_manager = create_auth_manager_from_config(config)
    app.state.services = services or create_services(config, metrics=metrics)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [
            FieldValidationError(field=".".join(str(p) for p in err["loc"]), err_msg=err["msg"])
            for err in exc.errors()
        ]
        return error_response(AppError(ErrorType.BINDING, "Invalid request", log=str(exc), fields=fields))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error", path=request.url.path)
        return error_response(AppError(ErrorType.GENERIC, "Internal server error", internal_err=exc))

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()
        response = await call_next(request)
        app.state.metrics_collector.record_http_request(
            method=request.method,
            endpoint=_route_path(request),
            status=response.status_code,
            duration=time.time() - start_time,
        )
        return response

    @app.get("/health")
    async def health_check():
        """Liveness of the control plane itself."""
        return {"status": "healthy", "service": SERVICE_NAME}

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return Response(content=app.state.metrics_collector.get_metrics(), media_type="text/plain")

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "catalogs": "/api/v1/catalogs",
                "cluster": "/api/v1/cluster",
                "endpoints": "/api/v1/endpoints",
                "apikeys": "/api/v1/apikeys",
                "completions": "/api/v1/completions",
                "chat_completions": "/api/v1/chat/completions",
            },
        }

    return app


if __name__ == "__main__":
    uvicorn.run(
        "service_control_plane.app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=ControlPlaneConfig().cp_port,
        log_level="info",
    )
