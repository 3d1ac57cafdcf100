"""
Base service class for 254Carbon API Key services.

Callers are other services and the gateway, never browsers, so no CORS
middleware is installed.
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from contextlib import asynccontextmanager
from typing import Dict, Optional
import time

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ApiKeyError


class BaseService:
    """FastAPI app with request logging, /health, /metrics and ApiKeyError handling."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        local = self.config.env == "local"
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if local else None,
            redoc_url=None,
            lifespan=self._lifespan,
        )

    def _setup_middleware(self):
        """Bind a request id to the log context and record every request."""

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            start_time = time.time()
            set_request_id(request.headers.get("X-Request-ID"))

            try:
                response = await call_next(request)
                duration = time.time() - start_time

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up /health, /metrics and the error handlers."""

        @self.app.get("/health")
        async def health_check():
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            self.metrics.record_health_check("ok")
            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": self._get_uptime(),
                "dependencies": dependencies,
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(ApiKeyError)
        async def api_key_exception_handler(request: Request, exc: ApiKeyError):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log(
                "API key error",
                error_type=exc.error_type.value,
                message=exc.message,
                details=exc.details,
                cause=repr(exc.__cause__) if exc.__cause__ else None,
            )
            self.metrics.record_error(exc.error_type.value)
            body = exc.to_response(include_cause=not self.config.is_production)
            return JSONResponse(
                status_code=exc.status_code,
                content=body.model_dump(mode="json", exclude_none=True)
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("unhandled")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}
            )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        """Run startup and shutdown hooks around the application lifetime."""
        await self.startup()
        try:
            yield
        finally:
            await self.shutdown()

    async def startup(self) -> None:
        """Startup hook. Override in subclasses."""

    async def shutdown(self) -> None:
        """Shutdown hook. Override in subclasses."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Names of the backing components. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        return time.time() - self._start_time

    def run(self):
        """Run the service with uvicorn."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
