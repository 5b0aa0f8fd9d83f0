"""
Base service class for SpaceTraders proxy services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import time
import os

import httpx

from shared.config import get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ProxyError


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, **config_overrides):
        self.service_name = service_name
        self.config = get_config(service_name, **config_overrides)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"SpaceTraders proxy - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )

    def _setup_middleware(self):
        """Set up middleware."""

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()

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

            response.headers["X-Request-ID"] = request_id
            clear_context()
            return response

    def _error_content(self, status: int, code: str, message: str,
                       details: Optional[Any] = None) -> Dict[str, Any]:
        content: Dict[str, Any] = {"status": status, "code": code, "message": message}
        if details and not self.config.is_production:
            content["details"] = details
        return content

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()
                self.metrics.record_health_check("ok")

                return {
                    "service": self.service_name,
                    "status": "ok",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "uptime_seconds": self._get_uptime(),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={
                        "service": self.service_name,
                        "status": "error",
                        "error": str(e)
                    }
                )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

        @self.app.exception_handler(ProxyError)
        async def proxy_exception_handler(request: Request, exc: ProxyError):
            self.logger.error(
                "Proxy error",
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                path=request.url.path
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response(include_details=not self.config.is_production).model_dump()
            )

        @self.app.exception_handler(httpx.HTTPStatusError)
        async def upstream_status_handler(request: Request, exc: httpx.HTTPStatusError):
            status = exc.response.status_code
            try:
                details = exc.response.json()
            except ValueError:
                details = exc.response.text or None

            message = None
            if isinstance(details, dict) and isinstance(details.get("error"), dict):
                message = details["error"].get("message")
            message = message or str(exc) or "SpaceTraders API request failed"

            self.logger.error("Upstream error", status_code=status, message=message, path=request.url.path)
            self.metrics.record_error("UPSTREAM_ERROR")
            return JSONResponse(
                status_code=status,
                content=self._error_content(status, "UPSTREAM_ERROR", message, details)
            )

        @self.app.exception_handler(httpx.RequestError)
        async def upstream_unreachable_handler(request: Request, exc: httpx.RequestError):
            self.logger.error("Upstream unreachable", error=str(exc), path=request.url.path)
            self.metrics.record_error("UPSTREAM_UNAVAILABLE")
            return JSONResponse(
                status_code=502,
                content=self._error_content(502, "UPSTREAM_UNAVAILABLE", "SpaceTraders API is unreachable",
                                            {"error": str(exc)})
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            return JSONResponse(
                status_code=500,
                content=self._error_content(500, "INTERNAL_ERROR", "Internal server error")
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
