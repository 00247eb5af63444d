"""
Application factory for the Avigate API.

Builds the single FastAPI app: CORS, Prometheus request metrics, the
liveness probe, the business counters declared in ``ServiceAppConfig`` and
every module router.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Requests slower than this are logged at WARNING
SLOW_REQUEST_SECONDS = 2.0


class ServiceMetrics:
    """Prometheus registry plus the request and business counters of the API."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.registry = CollectorRegistry()

        self.request_count = Counter(
            "service_requests_total",
            "Total HTTP requests handled by the service",
            ["service", "method", "path", "http_status"],
            registry=self.registry,
        )
        self.request_latency = Histogram(
            "service_request_duration_seconds",
            "Request latency in seconds",
            ["service", "path"],
            registry=self.registry,
        )
        self.business_metrics: Dict[str, Counter] = {}

    def record_request(self, method: str, path: str, status_code: int, duration: float):
        self.request_count.labels(
            service=self.service_name,
            method=method,
            path=path,
            http_status=status_code,
        ).inc()
        self.request_latency.labels(service=self.service_name, path=path).observe(duration)

    def register(self, name: str, description: str, labels: Sequence[str] = ()) -> Counter:
        if name in self.business_metrics:
            return self.business_metrics[name]
        counter = Counter(name, description, list(labels), registry=self.registry)
        self.business_metrics[name] = counter
        return counter

    def inc(self, name: str, **labels):
        """Increment a registered business counter; unknown names are ignored."""
        counter = self.business_metrics.get(name)
        if counter is None:
            logger.debug(f"Business metric {name} is not registered")
            return
        if labels:
            counter.labels(**labels).inc()
        else:
            counter.inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)


@dataclass
class CORSMiddlewareConfig:
    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_credentials: bool = True
    allow_methods: List[str] = field(default_factory=lambda: ["*"])
    allow_headers: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class ServiceAppConfig:
    """
    Everything the factory needs to assemble the app.

    ``business_metrics`` maps a counter name to ``(description, label names)``;
    ``routers`` are included in order after the built-in endpoints.
    """

    title: str
    description: str
    service_name: str
    version: str = "1.0.0"
    cors_config: CORSMiddlewareConfig = field(default_factory=CORSMiddlewareConfig)
    enable_metrics: bool = True
    business_metrics: Dict[str, Tuple[str, Sequence[str]]] = field(default_factory=dict)
    routers: List[APIRouter] = field(default_factory=list)


class FastAPIServiceFactory:
    """Creates the FastAPI application from a ``ServiceAppConfig``."""

    def __init__(self, config: ServiceAppConfig):
        self.config = config
        self.metrics: Optional[ServiceMetrics] = (
            ServiceMetrics(config.service_name) if config.enable_metrics else None
        )

    def create_app(self) -> FastAPI:
        app = FastAPI(
            title=self.config.title,
            description=self.config.description,
            version=self.config.version,
        )

        cors = self.config.cors_config
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors.allow_origins,
            allow_credentials=cors.allow_credentials,
            allow_methods=cors.allow_methods,
            allow_headers=cors.allow_headers,
        )

        self._add_timing_middleware(app)
        self._add_health_endpoint(app)

        if self.metrics:
            self._add_metrics_endpoint(app)
            for name, (description, labels) in self.config.business_metrics.items():
                self.metrics.register(name, description, labels)

        app.state.metrics = self.metrics
        app.state.service_name = self.config.service_name

        for router in self.config.routers:
            app.include_router(router)

        logger.info(
            f"Created {self.config.service_name} with {len(self.config.routers)} routers "
            f"(metrics {'on' if self.metrics else 'off'})"
        )
        return app

    def _add_timing_middleware(self, app: FastAPI):
        metrics = self.metrics

        @app.middleware("http")
        async def timing_middleware(request: Request, call_next):
            start = time.perf_counter()
            response = await call_next(request)
            duration = time.perf_counter() - start

            # Route template keeps path labels bounded ("/routes/{route_id}")
            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)

            if duration > SLOW_REQUEST_SECONDS:
                logger.warning(
                    f"Slow request {request.method} {path} took {duration:.2f}s "
                    f"(status {response.status_code})"
                )
            if metrics is not None:
                metrics.record_request(request.method, path, response.status_code, duration)
            return response

    def _add_metrics_endpoint(self, app: FastAPI):
        metrics = self.metrics

        @app.get("/metrics", include_in_schema=False)
        async def metrics_endpoint():
            return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)

    def _add_health_endpoint(self, app: FastAPI):
        service_name = self.config.service_name

        @app.get("/health", tags=["Health"])
        async def health_check():
            """Liveness probe; see /health/detailed for dependency checks."""
            return {"status": "ok", "service": service_name}

    def add_business_metric(
        self, name: str, description: str, labels: Optional[Sequence[str]] = None
    ) -> Counter:
        """Register a business counter after the app has been created."""
        if not self.metrics:
            raise ValueError("Metrics not enabled for this service")
        return self.metrics.register(name, description, labels or ())


def record_business_event(request: Request, name: str, **labels):
    """Bump a business counter from inside a route handler."""
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.inc(name, **labels)
